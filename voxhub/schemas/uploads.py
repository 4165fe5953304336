from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitiateMultipartRequest(CamelModel):
    file_name: str | None = None
    file_type: str | None = None
    file_category: str | None = None
    file_size: int | None = None
    total_chunks: int | None = None


class PartUrl(CamelModel):
    part_number: int
    url: str


class InitiateMultipartResponse(CamelModel):
    upload_id: str
    key: str
    file_name: str
    file_type: str
    endpoint: str
    bucket: str
    region: str
    expires_in: int
    part_urls: list[PartUrl]


class CompletedPart(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    etag: str = Field(alias="ETag")
    part_number: int = Field(alias="PartNumber")


class CompleteMultipartRequest(CamelModel):
    upload_id: str | None = None
    key: str | None = None
    parts: list[CompletedPart] | None = None
    total_chunks: int | None = None


class CompleteMultipartResponse(CamelModel):
    url: str
    key: str
    etag: str


class AbortMultipartRequest(CamelModel):
    upload_id: str | None = None
    key: str | None = None


class SuccessResponse(CamelModel):
    success: bool = True


class SmallUploadResponse(CamelModel):
    url: str
    name: str
    size: int
    type: str
    key: str


class DeleteObjectRequest(CamelModel):
    key: str | None = None


class SignUploadRequest(CamelModel):
    filename: str | None = None
    content_type: str | None = None
    file_type: str = "general"


class SignedUploadResponse(CamelModel):
    upload_url: str
    key: str
    public_url: str
    headers: dict[str, str]
