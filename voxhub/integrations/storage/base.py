from dataclasses import dataclass
from datetime import datetime

# Store-side codes that mean the client sent an unusable part list.
PART_ERROR_CODES = frozenset({"InvalidPart", "InvalidPartOrder", "NoSuchUpload", "EntityTooSmall"})


class StorageError(Exception):
    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


@dataclass
class SignedUpload:
    upload_url: str
    headers: dict[str, str]
    public_url: str
    object_key: str


@dataclass
class StoredPart:
    part_number: int
    etag: str


@dataclass
class PendingUpload:
    object_key: str
    upload_id: str
    initiated_at: datetime


class StorageProvider:
    name: str = "base"
    endpoint: str = ""
    bucket: str = ""
    region: str = ""

    def public_url(self, object_key: str) -> str:
        raise NotImplementedError

    def sign_upload(self, object_key: str, mime_type: str, size_bytes: int) -> SignedUpload:
        raise NotImplementedError

    def create_multipart_upload(self, object_key: str, content_type: str) -> str:
        raise NotImplementedError

    def presign_part(self, object_key: str, upload_id: str, part_number: int) -> str:
        raise NotImplementedError

    def list_parts(self, object_key: str, upload_id: str) -> list[StoredPart]:
        raise NotImplementedError

    def complete_multipart_upload(self, object_key: str, upload_id: str, parts: list[StoredPart]) -> str:
        raise NotImplementedError

    def abort_multipart_upload(self, object_key: str, upload_id: str) -> None:
        raise NotImplementedError

    def list_multipart_uploads(self) -> list[PendingUpload]:
        raise NotImplementedError

    def put_object(self, object_key: str, body: bytes, content_type: str) -> str:
        raise NotImplementedError

    def delete_object(self, object_key: str) -> None:
        raise NotImplementedError

    def ping(self) -> None:
        raise NotImplementedError
