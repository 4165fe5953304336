from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from voxhub.core.config import get_settings
from voxhub.integrations.storage.base import (
    PendingUpload,
    SignedUpload,
    StorageError,
    StorageProvider,
    StoredPart,
)


def _translate(call: Callable[..., Any], **kwargs: Any) -> Any:
    try:
        return call(**kwargs)
    except ClientError as exc:
        err = exc.response.get("Error", {}) or {}
        raise StorageError(err.get("Code", "ClientError"), err.get("Message", "") or str(exc)) from exc
    except BotoCoreError as exc:
        raise StorageError("ConnectionError", str(exc)) from exc


class S3StorageProvider(StorageProvider):
    name = "s3"

    def __init__(self) -> None:
        settings = get_settings()
        self.settings = settings
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint or None,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key or None,
            aws_secret_access_key=settings.s3_secret_key or None,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = settings.s3_bucket
        self.endpoint = settings.s3_endpoint
        self.region = settings.s3_region

    def public_url(self, object_key: str) -> str:
        public_base = self.settings.public_base_url
        if public_base:
            return f"{public_base}/{object_key}"
        return f"{self.endpoint.rstrip('/')}/{self.bucket}/{object_key}"

    def sign_upload(self, object_key: str, mime_type: str, size_bytes: int) -> SignedUpload:
        url = _translate(
            self.client.generate_presigned_url,
            ClientMethod="put_object",
            Params={"Bucket": self.bucket, "Key": object_key, "ContentType": mime_type},
            ExpiresIn=self.settings.storage_sign_ttl_seconds,
            HttpMethod="PUT",
        )
        return SignedUpload(
            upload_url=url,
            headers={"Content-Type": mime_type},
            public_url=self.public_url(object_key),
            object_key=object_key,
        )

    def create_multipart_upload(self, object_key: str, content_type: str) -> str:
        resp = _translate(
            self.client.create_multipart_upload,
            Bucket=self.bucket,
            Key=object_key,
            ContentType=content_type,
        )
        upload_id = resp.get("UploadId")
        if not upload_id:
            raise StorageError("MissingUploadId", "store returned no upload id")
        return upload_id

    def presign_part(self, object_key: str, upload_id: str, part_number: int) -> str:
        return _translate(
            self.client.generate_presigned_url,
            ClientMethod="upload_part",
            Params={
                "Bucket": self.bucket,
                "Key": object_key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=self.settings.storage_sign_ttl_seconds,
            HttpMethod="PUT",
        )

    def list_parts(self, object_key: str, upload_id: str) -> list[StoredPart]:
        paginator = self.client.get_paginator("list_parts")
        pages = _translate(
            lambda **kw: list(paginator.paginate(**kw)),
            Bucket=self.bucket,
            Key=object_key,
            UploadId=upload_id,
        )
        return [
            StoredPart(part_number=int(p["PartNumber"]), etag=p["ETag"])
            for page in pages
            for p in page.get("Parts", [])
        ]

    def complete_multipart_upload(self, object_key: str, upload_id: str, parts: list[StoredPart]) -> str:
        resp = _translate(
            self.client.complete_multipart_upload,
            Bucket=self.bucket,
            Key=object_key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [
                    {"ETag": p.etag, "PartNumber": p.part_number}
                    for p in sorted(parts, key=lambda x: x.part_number)
                ]
            },
        )
        return resp.get("ETag", "")

    def abort_multipart_upload(self, object_key: str, upload_id: str) -> None:
        _translate(
            self.client.abort_multipart_upload,
            Bucket=self.bucket,
            Key=object_key,
            UploadId=upload_id,
        )

    def list_multipart_uploads(self) -> list[PendingUpload]:
        paginator = self.client.get_paginator("list_multipart_uploads")
        pages = _translate(lambda **kw: list(paginator.paginate(**kw)), Bucket=self.bucket)
        return [
            PendingUpload(object_key=u["Key"], upload_id=u["UploadId"], initiated_at=u["Initiated"])
            for page in pages
            for u in page.get("Uploads", [])
        ]

    def put_object(self, object_key: str, body: bytes, content_type: str) -> str:
        resp = _translate(
            self.client.put_object,
            Bucket=self.bucket,
            Key=object_key,
            Body=body,
            ContentType=content_type,
        )
        return resp.get("ETag", "")

    def delete_object(self, object_key: str) -> None:
        _translate(self.client.delete_object, Bucket=self.bucket, Key=object_key)

    def ping(self) -> None:
        _translate(self.client.head_bucket, Bucket=self.bucket)
