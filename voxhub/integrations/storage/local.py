import hashlib
import json
import re
import shutil
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote
from uuid import uuid4

from voxhub.core.config import get_settings
from voxhub.core.constants import MIN_PART_SIZE
from voxhub.core.security import create_object_token, create_part_token
from voxhub.integrations.storage.base import (
    PendingUpload,
    SignedUpload,
    StorageError,
    StorageProvider,
    StoredPart,
)

UPLOAD_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class LocalStorageProvider(StorageProvider):
    name = "local"

    def __init__(self, base_dir: str | Path | None = None, min_part_size: int = MIN_PART_SIZE) -> None:
        self.settings = get_settings()
        self.min_part_size = min_part_size
        self.base_dir = Path(base_dir or self.settings.storage_local_dir).resolve()
        self.objects_dir = self.base_dir / "objects"
        self.sessions_dir = self.base_dir / ".multipart"
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.bucket = "local"
        self.region = "local"
        self.endpoint = f"{self.settings.storage_local_base_url.rstrip('/')}{self.settings.api_prefix}/storage"

    def object_path(self, object_key: str) -> Path:
        target = (self.objects_dir / object_key).resolve()
        if not target.is_relative_to(self.objects_dir):
            raise StorageError("InvalidObjectName", "object key escapes storage root")
        return target

    def _session_dir(self, upload_id: str) -> Path:
        if not UPLOAD_ID_RE.match(upload_id or ""):
            raise StorageError("NoSuchUpload", "unknown upload id")
        path = self.sessions_dir / upload_id
        if not path.is_dir():
            raise StorageError("NoSuchUpload", "unknown upload id")
        return path

    def _read_meta(self, session: Path) -> dict:
        return json.loads((session / "meta.json").read_text(encoding="utf-8"))

    def _checked_session(self, object_key: str, upload_id: str) -> Path:
        session = self._session_dir(upload_id)
        if self._read_meta(session)["key"] != object_key:
            raise StorageError("NoSuchUpload", "upload id does not belong to key")
        return session

    def public_url(self, object_key: str) -> str:
        return f"{self.settings.public_base_url}/{quote(object_key)}"

    def sign_upload(self, object_key: str, mime_type: str, size_bytes: int) -> SignedUpload:
        token = create_object_token(object_key, mime_type)
        return SignedUpload(
            upload_url=f"{self.endpoint}/local-upload/{token}",
            headers={"Content-Type": mime_type},
            public_url=self.public_url(object_key),
            object_key=object_key,
        )

    def create_multipart_upload(self, object_key: str, content_type: str) -> str:
        self.object_path(object_key)
        upload_id = uuid4().hex
        session = self.sessions_dir / upload_id
        session.mkdir(parents=True)
        meta = {
            "key": object_key,
            "content_type": content_type,
            "initiated": datetime.now(UTC).isoformat(),
        }
        (session / "meta.json").write_text(json.dumps(meta), encoding="utf-8")
        return upload_id

    def presign_part(self, object_key: str, upload_id: str, part_number: int) -> str:
        token = create_part_token(object_key, upload_id, part_number)
        return f"{self.endpoint}/local-parts/{token}"

    def store_part(self, object_key: str, upload_id: str, part_number: int, body: bytes) -> str:
        session = self._checked_session(object_key, upload_id)
        (session / f"{part_number}.part").write_bytes(body)
        return _etag(body)

    def list_parts(self, object_key: str, upload_id: str) -> list[StoredPart]:
        session = self._checked_session(object_key, upload_id)
        parts = []
        for path in session.glob("*.part"):
            parts.append(StoredPart(part_number=int(path.stem), etag=_etag(path.read_bytes())))
        return sorted(parts, key=lambda p: p.part_number)

    def complete_multipart_upload(self, object_key: str, upload_id: str, parts: list[StoredPart]) -> str:
        session = self._checked_session(object_key, upload_id)
        ordered = sorted(parts, key=lambda p: p.part_number)
        digests = b""
        chunks = []
        for part in ordered:
            path = session / f"{part.part_number}.part"
            if not path.is_file():
                raise StorageError("InvalidPart", f"part {part.part_number} was never uploaded")
            data = path.read_bytes()
            if _etag(data).strip('"') != part.etag.strip('"'):
                raise StorageError("InvalidPart", f"part {part.part_number} etag mismatch")
            if part is not ordered[-1] and len(data) < self.min_part_size:
                raise StorageError("EntityTooSmall", f"part {part.part_number} is too small")
            digests += hashlib.md5(data).digest()
            chunks.append(data)

        target = self.object_path(object_key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"".join(chunks))
        shutil.rmtree(session)
        return f'"{hashlib.md5(digests).hexdigest()}-{len(ordered)}"'

    def abort_multipart_upload(self, object_key: str, upload_id: str) -> None:
        session = self._checked_session(object_key, upload_id)
        shutil.rmtree(session)

    def list_multipart_uploads(self) -> list[PendingUpload]:
        pending = []
        for session in self.sessions_dir.iterdir():
            if not session.is_dir():
                continue
            meta = self._read_meta(session)
            pending.append(
                PendingUpload(
                    object_key=meta["key"],
                    upload_id=session.name,
                    initiated_at=datetime.fromisoformat(meta["initiated"]),
                )
            )
        return pending

    def put_object(self, object_key: str, body: bytes, content_type: str) -> str:
        target = self.object_path(object_key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(body)
        return _etag(body)

    def delete_object(self, object_key: str) -> None:
        target = self.object_path(object_key)
        target.unlink(missing_ok=True)

    def ping(self) -> None:
        if not self.objects_dir.is_dir() or not self.sessions_dir.is_dir():
            raise StorageError("NoSuchBucket", f"storage directory {self.base_dir} is missing")
