import re
import secrets
import string
import time
from pathlib import PurePosixPath

from voxhub.core.constants import FileCategory

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SUFFIX_LENGTH = 12
EXTENSION_RE = re.compile(r"[^a-z0-9]")
CATEGORY_VALUES = frozenset(c.value for c in FileCategory)


def _random_suffix() -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


def file_extension(file_name: str) -> str:
    suffix = PurePosixPath(file_name.replace("\\", "/")).suffix.lower().lstrip(".")
    suffix = EXTENSION_RE.sub("", suffix)
    return suffix or "bin"


def build_object_key(category: FileCategory, owner_id: str, file_name: str, now_ms: int | None = None) -> str:
    # {category}/{owner}/{timestamp}-{random}.{ext}
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{category.value}/{owner_id}/{timestamp}-{_random_suffix()}.{file_extension(file_name)}"


def owner_of(object_key: str) -> str | None:
    segments = object_key.split("/")
    if len(segments) != 3 or any(not s or s in {".", ".."} for s in segments):
        return None
    category, owner, name = segments
    if category not in CATEGORY_VALUES or ".." in name:
        return None
    return owner


def is_owned_by(object_key: str, owner_id: str) -> bool:
    owner = owner_of(object_key)
    return owner is not None and owner == owner_id
