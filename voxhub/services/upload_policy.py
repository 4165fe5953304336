from voxhub.core.constants import ALLOWED_TYPES, ANY_TYPE, MAX_PARTS, MAX_SIZE, MB, FileCategory
from voxhub.core.errors import InvalidArgument


def parse_category(value: str) -> FileCategory:
    try:
        return FileCategory(value)
    except ValueError:
        allowed = ", ".join(c.value for c in FileCategory)
        raise InvalidArgument(f"Unknown file category '{value}'. Allowed categories: {allowed}") from None


def check_content_type(category: FileCategory, content_type: str) -> None:
    allowed = ALLOWED_TYPES[category]
    if ANY_TYPE in allowed:
        return
    if content_type not in allowed:
        raise InvalidArgument(f"Invalid file type. Allowed types: {', '.join(allowed)}")


def check_size(category: FileCategory, size_bytes: int) -> None:
    max_size = MAX_SIZE[category]
    if size_bytes < 0:
        raise InvalidArgument("File size cannot be negative")
    if size_bytes > max_size:
        raise InvalidArgument(f"File too large. Maximum size is {max_size // MB}MB")


def check_total_chunks(total_chunks: int) -> None:
    if total_chunks < 1 or total_chunks > MAX_PARTS:
        raise InvalidArgument(f"totalChunks must be between 1 and {MAX_PARTS}")
