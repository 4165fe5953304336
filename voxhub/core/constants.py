from enum import StrEnum

MB = 1024 * 1024

CHUNK_SIZE = 5 * MB
MIN_PART_SIZE = 5 * MB
MAX_PARTS = 10000
SMALL_FILE_THRESHOLD = 10 * MB

PART_RETRY_ATTEMPTS = 3
PART_RETRY_BASE_DELAY = 1.0


class FileCategory(StrEnum):
    COVER = "cover"
    REFERENCE_AUDIO = "reference-audio"
    DEMO_AUDIO = "demo-audio"
    MODEL_FILE = "model-file"
    DATASET_FILE = "dataset-file"
    GENERAL = "general"


ANY_TYPE = "*"

AUDIO_TYPES = ("audio/wav", "audio/mp3", "audio/mpeg", "audio/ogg", "audio/m4a")

ALLOWED_TYPES: dict[FileCategory, tuple[str, ...]] = {
    FileCategory.COVER: ("image/jpeg", "image/png", "image/webp"),
    FileCategory.REFERENCE_AUDIO: AUDIO_TYPES,
    FileCategory.DEMO_AUDIO: AUDIO_TYPES,
    FileCategory.MODEL_FILE: (
        "application/zip",
        "application/x-zip-compressed",
        "application/octet-stream",
    ),
    FileCategory.DATASET_FILE: (
        "application/zip",
        "application/x-zip-compressed",
        "application/x-rar-compressed",
        "application/x-7z-compressed",
    ),
    FileCategory.GENERAL: (ANY_TYPE,),
}

MAX_SIZE: dict[FileCategory, int] = {
    FileCategory.COVER: 5 * MB,
    FileCategory.REFERENCE_AUDIO: 10 * MB,
    FileCategory.DEMO_AUDIO: 10 * MB,
    FileCategory.MODEL_FILE: 500 * MB,
    FileCategory.DATASET_FILE: 500 * MB,
    FileCategory.GENERAL: 100 * MB,
}
