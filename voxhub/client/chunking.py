import math
from dataclasses import dataclass

from voxhub.core.constants import CHUNK_SIZE, MAX_PARTS, MIN_PART_SIZE


@dataclass(frozen=True)
class ChunkPlan:
    file_size: int
    chunk_size: int
    total_chunks: int

    def byte_range(self, part_number: int) -> tuple[int, int]:
        if not 1 <= part_number <= self.total_chunks:
            raise ValueError(f"part {part_number} outside 1..{self.total_chunks}")
        start = (part_number - 1) * self.chunk_size
        return start, min(start + self.chunk_size, self.file_size)

    def part_sizes(self) -> list[int]:
        return [end - start for start, end in map(self.byte_range, range(1, self.total_chunks + 1))]


def _last_part_size(file_size: int, chunk_size: int, parts: int) -> int:
    return file_size - (parts - 1) * chunk_size


def plan_chunks(file_size: int, chunk_size: int = CHUNK_SIZE, min_part_size: int = MIN_PART_SIZE) -> ChunkPlan:
    """Split ``file_size`` bytes into uniformly sized parts.

    A naive split leaves a short tail part. When that tail would fall under
    ``min_part_size`` the plan drops to fewer, larger parts so that every part,
    the last one included, is at least ``min_part_size`` bytes.
    """
    if file_size < 0:
        raise ValueError("file size cannot be negative")
    if file_size == 0:
        return ChunkPlan(file_size=0, chunk_size=chunk_size, total_chunks=1)

    chunk_size = max(chunk_size, math.ceil(file_size / MAX_PARTS))
    total = math.ceil(file_size / chunk_size)
    if total == 1 or _last_part_size(file_size, chunk_size, total) >= min_part_size:
        return ChunkPlan(file_size=file_size, chunk_size=chunk_size, total_chunks=total)

    parts = total - 1
    while parts > 1:
        size = math.ceil(file_size / parts)
        if _last_part_size(file_size, size, parts) >= min_part_size:
            return ChunkPlan(file_size=file_size, chunk_size=size, total_chunks=parts)
        parts -= 1
    return ChunkPlan(file_size=file_size, chunk_size=file_size, total_chunks=1)


def progress_percent(done: int, total: int) -> int:
    # Half-up rounding, e.g. 1/8 -> 13.
    return (done * 200 + total) // (2 * total)
