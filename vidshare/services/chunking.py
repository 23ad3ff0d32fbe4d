"""
Chunk planning for large uploads.

A source of ``total_size`` bytes is cut into consecutive parts of
``part_size`` bytes (the last one shorter). Part ``i`` is stored under
``{base_key}.part{i}``.
"""
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

SAFE_EXTENSION = re.compile(r"\.[a-z0-9]{1,10}")
DEFAULT_EXTENSION = ".mp4"


@dataclass(frozen=True)
class ChunkRange:
    """Byte range ``[start, end)`` of one part."""
    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def chunk_count(total_size: int, part_size: int) -> int:
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    return -(-total_size // part_size)


def plan_chunks(total_size: int, part_size: int) -> list[ChunkRange]:
    if total_size < 0:
        raise ValueError("total_size must not be negative")
    return [
        ChunkRange(
            index=index,
            start=index * part_size,
            end=min((index + 1) * part_size, total_size),
        )
        for index in range(chunk_count(total_size, part_size))
    ]


def part_key(base_key: str, index: int) -> str:
    return f"{base_key}.part{index}"


def generate_storage_key(filename: Optional[str], now: Optional[float] = None) -> str:
    """
    Build an ASCII-only object key: ``{epoch_ms}-{random}{ext}``.

    Only the extension is taken from the uploaded filename, and only when it
    is short and alphanumeric.
    """
    timestamp_ms = int((time.time() if now is None else now) * 1000)
    ext = PurePath(filename or "").suffix.lower()
    if not SAFE_EXTENSION.fullmatch(ext):
        ext = DEFAULT_EXTENSION
    return f"{timestamp_ms}-{secrets.token_hex(3)}{ext}"


def title_from_filename(filename: Optional[str]) -> str:
    """Strip the final extension; the title keeps any unicode the user supplied."""
    name = PurePath(filename or "").name
    stem = re.sub(r"\.[^/.]+$", "", name)
    return stem or name or "untitled"
