"""
Transfer progress telemetry.

Provides:
- TransferProgress snapshots (percent, bytes, speed, ETA)
- UploadSession, the mutable counters owned by one upload invocation
- Human readable byte and duration formatting for log lines
"""
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass(frozen=True)
class TransferProgress:
    percent_complete: int
    bytes_uploaded: int
    total_bytes: int
    bytes_per_second: float
    estimated_seconds_remaining: float


@dataclass(frozen=True)
class FetchProgress:
    percent_complete: float
    parts_done: int
    parts_total: int


ProgressCallback = Callable[[TransferProgress], None]
FetchProgressCallback = Callable[[FetchProgress], None]


@dataclass
class UploadSession:
    """
    Counters for a single upload attempt.

    Owned by the pipeline invocation that created it; never shared.
    """
    total_bytes: int
    started_at: float
    bytes_uploaded: int = 0
    uploaded_keys: list[str] = field(default_factory=list)

    def record_part(self, key: str, size: int, now: float) -> TransferProgress:
        self.uploaded_keys.append(key)
        self.bytes_uploaded += size
        return self.snapshot(now)

    def complete(self, now: float) -> TransferProgress:
        self.bytes_uploaded = self.total_bytes
        return self.snapshot(now)

    def snapshot(self, now: float) -> TransferProgress:
        elapsed = now - self.started_at
        speed = self.bytes_uploaded / elapsed if elapsed > 0 else 0.0
        remaining = self.total_bytes - self.bytes_uploaded
        eta = remaining / speed if speed > 0 else 0.0
        if self.total_bytes:
            percent = round(self.bytes_uploaded / self.total_bytes * 100)
        else:
            percent = 100
        return TransferProgress(
            percent_complete=percent,
            bytes_uploaded=self.bytes_uploaded,
            total_bytes=self.total_bytes,
            bytes_per_second=speed,
            estimated_seconds_remaining=eta,
        )


def format_bytes(num_bytes: float) -> str:
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def format_duration(seconds: Optional[float]) -> str:
    if not seconds or seconds < 0:
        return "0s"
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)} min"
    return f"{round(seconds / 3600)} h"
