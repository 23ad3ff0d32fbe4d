"""
Chunked Fetcher.

Rebuilds the bytes of a video from either its single object key or its part
manifest, retrying transient storage failures. Every call downloads from
scratch; nothing is cached between playback and download.
"""
import time
from typing import Callable, Optional

import structlog

from vidshare.core.config import Settings
from vidshare.models import Video
from vidshare.services.errors import StorageReadFailure
from vidshare.services.progress import FetchProgress, FetchProgressCallback, format_bytes
from vidshare.services.retry import (
    Backoff,
    RetryExhausted,
    exponential_backoff,
    linear_backoff,
    retry_call,
)
from vidshare.services.storage import ObjectStorage

logger = structlog.get_logger()

# Chunked progress tops out here until the parts are concatenated.
DOWNLOAD_PROGRESS_CEILING = 90.0


class ChunkedFetcher:
    def __init__(
        self,
        storage: ObjectStorage,
        *,
        single_max_attempts: int = 3,
        single_backoff: Optional[Backoff] = None,
        chunked_max_attempts: int = 2,
        chunked_backoff: Optional[Backoff] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.storage = storage
        self.single_max_attempts = single_max_attempts
        self.single_backoff = single_backoff or exponential_backoff(1.0, 5.0)
        self.chunked_max_attempts = chunked_max_attempts
        self.chunked_backoff = chunked_backoff or linear_backoff(2.0, 5.0)
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        storage: ObjectStorage,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ChunkedFetcher":
        return cls(
            storage,
            single_max_attempts=settings.download_max_attempts,
            single_backoff=exponential_backoff(
                settings.download_backoff_base_seconds, settings.backoff_cap_seconds
            ),
            chunked_max_attempts=settings.chunked_download_max_attempts,
            chunked_backoff=linear_backoff(
                settings.chunked_backoff_step_seconds, settings.backoff_cap_seconds
            ),
            sleep=sleep,
        )

    def fetch(self, video: Video, on_progress: Optional[FetchProgressCallback] = None) -> bytes:
        """Return the full byte content of ``video``, reconstructing parts when chunked."""
        if video.is_chunked and video.chunk_paths:
            if video.chunk_count is not None and video.chunk_count != len(video.chunk_paths):
                logger.warning(
                    "fetch.manifest_mismatch",
                    video_id=video.id,
                    chunk_count=video.chunk_count,
                    manifest_length=len(video.chunk_paths),
                )
            return self.fetch_chunked(list(video.chunk_paths), on_progress)
        return self.fetch_single(video.file_path, on_progress)

    def fetch_single(
        self, key: str, on_progress: Optional[FetchProgressCallback] = None
    ) -> bytes:
        def attempt(attempt_no: int) -> bytes:
            _report(on_progress, 20.0 + (attempt_no - 1) * 20.0, 0, 1)
            data = self.storage.download(key)
            if not data:
                raise StorageReadFailure("Server returned empty data", details={"key": key})
            _report(on_progress, 80.0, 1, 1)
            return data

        data = self._run(attempt, self.single_max_attempts, self.single_backoff, key)
        _report(on_progress, 100.0, 1, 1)
        logger.info("fetch.complete", key=key, size=format_bytes(len(data)))
        return data

    def fetch_chunked(
        self, chunk_paths: list[str], on_progress: Optional[FetchProgressCallback] = None
    ) -> bytes:
        total = len(chunk_paths)
        logger.info("fetch.chunked_start", parts=total)

        def attempt(attempt_no: int) -> list[bytes]:
            # A retry always restarts from the first part.
            parts: list[bytes] = []
            for index, key in enumerate(chunk_paths):
                try:
                    data = self.storage.download(key)
                except StorageReadFailure as exc:
                    raise StorageReadFailure(
                        f"Part {index + 1} download failed: {exc.message}",
                        details={"part": index, "key": key},
                    ) from exc
                if not data:
                    raise StorageReadFailure(
                        f"Part {index + 1} returned empty data",
                        details={"part": index, "key": key},
                    )
                parts.append(data)
                done = index + 1
                _report(on_progress, done / total * DOWNLOAD_PROGRESS_CEILING, done, total)
            return parts

        parts = self._run(attempt, self.chunked_max_attempts, self.chunked_backoff, f"{total} parts")
        content = b"".join(parts)
        _report(on_progress, 100.0, total, total)
        logger.info("fetch.complete", parts=total, size=format_bytes(len(content)))
        return content

    def _run(self, operation, max_attempts: int, backoff: Backoff, target: str):
        try:
            return retry_call(
                operation,
                max_attempts=max_attempts,
                backoff=backoff,
                retry_on=(StorageReadFailure,),
                sleep=self.sleep,
                name=f"fetch {target}",
            )
        except RetryExhausted as exc:
            last = exc.last_error
            message = getattr(last, "message", str(last))
            raise StorageReadFailure(
                f"Failed after {exc.attempts} attempts: {message}",
                details={"attempts": exc.attempts, "target": target},
            ) from last


def _report(
    callback: Optional[FetchProgressCallback],
    percent: float,
    done: int,
    total: int,
) -> None:
    if callback:
        callback(FetchProgress(percent_complete=percent, parts_done=done, parts_total=total))
