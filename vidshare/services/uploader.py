"""
Chunked Uploader.

Turns one local byte source into either a single stored object or a chunk
manifest, atomically from the caller's point of view: on success exactly one
database row references the stored objects, on failure every object written
by this attempt has been removed again.
"""
import time
from typing import BinaryIO, Callable, Optional

import structlog

from vidshare.core.config import Settings
from vidshare.models import Video
from vidshare.services.chunking import (
    ChunkRange,
    chunk_count,
    generate_storage_key,
    part_key,
    plan_chunks,
    title_from_filename,
)
from vidshare.services.errors import PersistenceFailure, StorageWriteFailure, ValidationFailure
from vidshare.services.progress import ProgressCallback, UploadSession, format_bytes, format_duration
from vidshare.services.repository import VideoRepository
from vidshare.services.storage import ObjectStorage

logger = structlog.get_logger()

DEFAULT_CHUNK_THRESHOLD = 40 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


class ChunkedUploader:
    def __init__(
        self,
        storage: ObjectStorage,
        repository: VideoRepository,
        *,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        default_content_type: str = "video/mp4",
        clock: Callable[[], float] = time.monotonic,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.storage = storage
        self.repository = repository
        self.chunk_threshold = chunk_threshold
        self.chunk_size = chunk_size
        self.default_content_type = default_content_type
        self.clock = clock

    @classmethod
    def from_settings(
        cls, storage: ObjectStorage, repository: VideoRepository, settings: Settings
    ) -> "ChunkedUploader":
        return cls(
            storage,
            repository,
            chunk_threshold=settings.chunk_threshold_bytes,
            chunk_size=settings.chunk_size_bytes,
            default_content_type=settings.default_content_type,
        )

    def uses_chunks(self, total_size: int) -> bool:
        return total_size > self.chunk_threshold

    def upload(
        self,
        source: BinaryIO,
        *,
        total_size: int,
        filename: Optional[str],
        owner_id: str,
        content_type: Optional[str] = None,
        downloadable: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Video:
        """
        Store ``source`` and create its video record.

        Sources at or below the threshold are sent in one call; larger
        sources are split into ``chunk_size`` parts uploaded one at a time.

        Raises:
            StorageWriteFailure: a storage write was rejected (already rolled back)
            PersistenceFailure: the record insert failed (already rolled back)
        """
        mime_type = content_type or self.default_content_type
        base_key = generate_storage_key(filename)
        title = title_from_filename(filename)

        if self.uses_chunks(total_size):
            return self._upload_chunked(
                source, total_size, base_key, title, owner_id, mime_type, downloadable, on_progress
            )
        return self._upload_single(
            source, total_size, base_key, title, owner_id, mime_type, downloadable, on_progress
        )

    def _upload_single(
        self,
        source: BinaryIO,
        total_size: int,
        key: str,
        title: str,
        owner_id: str,
        mime_type: str,
        downloadable: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Video:
        logger.info("upload.single_start", key=key, size=format_bytes(total_size))
        session = UploadSession(total_bytes=total_size, started_at=self.clock())

        source.seek(0)
        data = source.read(total_size)
        if len(data) != total_size:
            raise ValidationFailure(
                f"Source ended after {len(data)} of {total_size} bytes",
                details={"expected": total_size, "received": len(data)},
            )

        try:
            try:
                self.storage.upload(key, data, content_type=mime_type, overwrite=True)
            except StorageWriteFailure as exc:
                logger.error("upload.single_failed", key=key, error=exc.message)
                raise StorageWriteFailure(
                    f"Upload failed: {exc.message}", details={"key": key}
                ) from exc

            progress = session.record_part(key, total_size, self.clock())
            if on_progress:
                on_progress(progress)

            video = Video(
                title=title,
                file_path=key,
                owner_id=owner_id,
                content_type=mime_type,
                file_size=total_size,
                is_chunked=False,
                is_enabled=True,
                downloadable=downloadable,
            )
            self._persist(video)
        except Exception as exc:
            self._rollback(session.uploaded_keys, exc)
            raise

        logger.info("upload.single_done", video_id=video.id, key=key)
        return video

    def _upload_chunked(
        self,
        source: BinaryIO,
        total_size: int,
        base_key: str,
        title: str,
        owner_id: str,
        mime_type: str,
        downloadable: bool,
        on_progress: Optional[ProgressCallback],
    ) -> Video:
        total_chunks = chunk_count(total_size, self.chunk_size)
        logger.info(
            "upload.chunked_start",
            base_key=base_key,
            chunks=total_chunks,
            size=format_bytes(total_size),
        )
        session = UploadSession(total_bytes=total_size, started_at=self.clock())

        # Anything raised before the row exists removes every part written so far.
        try:
            for chunk in plan_chunks(total_size, self.chunk_size):
                self._upload_part(
                    source, chunk, base_key, total_chunks, mime_type, session, on_progress
                )

            chunk_paths = list(session.uploaded_keys)
            video = Video(
                title=title,
                file_path=base_key,
                owner_id=owner_id,
                content_type=mime_type,
                file_size=total_size,
                is_chunked=True,
                chunk_count=total_chunks,
                chunk_paths=chunk_paths,
                is_enabled=True,
                downloadable=downloadable,
            )
            self._persist(video)
        except Exception as exc:
            self._rollback(session.uploaded_keys, exc)
            raise

        if on_progress:
            on_progress(session.complete(self.clock()))
        logger.info("upload.chunked_done", video_id=video.id, chunks=total_chunks)
        return video

    def _upload_part(
        self,
        source: BinaryIO,
        chunk: ChunkRange,
        base_key: str,
        total_chunks: int,
        mime_type: str,
        session: UploadSession,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        key = part_key(base_key, chunk.index)

        source.seek(chunk.start)
        data = source.read(chunk.length)
        if len(data) != chunk.length:
            raise ValidationFailure(
                f"Source ended early at part {chunk.index + 1}/{total_chunks}",
                details={"part": chunk.index, "expected": chunk.length, "received": len(data)},
            )

        try:
            self.storage.upload(key, data, content_type=mime_type, overwrite=True)
        except StorageWriteFailure as exc:
            logger.error(
                "upload.part_failed",
                part=chunk.index + 1,
                total=total_chunks,
                error=exc.message,
            )
            raise StorageWriteFailure(
                f"Upload failed (part {chunk.index + 1}/{total_chunks}): {exc.message}",
                details={"part": chunk.index, "total_parts": total_chunks},
            ) from exc

        progress = session.record_part(key, chunk.length, self.clock())
        if on_progress:
            on_progress(progress)
        logger.info(
            "upload.part_done",
            part=chunk.index + 1,
            total=total_chunks,
            uploaded=format_bytes(progress.bytes_uploaded),
            speed=f"{format_bytes(progress.bytes_per_second)}/s",
            remaining=format_duration(progress.estimated_seconds_remaining),
        )

    def _persist(self, video: Video) -> None:
        try:
            self.repository.insert(video)
        except PersistenceFailure as exc:
            raise PersistenceFailure(
                f"Failed to save video info: {exc.message}", details=exc.details
            ) from exc

    def _rollback(self, keys: list[str], cause: Exception) -> None:
        if not keys:
            return
        reason = getattr(cause, "error_code", type(cause).__name__)
        logger.warning("upload.rollback", reason=reason, objects=len(keys))
        self.storage.delete(list(keys))
