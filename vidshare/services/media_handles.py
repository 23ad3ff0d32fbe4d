"""In-memory registry of reconstructed media, released explicitly by the client."""
import threading
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import structlog

from vidshare.core.config import get_settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class MediaHandle:
    handle_id: str
    content_type: str
    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class MediaHandleRegistry:
    """
    Handles live until revoked; there is no expiry.

    When ``max_bytes`` is set, creating a handle evicts the oldest handles
    until the held total fits again. The newest handle is always kept, even
    when it alone exceeds the limit.
    """

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self.max_bytes = max_bytes
        self._handles: dict[str, MediaHandle] = {}
        self._total_bytes = 0
        self._lock = threading.Lock()

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def create(self, data: bytes, content_type: str, filename: str) -> MediaHandle:
        handle = MediaHandle(
            handle_id=uuid4().hex,
            content_type=content_type,
            filename=filename,
            data=data,
        )
        with self._lock:
            self._handles[handle.handle_id] = handle
            self._total_bytes += handle.size
            evicted = self._evict_locked(keep=handle.handle_id)
        logger.info("media.handle_created", handle=handle.handle_id, size=handle.size)
        if evicted:
            logger.warning("media.handles_evicted", handles=evicted, limit=self.max_bytes)
        return handle

    def _evict_locked(self, keep: str) -> list[str]:
        evicted: list[str] = []
        if self.max_bytes is None:
            return evicted
        # dicts keep insertion order, so the first entries are the oldest
        for handle_id in list(self._handles):
            if self._total_bytes <= self.max_bytes:
                break
            if handle_id == keep:
                continue
            self._total_bytes -= self._handles.pop(handle_id).size
            evicted.append(handle_id)
        return evicted

    def get(self, handle_id: str) -> Optional[MediaHandle]:
        with self._lock:
            return self._handles.get(handle_id)

    def revoke(self, handle_id: str) -> bool:
        with self._lock:
            removed = self._handles.pop(handle_id, None)
            if removed is not None:
                self._total_bytes -= removed.size
        if removed is not None:
            logger.info("media.handle_revoked", handle=handle_id)
        return removed is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


_registry: Optional[MediaHandleRegistry] = None


def get_media_registry() -> MediaHandleRegistry:
    """Process-wide registry singleton, capped by MEDIA_HANDLE_MAX_BYTES."""
    global _registry
    if _registry is None:
        _registry = MediaHandleRegistry(max_bytes=get_settings().media_handle_max_bytes)
    return _registry
