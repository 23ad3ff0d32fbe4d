from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, JSON, String

from vidshare.db.base import Base


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Video(Base):
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    title = Column(String, nullable=False)  # original filename, may be non-ASCII
    file_path = Column(String, nullable=False)  # object key, or base key of a chunk manifest
    content_type = Column(String, default="video/mp4", nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)

    is_chunked = Column(Boolean, default=False, nullable=False)
    chunk_count = Column(Integer, nullable=True)
    chunk_paths = Column(JSON, nullable=True)  # ordered part keys, {file_path}.part{index}

    access_password = Column(String, nullable=True)  # None means public
    is_enabled = Column(Boolean, default=True, nullable=False)
    downloadable = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    @property
    def storage_keys(self) -> list[str]:
        """Every object key this record references."""
        if self.is_chunked and self.chunk_paths:
            return list(self.chunk_paths)
        return [self.file_path]

    @property
    def requires_password(self) -> bool:
        return bool(self.access_password)
