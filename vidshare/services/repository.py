"""Database access for video records."""

from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vidshare.models import Video
from vidshare.services.errors import PersistenceFailure

logger = structlog.get_logger()

# Storage keys and manifests are write-once; only these fields may change after insert.
MUTABLE_FIELDS = frozenset({"title", "access_password", "is_enabled", "downloadable"})


class VideoRepository:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, video: Video) -> str:
        try:
            self.db.add(video)
            self.db.commit()
            self.db.refresh(video)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("db.insert_failed", error=str(exc))
            raise PersistenceFailure(f"Failed to save video record: {exc}") from exc
        return video.id

    def select_by_id(self, video_id: str) -> Optional[Video]:
        try:
            return self.db.get(Video, video_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"Failed to load video record: {exc}") from exc

    def update(self, video_id: str, fields: dict[str, Any]) -> Video:
        illegal = set(fields) - MUTABLE_FIELDS
        if illegal:
            raise ValueError(f"Fields cannot be updated: {sorted(illegal)}")
        video = self.select_by_id(video_id)
        if video is None:
            raise PersistenceFailure(
                f"Video {video_id} no longer exists", details={"video_id": video_id}
            )
        try:
            for name, value in fields.items():
                setattr(video, name, value)
            self.db.commit()
            self.db.refresh(video)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("db.update_failed", video_id=video_id, error=str(exc))
            raise PersistenceFailure(f"Failed to update video: {exc}") from exc
        return video

    def delete(self, video_id: str) -> None:
        try:
            video = self.db.get(Video, video_id)
            if video is not None:
                self.db.delete(video)
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("db.delete_failed", video_id=video_id, error=str(exc))
            raise PersistenceFailure(f"Failed to delete video: {exc}") from exc

    def list_for_owner(self, owner_id: str) -> list[Video]:
        try:
            return (
                self.db.query(Video)
                .filter(Video.owner_id == owner_id)
                .order_by(Video.created_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"Failed to list videos: {exc}") from exc
