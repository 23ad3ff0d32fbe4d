"""Owner-side video management: listing, settings, sharing toggle, deletion."""
from typing import Any, Optional

import structlog

from vidshare.models import Video
from vidshare.services.errors import NotFound
from vidshare.services.repository import VideoRepository
from vidshare.services.storage import ObjectStorage

logger = structlog.get_logger()


def share_link(public_base_url: str, video_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/watch/{video_id}"


def get_owned_video(repository: VideoRepository, video_id: str, owner_id: str) -> Video:
    video = repository.select_by_id(video_id)
    if video is None or video.owner_id != owner_id:
        raise NotFound("Video not found", details={"video_id": video_id})
    return video


def list_videos(repository: VideoRepository, owner_id: str) -> list[Video]:
    return repository.list_for_owner(owner_id)


def update_settings(
    repository: VideoRepository,
    video_id: str,
    owner_id: str,
    *,
    title: Optional[str] = None,
    access_password: Optional[str] = None,
    clear_password: bool = False,
    is_enabled: Optional[bool] = None,
    downloadable: Optional[bool] = None,
) -> Video:
    """
    Apply a partial settings update. Storage keys are never touched.

    An empty ``access_password`` (or ``clear_password``) makes the video public.
    """
    get_owned_video(repository, video_id, owner_id)

    fields: dict[str, Any] = {}
    if title is not None:
        fields["title"] = title
    if clear_password or access_password == "":
        fields["access_password"] = None
    elif access_password is not None:
        fields["access_password"] = access_password
    if is_enabled is not None:
        fields["is_enabled"] = is_enabled
    if downloadable is not None:
        fields["downloadable"] = downloadable

    if not fields:
        return repository.select_by_id(video_id)

    video = repository.update(video_id, fields)
    logger.info("videos.settings_updated", video_id=video_id, fields=sorted(fields))
    return video


def toggle_enabled(repository: VideoRepository, video_id: str, owner_id: str) -> Video:
    video = get_owned_video(repository, video_id, owner_id)
    return repository.update(video_id, {"is_enabled": not video.is_enabled})


def delete_video(
    repository: VideoRepository,
    storage: ObjectStorage,
    video_id: str,
    owner_id: str,
) -> None:
    """Remove every referenced object (best-effort), then the row."""
    video = get_owned_video(repository, video_id, owner_id)
    keys = video.storage_keys
    storage.delete(keys)
    logger.info("videos.storage_deleted", video_id=video_id, objects=len(keys))
    repository.delete(video_id)
    logger.info("videos.deleted", video_id=video_id)
