import os
from typing import List

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from vidshare.api.deps import (
    get_current_user_id,
    get_repository,
    get_storage,
    get_uploader,
)
from vidshare.core.config import Settings, get_settings
from vidshare.models import Video
from vidshare.schemas import VideoOut, VideoSettingsUpdate
from vidshare.services import videos as video_service
from vidshare.services.errors import ValidationFailure
from vidshare.services.progress import TransferProgress, format_bytes
from vidshare.services.repository import VideoRepository
from vidshare.services.storage import ObjectStorage
from vidshare.services.uploader import ChunkedUploader

logger = structlog.get_logger()

router = APIRouter(prefix="/videos", tags=["videos"])


def _out(video: Video, settings: Settings) -> VideoOut:
    out = VideoOut.model_validate(video)
    out.share_link = video_service.share_link(settings.public_base_url, video.id)
    return out


def _validate_upload(upload_file: UploadFile, size: int, settings: Settings) -> None:
    content_type = (upload_file.content_type or "").split(";")[0].strip().lower()
    allowed_types = settings.allowed_video_types_list
    if content_type and content_type not in allowed_types and not content_type.startswith("video/"):
        raise ValidationFailure(
            f"Invalid file type. Allowed: {', '.join(allowed_types)}",
            details={"content_type": content_type},
        )
    if size == 0:
        raise ValidationFailure("Uploaded file is empty")
    if size > settings.max_upload_size_bytes:
        raise ValidationFailure(
            f"Uploaded file too large (max {settings.max_upload_size_mb}MB)",
            details={"size": size},
            too_large=True,
        )


@router.post("/upload", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
def upload_video(
    file: UploadFile = File(...),
    downloadable: bool = Form(True),
    uploader: ChunkedUploader = Depends(get_uploader),
    owner_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    # Best-effort size probe on the spooled upload.
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    _validate_upload(file, size, settings)

    def log_progress(progress: TransferProgress) -> None:
        logger.info(
            "upload.progress",
            filename=file.filename,
            percent=progress.percent_complete,
            uploaded=format_bytes(progress.bytes_uploaded),
            total=format_bytes(progress.total_bytes),
        )

    content_type = (file.content_type or "").split(";")[0].strip() or None
    video = uploader.upload(
        file.file,
        total_size=size,
        filename=file.filename,
        owner_id=owner_id,
        content_type=content_type,
        downloadable=downloadable,
        on_progress=log_progress,
    )
    return _out(video, settings)


@router.get("", response_model=List[VideoOut])
def list_videos(
    repository: VideoRepository = Depends(get_repository),
    owner_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    return [_out(video, settings) for video in video_service.list_videos(repository, owner_id)]


@router.get("/{video_id}", response_model=VideoOut)
def get_video(
    video_id: str,
    repository: VideoRepository = Depends(get_repository),
    owner_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    return _out(video_service.get_owned_video(repository, video_id, owner_id), settings)


@router.patch("/{video_id}", response_model=VideoOut)
def update_video(
    video_id: str,
    payload: VideoSettingsUpdate,
    repository: VideoRepository = Depends(get_repository),
    owner_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    video = video_service.update_settings(
        repository,
        video_id,
        owner_id,
        title=payload.title,
        access_password=payload.access_password,
        is_enabled=payload.is_enabled,
        downloadable=payload.downloadable,
    )
    return _out(video, settings)


@router.post("/{video_id}/toggle", response_model=VideoOut)
def toggle_video(
    video_id: str,
    repository: VideoRepository = Depends(get_repository),
    owner_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    return _out(video_service.toggle_enabled(repository, video_id, owner_id), settings)


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video(
    video_id: str,
    repository: VideoRepository = Depends(get_repository),
    storage: ObjectStorage = Depends(get_storage),
    owner_id: str = Depends(get_current_user_id),
):
    video_service.delete_video(repository, storage, video_id, owner_id)
