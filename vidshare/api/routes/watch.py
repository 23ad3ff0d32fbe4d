from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Response, status

from vidshare.api.deps import get_fetcher, get_registry, get_repository
from vidshare.schemas import PublicVideoOut, WatchSessionOut, WatchSessionRequest
from vidshare.services.errors import NotFound
from vidshare.services.fetcher import ChunkedFetcher
from vidshare.services.media_handles import MediaHandleRegistry
from vidshare.services.repository import VideoRepository
from vidshare.services.viewer import (
    MSG_NOT_FOUND,
    Failed,
    LoadingContent,
    NeedsPassword,
    Ready,
    ViewerSession,
    check_download_access,
    download_filename,
)

router = APIRouter(tags=["watch"])


def _public(video) -> PublicVideoOut:
    return PublicVideoOut(
        id=video.id,
        title=video.title,
        is_enabled=video.is_enabled,
        requires_password=video.requires_password,
        downloadable=video.downloadable,
        is_chunked=video.is_chunked,
        file_size=video.file_size,
    )


def _attachment_headers(filename: str) -> dict[str, str]:
    # Titles may be non-ASCII; RFC 5987 encoding keeps them intact.
    return {"Content-Disposition": f"attachment; filename*=utf-8''{quote(filename)}"}


def _session_out(session: ViewerSession) -> WatchSessionOut:
    state = session.state
    out = WatchSessionOut(state=state.kind.value)
    video = getattr(state, "video", None)
    if video is not None:
        out.video = _public(video)
    if isinstance(state, NeedsPassword):
        out.error = state.error
    elif isinstance(state, LoadingContent):
        out.progress = state.progress
    elif isinstance(state, Ready):
        out.handle = state.handle.handle_id
        out.media_url = f"/api/media/{state.handle.handle_id}"
        out.content_type = state.handle.content_type
        out.size = state.handle.size
        out.progress = 100.0
    elif isinstance(state, Failed):
        out.error = state.error
        out.error_code = state.error_code
    return out


@router.get("/watch/{video_id}", response_model=PublicVideoOut)
def get_watch_metadata(
    video_id: str,
    repository: VideoRepository = Depends(get_repository),
):
    video = repository.select_by_id(video_id)
    if video is None:
        raise NotFound(MSG_NOT_FOUND, details={"video_id": video_id})
    return _public(video)


@router.post("/watch/{video_id}/session", response_model=WatchSessionOut)
def open_watch_session(
    video_id: str,
    payload: Optional[WatchSessionRequest] = None,
    repository: VideoRepository = Depends(get_repository),
    fetcher: ChunkedFetcher = Depends(get_fetcher),
    registry: MediaHandleRegistry = Depends(get_registry),
):
    """
    Run one viewer session: load metadata, then content.

    When the video is password protected and a password is supplied it is
    checked once; otherwise the session stops in ``needs_password``.
    """
    session = ViewerSession(video_id, repository, fetcher, registry)
    session.open()
    if isinstance(session.state, NeedsPassword) and payload and payload.password is not None:
        session.submit_password(payload.password)
    return _session_out(session)


@router.get("/media/{handle_id}")
def get_media(handle_id: str, registry: MediaHandleRegistry = Depends(get_registry)):
    handle = registry.get(handle_id)
    if handle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media handle not found")
    return Response(content=handle.data, media_type=handle.content_type)


@router.delete("/media/{handle_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_media(handle_id: str, registry: MediaHandleRegistry = Depends(get_registry)):
    if not registry.revoke(handle_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media handle not found")


@router.post("/watch/{video_id}/download")
def download_video(
    video_id: str,
    payload: Optional[WatchSessionRequest] = None,
    repository: VideoRepository = Depends(get_repository),
    fetcher: ChunkedFetcher = Depends(get_fetcher),
):
    """Body ``{"password": ...}`` unlocks protected videos; never read from the query string."""
    password = payload.password if payload else None
    video = check_download_access(repository.select_by_id(video_id), password)
    data = fetcher.fetch(video)
    return Response(
        content=data,
        media_type=video.content_type or "video/mp4",
        headers=_attachment_headers(download_filename(video)),
    )
