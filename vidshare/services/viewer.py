"""
Viewer session state machine.

One session per watch page visit::

    Idle -> LoadingMetadata -> NeedsPassword | LoadingContent | Failed
    NeedsPassword -> NeedsPassword (wrong password) | LoadingContent
    LoadingContent -> Ready | Failed
    Ready | Failed | NeedsPassword -> Idle (reset)

Each state is its own dataclass so a state only carries the data that is
meaningful in it (no "ready without a handle" or "failed without a message").
"""
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

import structlog

from vidshare.models import Video
from vidshare.services.errors import (
    AppException,
    AuthorizationFailure,
    NotFound,
    StorageReadFailure,
)
from vidshare.services.fetcher import ChunkedFetcher
from vidshare.services.media_handles import MediaHandle, MediaHandleRegistry
from vidshare.services.progress import FetchProgress
from vidshare.services.repository import VideoRepository

logger = structlog.get_logger()

MSG_NOT_FOUND = "Video does not exist or has been deleted"
MSG_DISABLED = "This video is no longer shared"
MSG_WRONG_PASSWORD = "Incorrect password, please try again"
MSG_NOT_DOWNLOADABLE = "Downloads are disabled for this video"


class ViewerState(str, Enum):
    IDLE = "idle"
    LOADING_METADATA = "loading_metadata"
    NEEDS_PASSWORD = "needs_password"
    LOADING_CONTENT = "loading_content"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class Idle:
    kind: ClassVar[ViewerState] = ViewerState.IDLE


@dataclass(frozen=True)
class LoadingMetadata:
    video_id: str
    kind: ClassVar[ViewerState] = ViewerState.LOADING_METADATA


@dataclass(frozen=True)
class NeedsPassword:
    video: Video
    error: Optional[str] = None
    kind: ClassVar[ViewerState] = ViewerState.NEEDS_PASSWORD


@dataclass(frozen=True)
class LoadingContent:
    video: Video
    progress: float = 0.0
    kind: ClassVar[ViewerState] = ViewerState.LOADING_CONTENT


@dataclass(frozen=True)
class Ready:
    video: Video
    handle: MediaHandle
    kind: ClassVar[ViewerState] = ViewerState.READY


@dataclass(frozen=True)
class Failed:
    error: str
    error_code: str
    video: Optional[Video] = None
    kind: ClassVar[ViewerState] = ViewerState.FAILED


SessionState = Union[Idle, LoadingMetadata, NeedsPassword, LoadingContent, Ready, Failed]

TRANSITIONS: dict[ViewerState, frozenset[ViewerState]] = {
    ViewerState.IDLE: frozenset({ViewerState.LOADING_METADATA}),
    ViewerState.LOADING_METADATA: frozenset(
        {ViewerState.NEEDS_PASSWORD, ViewerState.LOADING_CONTENT, ViewerState.FAILED}
    ),
    ViewerState.NEEDS_PASSWORD: frozenset(
        {ViewerState.NEEDS_PASSWORD, ViewerState.LOADING_CONTENT, ViewerState.IDLE}
    ),
    ViewerState.LOADING_CONTENT: frozenset(
        {ViewerState.LOADING_CONTENT, ViewerState.READY, ViewerState.FAILED}
    ),
    ViewerState.READY: frozenset({ViewerState.IDLE}),
    ViewerState.FAILED: frozenset({ViewerState.IDLE}),
}


class InvalidTransition(RuntimeError):
    """Raised when a session is driven along an edge the state graph lacks."""


def password_matches(video: Video, submitted: Optional[str]) -> bool:
    """Plaintext, case-sensitive comparison against the stored password."""
    if not video.requires_password:
        return True
    if submitted is None:
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), video.access_password.encode("utf-8"))


def check_download_access(video: Optional[Video], password: Optional[str]) -> Video:
    """Gate a download request; raises when the caller may not have the bytes."""
    if video is None:
        raise NotFound(MSG_NOT_FOUND)
    if not video.is_enabled:
        raise AuthorizationFailure(MSG_DISABLED)
    if not video.downloadable:
        raise AuthorizationFailure(MSG_NOT_DOWNLOADABLE)
    if not password_matches(video, password):
        raise AuthorizationFailure(MSG_WRONG_PASSWORD)
    return video


def download_filename(video: Video) -> str:
    return f"{video.title}.mp4"


class ViewerSession:
    def __init__(
        self,
        video_id: str,
        repository: VideoRepository,
        fetcher: ChunkedFetcher,
        registry: MediaHandleRegistry,
    ):
        self.video_id = video_id
        self.repository = repository
        self.fetcher = fetcher
        self.registry = registry
        self.state: SessionState = Idle()

    @property
    def kind(self) -> ViewerState:
        return self.state.kind

    def _transition(self, new_state: SessionState) -> None:
        current = self.state.kind
        if new_state.kind not in TRANSITIONS[current]:
            raise InvalidTransition(f"{current.value} -> {new_state.kind.value}")
        if new_state.kind != current:
            logger.info(
                "viewer.transition",
                video_id=self.video_id,
                from_state=current.value,
                to_state=new_state.kind.value,
            )
        self.state = new_state

    def open(self) -> SessionState:
        """Load the record, then either ask for a password or load content."""
        self._transition(LoadingMetadata(video_id=self.video_id))
        try:
            video = self.repository.select_by_id(self.video_id)
        except AppException as exc:
            self._transition(Failed(error=exc.message, error_code=exc.error_code))
            return self.state

        if video is None:
            missing = NotFound(MSG_NOT_FOUND)
            self._transition(Failed(error=missing.message, error_code=missing.error_code))
            return self.state
        if not video.is_enabled:
            failure = AuthorizationFailure(MSG_DISABLED)
            self._transition(Failed(error=failure.message, error_code=failure.error_code, video=video))
            return self.state
        if video.requires_password:
            self._transition(NeedsPassword(video=video))
            return self.state
        return self._load_content(video)

    def submit_password(self, password: str) -> SessionState:
        state = self.state
        if not isinstance(state, NeedsPassword):
            raise InvalidTransition(f"password submitted while {state.kind.value}")
        if not password_matches(state.video, password):
            logger.info("viewer.password_rejected", video_id=self.video_id)
            self._transition(NeedsPassword(video=state.video, error=MSG_WRONG_PASSWORD))
            return self.state
        return self._load_content(state.video)

    def reset(self) -> SessionState:
        """Release any handle and return to Idle so the user can start over."""
        self.release()
        self._transition(Idle())
        return self.state

    def release(self) -> None:
        if isinstance(self.state, Ready):
            self.registry.revoke(self.state.handle.handle_id)

    def _load_content(self, video: Video) -> SessionState:
        self._transition(LoadingContent(video=video))

        def on_progress(progress: FetchProgress) -> None:
            self._transition(LoadingContent(video=video, progress=progress.percent_complete))

        try:
            data = self.fetcher.fetch(video, on_progress=on_progress)
        except StorageReadFailure as exc:
            self._transition(
                Failed(
                    error=f"Video failed to load: {exc.message}",
                    error_code=exc.error_code,
                    video=video,
                )
            )
            return self.state

        handle = self.registry.create(
            data,
            content_type=video.content_type or "video/mp4",
            filename=download_filename(video),
        )
        self._transition(Ready(video=video, handle=handle))
        return self.state
