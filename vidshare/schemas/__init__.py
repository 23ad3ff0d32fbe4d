from vidshare.schemas.video import (
    PublicVideoOut,
    VideoOut,
    VideoSettingsUpdate,
    WatchSessionOut,
    WatchSessionRequest,
)

__all__ = [
    "PublicVideoOut",
    "VideoOut",
    "VideoSettingsUpdate",
    "WatchSessionOut",
    "WatchSessionRequest",
]
