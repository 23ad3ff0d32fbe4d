from vidshare.models.video import Video

__all__ = [
    "Video",
]
