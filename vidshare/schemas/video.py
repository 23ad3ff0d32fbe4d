from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VideoOut(BaseModel):
    id: str
    title: str
    file_path: str
    content_type: str
    file_size: int
    is_chunked: bool
    chunk_count: Optional[int] = None
    chunk_paths: Optional[List[str]] = None
    access_password: Optional[str] = None
    is_enabled: bool
    downloadable: bool
    created_at: datetime
    updated_at: datetime
    share_link: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class VideoSettingsUpdate(BaseModel):
    """Settings editable from the dashboard. Storage keys are not part of it."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    access_password: Optional[str] = None
    is_enabled: Optional[bool] = None
    downloadable: Optional[bool] = None


class PublicVideoOut(BaseModel):
    """What an anonymous viewer may learn about a video before unlocking it."""
    id: str
    title: str
    is_enabled: bool
    requires_password: bool
    downloadable: bool
    is_chunked: bool
    file_size: int

    model_config = ConfigDict(from_attributes=True)


class WatchSessionRequest(BaseModel):
    password: Optional[str] = None


class WatchSessionOut(BaseModel):
    state: str
    video: Optional[PublicVideoOut] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    handle: Optional[str] = None
    media_url: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    progress: float = 0.0
