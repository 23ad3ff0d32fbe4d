from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from vidshare.core.config import Settings, get_settings
from vidshare.core.security import decode_access_token
from vidshare.db.session import SessionLocal
from vidshare.services.fetcher import ChunkedFetcher
from vidshare.services.media_handles import MediaHandleRegistry, get_media_registry
from vidshare.services.repository import VideoRepository
from vidshare.services.storage import ObjectStorage, build_storage_service
from vidshare.services.uploader import ChunkedUploader

# Tokens are issued by the external auth provider; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    sub = decode_access_token(token)
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return sub


def get_storage() -> ObjectStorage:
    return build_storage_service()


def get_registry() -> MediaHandleRegistry:
    return get_media_registry()


def get_repository(db: Session = Depends(get_db)) -> VideoRepository:
    return VideoRepository(db)


def get_uploader(
    storage: ObjectStorage = Depends(get_storage),
    repository: VideoRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ChunkedUploader:
    return ChunkedUploader.from_settings(storage, repository, settings)


def get_fetcher(
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> ChunkedFetcher:
    return ChunkedFetcher.from_settings(storage, settings)
