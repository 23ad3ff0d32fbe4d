"""Pytest configuration and fixtures for backend tests."""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Callable, Iterable, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from vidshare.db.base import Base  # noqa: E402
from vidshare.models import Video  # noqa: E402
from vidshare.services.errors import StorageReadFailure, StorageWriteFailure  # noqa: E402
from vidshare.services.fetcher import ChunkedFetcher  # noqa: E402
from vidshare.services.media_handles import MediaHandleRegistry  # noqa: E402
from vidshare.services.repository import VideoRepository  # noqa: E402
from vidshare.services.uploader import ChunkedUploader  # noqa: E402

MIB = 1024 * 1024


class FakeStorage:
    """In-memory object store with failure injection."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.upload_calls: list[str] = []
        self.download_calls: list[str] = []
        self.deleted: list[str] = []
        self.fail_upload_when: Optional[Callable[[str], bool]] = None
        self.download_failures: dict[str, int] = {}
        self.fail_all_downloads = False

    def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = True) -> None:
        self.upload_calls.append(key)
        if self.fail_upload_when and self.fail_upload_when(key):
            raise StorageWriteFailure("simulated write rejection", details={"key": key})
        if not overwrite and key in self.objects:
            raise StorageWriteFailure(f"Object '{key}' already exists")
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type

    def download(self, key: str) -> bytes:
        self.download_calls.append(key)
        if self.fail_all_downloads:
            raise StorageReadFailure("simulated network error", details={"key": key})
        remaining = self.download_failures.get(key, 0)
        if remaining:
            self.download_failures[key] = remaining - 1
            raise StorageReadFailure("simulated transient error", details={"key": key})
        if key not in self.objects:
            raise StorageReadFailure("Object not found", details={"key": key})
        return self.objects[key]

    def delete(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.deleted.append(key)
            self.objects.pop(key, None)

    def list(self, prefix: str = "", search: Optional[str] = None) -> list[str]:
        names = [name for name in self.objects if name.startswith(prefix)]
        if search:
            names = [name for name in names if search in name]
        return names


class FakeClock:
    """Monotonic clock advancing a fixed step per reading."""

    def __init__(self, step: float = 1.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def create_test_session():
    """Create a session bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def make_video(repository: VideoRepository, storage: FakeStorage, data: bytes, **overrides) -> Video:
    """Insert a single-object video whose bytes live in ``storage``."""
    key = overrides.pop("file_path", "1700000000000-abc123.mp4")
    storage.objects[key] = data
    fields = dict(
        title="Sample",
        file_path=key,
        owner_id="user-1",
        content_type="video/mp4",
        file_size=len(data),
        is_chunked=False,
        is_enabled=True,
        downloadable=True,
    )
    fields.update(overrides)
    video = Video(**fields)
    repository.insert(video)
    return video


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    session = create_test_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repository(db_session):
    return VideoRepository(db_session)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def uploader(storage, repository, clock):
    return ChunkedUploader(storage, repository, clock=clock)


@pytest.fixture
def fetcher(storage, sleeps):
    return ChunkedFetcher(storage, sleep=sleeps)


@pytest.fixture
def registry():
    return MediaHandleRegistry()
