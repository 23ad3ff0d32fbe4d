"""
Tests for the chunked uploader.

Covers the threshold policy, manifest shape, progress telemetry and the
rollback guarantees: a failed part or a failed insert leaves no stored
objects and no database row behind.
"""

import io
import re

import pytest
from hypothesis import given, strategies as st, settings

from vidshare.models import Video
from vidshare.services.errors import PersistenceFailure, StorageWriteFailure
from vidshare.services.repository import VideoRepository
from vidshare.services.uploader import ChunkedUploader

from conftest import MIB, FakeClock, FakeStorage, create_test_session


class FailingInsertRepository(VideoRepository):
    def insert(self, video: Video) -> str:
        raise PersistenceFailure("insert rejected")


def _upload(uploader: ChunkedUploader, data: bytes, filename: str = "lecture.mp4", **kwargs) -> Video:
    return uploader.upload(
        io.BytesIO(data),
        total_size=len(data),
        filename=filename,
        owner_id="user-1",
        **kwargs,
    )


def test_small_file_uses_single_shot_upload(uploader, storage, db_session):
    data = b"\x01" * (12 * MIB)

    video = _upload(uploader, data)

    assert len(storage.upload_calls) == 1
    assert list(storage.objects) == [video.file_path]
    assert storage.objects[video.file_path] == data
    assert db_session.query(Video).count() == 1
    assert video.is_chunked is False
    assert video.chunk_count is None
    assert video.chunk_paths is None
    assert video.file_size == len(data)
    assert video.title == "lecture"


def test_file_at_threshold_is_not_chunked(uploader, storage):
    video = _upload(uploader, b"\x00" * (40 * MIB))

    assert video.is_chunked is False
    assert len(storage.upload_calls) == 1


def test_large_file_is_uploaded_in_ten_parts(uploader, storage, db_session):
    data = bytes(range(256)) * (50 * MIB // 256)

    video = _upload(uploader, data)

    assert video.is_chunked is True
    assert video.chunk_count == 10
    assert len(video.chunk_paths) == 10
    assert storage.upload_calls == video.chunk_paths
    assert db_session.query(Video).count() == 1
    assert b"".join(storage.objects[k] for k in video.chunk_paths) == data


def test_manifest_keys_follow_base_key(uploader):
    video = _upload(uploader, b"\x02" * (41 * MIB))

    assert video.chunk_count == len(video.chunk_paths) == 9
    for index, key in enumerate(video.chunk_paths):
        assert key == f"{video.file_path}.part{index}"
    assert re.fullmatch(r"\d+-[0-9a-f]{6}\.mp4", video.file_path)


def test_content_type_defaults_to_generic_video(uploader, storage):
    video = _upload(uploader, b"\x03" * 10)

    assert video.content_type == "video/mp4"
    assert storage.content_types[video.file_path] == "video/mp4"


def test_title_keeps_original_unicode_name(uploader):
    video = _upload(uploader, b"\x03" * 10, filename="第一课 入门.webm", content_type="video/webm")

    assert video.title == "第一课 入门"
    assert video.file_path.endswith(".webm")
    assert video.content_type == "video/webm"


def test_progress_is_reported_after_every_part(storage, repository):
    clock = FakeClock(step=1.0)
    uploader = ChunkedUploader(storage, repository, chunk_threshold=10, chunk_size=4, clock=clock)
    updates = []

    _upload(uploader, b"x" * 12, on_progress=updates.append)

    # three parts plus the final completion report
    assert [u.percent_complete for u in updates] == [33, 67, 100, 100]
    assert [u.bytes_uploaded for u in updates[:3]] == [4, 8, 12]
    first = updates[0]
    assert first.total_bytes == 12
    assert first.bytes_per_second == pytest.approx(4.0)
    assert first.estimated_seconds_remaining == pytest.approx(2.0)
    assert updates[2].estimated_seconds_remaining == 0


@settings(max_examples=50, deadline=None)
@given(
    total_size=st.integers(min_value=11, max_value=200),
    data=st.data(),
)
def test_failed_part_rolls_back_every_uploaded_part(total_size: int, data):
    storage = FakeStorage()
    session = create_test_session()
    try:
        uploader = ChunkedUploader(
            storage, VideoRepository(session), chunk_threshold=10, chunk_size=7
        )
        total_parts = -(-total_size // 7)
        failing = data.draw(st.integers(min_value=0, max_value=total_parts - 1))
        storage.fail_upload_when = lambda key: key.endswith(f".part{failing}")

        with pytest.raises(StorageWriteFailure) as exc_info:
            _upload(uploader, b"z" * total_size)

        assert f"part {failing + 1}/{total_parts}" in exc_info.value.message
        # Property: nothing from this attempt survives in storage or the database
        assert storage.objects == {}
        assert len(storage.deleted) == failing
        assert session.query(Video).count() == 0
    finally:
        session.close()


def test_insert_failure_removes_all_parts(storage, db_session):
    uploader = ChunkedUploader(
        storage, FailingInsertRepository(db_session), chunk_threshold=10, chunk_size=4
    )

    with pytest.raises(PersistenceFailure) as exc_info:
        _upload(uploader, b"p" * 30)

    assert "Failed to save video info" in exc_info.value.message
    assert len(storage.upload_calls) == 8
    assert storage.objects == {}
    assert sorted(storage.deleted) == sorted(storage.upload_calls)


def test_single_shot_insert_failure_removes_object(storage, db_session):
    uploader = ChunkedUploader(storage, FailingInsertRepository(db_session))

    with pytest.raises(PersistenceFailure):
        _upload(uploader, b"s" * 100)

    assert storage.objects == {}
    assert storage.deleted == storage.upload_calls


def test_single_shot_write_failure_creates_no_record(storage, repository, db_session):
    storage.fail_upload_when = lambda key: True
    uploader = ChunkedUploader(storage, repository)

    with pytest.raises(StorageWriteFailure):
        _upload(uploader, b"s" * 100)

    assert db_session.query(Video).count() == 0
    assert storage.objects == {}


class UnmappedErrorStorage(FakeStorage):
    """Raises an error type the uploader has no specific handling for."""

    def upload(self, key: str, data: bytes, *, content_type: str, overwrite: bool = True) -> None:
        if key.endswith(".part2"):
            raise ConnectionResetError("socket closed")
        super().upload(key, data, content_type=content_type, overwrite=overwrite)


def test_unexpected_storage_error_rolls_back_parts(db_session):
    storage = UnmappedErrorStorage()
    uploader = ChunkedUploader(
        storage, VideoRepository(db_session), chunk_threshold=10, chunk_size=4
    )

    with pytest.raises(ConnectionResetError):
        _upload(uploader, b"q" * 20)

    assert storage.objects == {}
    assert len(storage.deleted) == 2
    assert db_session.query(Video).count() == 0


@pytest.mark.parametrize("size", [8, 20])
def test_failing_progress_callback_rolls_back(storage, db_session, size):
    uploader = ChunkedUploader(
        storage, VideoRepository(db_session), chunk_threshold=10, chunk_size=4
    )
    calls = []

    def on_progress(progress):
        calls.append(progress)
        if len(calls) == 1:
            raise RuntimeError("display went away")

    with pytest.raises(RuntimeError):
        _upload(uploader, b"r" * size, on_progress=on_progress)

    assert storage.upload_calls
    assert storage.objects == {}
    assert db_session.query(Video).count() == 0
