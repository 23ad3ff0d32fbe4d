"""
Tests for the viewer session state machine.

Property: with access_password "abc123", submitting "abc123" moves the session
to content loading; any other string keeps it in needs_password with an error
and performs no storage read.
"""

import pytest
from hypothesis import given, strategies as st, settings, assume

from vidshare.services.errors import AuthorizationFailure, NotFound
from vidshare.services.fetcher import ChunkedFetcher
from vidshare.services.media_handles import MediaHandleRegistry
from vidshare.services.repository import VideoRepository
from vidshare.services.viewer import (
    MSG_DISABLED,
    MSG_NOT_FOUND,
    MSG_WRONG_PASSWORD,
    Failed,
    InvalidTransition,
    NeedsPassword,
    Ready,
    ViewerSession,
    ViewerState,
    check_download_access,
)

from conftest import FakeStorage, SleepRecorder, create_test_session, make_video


def _session(video_id, repository, storage, registry=None):
    fetcher = ChunkedFetcher(storage, sleep=SleepRecorder())
    return ViewerSession(video_id, repository, fetcher, registry if registry is not None else MediaHandleRegistry())


def test_public_video_goes_straight_to_ready(repository, storage, registry):
    video = make_video(repository, storage, b"movie-bytes")
    session = _session(video.id, repository, storage, registry)

    assert session.kind is ViewerState.IDLE
    state = session.open()

    assert isinstance(state, Ready)
    assert state.handle.data == b"movie-bytes"
    assert state.handle.content_type == "video/mp4"
    assert registry.get(state.handle.handle_id) is state.handle


def test_correct_password_loads_content(repository, storage):
    video = make_video(repository, storage, b"secret-movie", access_password="abc123")
    session = _session(video.id, repository, storage)

    assert session.open().kind is ViewerState.NEEDS_PASSWORD
    assert storage.download_calls == []

    state = session.submit_password("abc123")

    assert isinstance(state, Ready)
    assert state.handle.data == b"secret-movie"


@pytest.mark.parametrize("attempt", ["ABC123", "wrong", "", "abc123 "])
def test_wrong_password_stays_locked(repository, storage, attempt):
    video = make_video(repository, storage, b"secret-movie", access_password="abc123")
    session = _session(video.id, repository, storage)
    session.open()

    state = session.submit_password(attempt)

    assert isinstance(state, NeedsPassword)
    assert state.error == MSG_WRONG_PASSWORD
    assert storage.download_calls == []


PASSWORD_CHARS = st.sampled_from(list("abcABC123 !#é密码"))


@settings(max_examples=100, deadline=None)
@given(
    password=st.text(PASSWORD_CHARS, min_size=1, max_size=30),
    attempt=st.text(PASSWORD_CHARS, max_size=30),
)
def test_only_exact_password_unlocks(password: str, attempt: str):
    assume(password != attempt)
    storage = FakeStorage()
    db = create_test_session()
    try:
        repository = VideoRepository(db)
        video = make_video(repository, storage, b"data", access_password=password)
        session = _session(video.id, repository, storage)
        session.open()

        assert session.submit_password(attempt).kind is ViewerState.NEEDS_PASSWORD
        assert storage.download_calls == []
        assert session.submit_password(password).kind is ViewerState.READY
    finally:
        db.close()


def test_missing_video_fails(repository, storage):
    session = _session("does-not-exist", repository, storage)

    state = session.open()

    assert isinstance(state, Failed)
    assert state.error == MSG_NOT_FOUND
    assert state.error_code == "NOT_FOUND"


def test_disabled_video_fails_without_reading_storage(repository, storage):
    video = make_video(repository, storage, b"data", is_enabled=False, access_password="pw")
    session = _session(video.id, repository, storage)

    state = session.open()

    assert isinstance(state, Failed)
    assert state.error == MSG_DISABLED
    assert state.error_code == "AUTHORIZATION_FAILED"
    assert storage.download_calls == []


def test_fetch_failure_is_terminal_until_reset(repository, storage):
    video = make_video(repository, storage, b"data")
    storage.fail_all_downloads = True
    session = _session(video.id, repository, storage)

    state = session.open()
    assert isinstance(state, Failed)
    assert state.error.startswith("Video failed to load: Failed after 3 attempts")

    with pytest.raises(InvalidTransition):
        session.open()

    storage.fail_all_downloads = False
    session.reset()
    assert session.kind is ViewerState.IDLE
    assert session.open().kind is ViewerState.READY


def test_reset_releases_handle(repository, storage, registry):
    video = make_video(repository, storage, b"data")
    session = _session(video.id, repository, storage, registry)
    session.open()
    assert len(registry) == 1

    session.reset()

    assert len(registry) == 0
    assert session.kind is ViewerState.IDLE


def test_password_submission_outside_prompt_is_rejected(repository, storage):
    video = make_video(repository, storage, b"data")
    session = _session(video.id, repository, storage)

    with pytest.raises(InvalidTransition):
        session.submit_password("anything")


def test_each_session_reconstructs_independently(repository, storage, registry):
    video = make_video(repository, storage, b"data")

    first = _session(video.id, repository, storage, registry).open()
    second = _session(video.id, repository, storage, registry).open()

    assert first.handle.handle_id != second.handle.handle_id
    assert len(storage.download_calls) == 2


def test_download_access_checks(repository, storage):
    video = make_video(repository, storage, b"data", access_password="pw")

    assert check_download_access(video, "pw") is video
    with pytest.raises(AuthorizationFailure):
        check_download_access(video, "PW")
    with pytest.raises(NotFound):
        check_download_access(None, "pw")

    video.downloadable = False
    with pytest.raises(AuthorizationFailure):
        check_download_access(video, "pw")
