from scripts.check_chunks import check_video

from conftest import make_video


def _chunked(repository, storage, count=3, manifest_count=None):
    base = "1700000000000-abc123.mp4"
    paths = [f"{base}.part{i}" for i in range(count)]
    for key in paths:
        storage.objects[key] = b"x"
    video = make_video(
        repository,
        storage,
        b"",
        file_path=base,
        is_chunked=True,
        chunk_count=manifest_count if manifest_count is not None else count,
        chunk_paths=paths,
    )
    storage.objects.pop(base)
    return video


def test_all_parts_present(repository, storage, capsys):
    video = _chunked(repository, storage)

    assert check_video(video.id, repository, storage) == 0

    out = capsys.readouterr().out
    assert "Summary: 3 found, 0 missing" in out
    assert f"1. {video.chunk_paths[0]}" in out


def test_missing_part_is_reported(repository, storage, capsys):
    video = _chunked(repository, storage)
    storage.objects.pop(video.chunk_paths[1])

    assert check_video(video.id, repository, storage) == 1

    out = capsys.readouterr().out
    assert "Chunk 2 MISSING" in out
    assert "Summary: 2 found, 1 missing" in out


def test_count_mismatch_fails(repository, storage, capsys):
    video = _chunked(repository, storage, count=2, manifest_count=3)

    assert check_video(video.id, repository, storage) == 1
    assert "does not match" in capsys.readouterr().out


def test_unknown_video(repository, storage, capsys):
    assert check_video("nope", repository, storage) == 1
    assert "not found" in capsys.readouterr().out


def test_missing_part_not_masked_by_longer_keys(repository, storage, capsys):
    video = _chunked(repository, storage, count=11)
    storage.objects.pop(video.chunk_paths[1])

    assert check_video(video.id, repository, storage) == 1

    out = capsys.readouterr().out
    assert "Chunk 2 MISSING" in out
    assert "Summary: 10 found, 1 missing" in out
