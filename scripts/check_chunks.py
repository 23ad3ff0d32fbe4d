"""
Check a chunked video's manifest against object storage.
Run with: python -m scripts.check_chunks <video-id>
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vidshare.db.session import SessionLocal
from vidshare.services.repository import VideoRepository
from vidshare.services.storage import ObjectStorage, build_storage_service


def check_video(video_id: str, repository: VideoRepository, storage: ObjectStorage) -> int:
    video = repository.select_by_id(video_id)
    if video is None:
        print(f"Video {video_id} not found")
        return 1

    chunk_paths = video.chunk_paths or []
    print("Video info:")
    print(f"  Title: {video.title}")
    print(f"  Is chunked: {video.is_chunked}")
    print(f"  Chunk count: {video.chunk_count}")
    print(f"  Actual chunk_paths length: {len(chunk_paths)}")
    print(f"  File size: {video.file_size}")

    print("\nChunk paths:")
    for i, path in enumerate(chunk_paths):
        print(f"  {i + 1}. {path}")

    print("\nChecking chunk existence in storage...")
    found = 0
    missing = 0
    for i, path in enumerate(chunk_paths):
        if path in storage.list(prefix=path):
            found += 1
        else:
            print(f"  ❌ Chunk {i + 1} MISSING: {path}")
            missing += 1

    print(f"\nSummary: {found} found, {missing} missing")
    if video.is_chunked and video.chunk_count != len(chunk_paths):
        print("⚠️  chunk_count does not match the manifest length")
        return 1
    return 1 if missing else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Verify every part of a chunked video exists in storage")
    parser.add_argument("video_id", help="ID of the video record to check")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        return check_video(args.video_id, VideoRepository(db), build_storage_service())
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
