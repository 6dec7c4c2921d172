"""目录扫描测试。"""

from pathlib import Path

import pytest

from vidbatch.core.errors import VideoDirectoryError
from vidbatch.pool import collect_videos


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


@pytest.fixture()
def library(tmp_path: Path) -> Path:
    _touch(tmp_path / "a.mp4")
    _touch(tmp_path / "B.MP4")
    _touch(tmp_path / "notes.txt")
    _touch(tmp_path / "level1" / "c.mp4")
    _touch(tmp_path / "level1" / "level2" / "d.mp4")
    return tmp_path


def test_depth_zero_only_top_level(library: Path) -> None:
    videos = collect_videos(library, 0)

    assert [video.name for video in videos] == ["B.MP4", "a.mp4"]


def test_depth_limits_recursion(library: Path) -> None:
    assert {video.name for video in collect_videos(library, 1)} == {"a.mp4", "B.MP4", "c.mp4"}
    assert {video.name for video in collect_videos(library, 5)} == {"a.mp4", "B.MP4", "c.mp4", "d.mp4"}


def test_custom_extensions(library: Path) -> None:
    _touch(library / "e.mov")

    videos = collect_videos(library, 0, extensions=[".mov"])

    assert [video.name for video in videos] == ["e.mov"]


def test_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(VideoDirectoryError):
        collect_videos(tmp_path / "nope")


def test_file_is_not_a_directory(library: Path) -> None:
    with pytest.raises(VideoDirectoryError):
        collect_videos(library / "a.mp4")


def test_no_matching_videos(tmp_path: Path) -> None:
    _touch(tmp_path / "readme.md")

    with pytest.raises(VideoDirectoryError):
        collect_videos(tmp_path)


def test_negative_depth(library: Path) -> None:
    with pytest.raises(ValueError):
        collect_videos(library, -1)
