"""目录扫描：按最大递归层数收集视频文件。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence

from vidbatch.core.errors import VideoDirectoryError

DEFAULT_EXTENSIONS = (".mp4",)


def collect_videos(
    directory: str | Path,
    max_depth: int = 0,
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
) -> List[Path]:
    """收集 directory 下的视频，max_depth=0 只看顶层，1 再深入一层子目录，依此类推。

    结果按路径排序；目录不存在、不是目录或没有匹配文件时抛 VideoDirectoryError。
    """

    root = Path(directory)
    if not root.exists():
        raise VideoDirectoryError(f"目录不存在: {root}")
    if not root.is_dir():
        raise VideoDirectoryError(f"路径不是目录: {root}")
    if max_depth < 0:
        raise ValueError(f"max_depth 不能为负: {max_depth}")

    suffixes = {ext.lower() for ext in extensions}
    videos = sorted(_walk(root, max_depth, suffixes))
    if not videos:
        raise VideoDirectoryError(f"在目录中未找到视频文件 ({', '.join(sorted(suffixes))}): {root}")
    return videos


def _walk(directory: Path, depth_left: int, suffixes: set[str]) -> Iterable[Path]:
    try:
        entries = list(directory.iterdir())
    except PermissionError:
        return
    for entry in entries:
        if entry.is_file():
            if entry.suffix.lower() in suffixes:
                yield entry
        elif entry.is_dir() and depth_left > 0:
            yield from _walk(entry, depth_left - 1, suffixes)
