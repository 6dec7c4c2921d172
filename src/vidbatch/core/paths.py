"""路径工具：集中处理临时工作目录，方便未来迁移。"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path


WORK_ROOT_ENV_KEY = "VIDBATCH_WORK_ROOT"


def resolve_work_root(default: Path | None = None) -> Path:
    """根据环境变量或默认值确定抽帧/临时片段所在的工作目录。"""

    env_value = os.getenv(WORK_ROOT_ENV_KEY)
    if env_value:
        return Path(env_value).expanduser().resolve()
    if default is not None:
        return default.expanduser().resolve()
    return Path(tempfile.gettempdir()) / "vidbatch"


def video_scratch_dir(work_root: Path, video_path: str | Path, kind: str) -> Path:
    """每个视频独占一个按路径哈希命名的子目录，kind 区分 frames/segments。"""

    digest = hashlib.sha1(str(video_path).encode("utf-8")).hexdigest()[:16]
    return Path(work_root) / f"video_{digest}" / kind
