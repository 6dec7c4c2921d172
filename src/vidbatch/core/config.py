"""配置加载工具，集中管理仓内/环境参数。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Mapping, MutableMapping, Optional, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .paths import WORK_ROOT_ENV_KEY, resolve_work_root

CONFIG_ENV_KEY = "VIDBATCH_CONFIG_PATH"


class SegmentConfig(BaseModel):
    """场景切分参数：相似度算法、阈值、最短片段时长与掐头去尾。"""

    algorithm: Literal["histogram", "ssim", "frame_diff"] = "histogram"
    threshold: float = Field(0.85, ge=0.0, le=1.0)
    min_segment_seconds: float = Field(1.0, ge=0.0)
    trim_first: bool = False
    trim_last: bool = False
    strategy: Literal["threshold", "backoff"] = "threshold"
    backoff_window_seconds: float = Field(10.0, gt=0.0)
    backoff_base: float = Field(1.5, gt=1.0)
    workers: Optional[int] = Field(None, ge=1)
    progress_every: int = Field(100, ge=1)
    thumbnail_width: int = Field(320, gt=0)


class PoolConfig(BaseModel):
    """随机抽取视频池参数。"""

    max_depth: int = Field(0, ge=0)
    extensions: List[str] = Field(default_factory=lambda: [".mp4"])
    seed: Optional[int] = None

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("extensions 不能为空")
        return normalized


class ConcatConfig(BaseModel):
    """拼接滤镜的统一音视频格式。"""

    sample_rate: int = Field(48000, gt=0)
    channel_layout: str = "stereo"
    pixel_format: str = "yuv420p"


class ExportConfig(BaseModel):
    """导出阶段编码参数，切片与拼接共用。"""

    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    segment_crf: int = 18
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


class PipelineConfig(BaseModel):
    """聚合各阶段配置，并包含共享路径。"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    segment: SegmentConfig = Field(default_factory=SegmentConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    concat: ConcatConfig = Field(default_factory=ConcatConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    work_root: Path = Field(default_factory=resolve_work_root)
    raw: Dict[str, Any] = Field(default_factory=dict, description="原始配置字典，便于调试。")

    def model_post_init(self, __context: Any) -> None:  # type: ignore[override]
        # 保留原始配置便于后续 diff/日志输出
        if not self.raw:
            self.raw = self.to_raw_dict()

    def to_raw_dict(self) -> Dict[str, Any]:
        """导出基础 dict，供日志使用。"""

        return {
            "segment": self.segment.model_dump(),
            "pool": self.pool.model_dump(),
            "concat": self.concat.model_dump(),
            "export": self.export.model_dump(),
            "work_root": str(self.work_root),
        }


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[3] / "configs" / "baseline.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"配置文件 {path} 内容需为字典")
        return data


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


ENV_OVERRIDE_MAP: Dict[str, Tuple[Sequence[str], Callable[[str], Any]]] = {
    "VIDBATCH_SEGMENT_ALGORITHM": (("segment", "algorithm"), str),
    "VIDBATCH_SEGMENT_THRESHOLD": (("segment", "threshold"), float),
    "VIDBATCH_SEGMENT_MIN_SECONDS": (("segment", "min_segment_seconds"), float),
    "VIDBATCH_SEGMENT_STRATEGY": (("segment", "strategy"), str),
    "VIDBATCH_SEGMENT_TRIM_FIRST": (("segment", "trim_first"), _parse_bool),
    "VIDBATCH_SEGMENT_TRIM_LAST": (("segment", "trim_last"), _parse_bool),
    "VIDBATCH_POOL_MAX_DEPTH": (("pool", "max_depth"), int),
    "VIDBATCH_POOL_SEED": (("pool", "seed"), int),
}


def _apply_env_overrides(data: MutableMapping[str, Any], env: Mapping[str, str]) -> None:
    for env_key, (path, caster) in ENV_OVERRIDE_MAP.items():
        if env_key in env:
            _set_nested_value(data, path, caster(env[env_key]))


def _set_nested_value(target: MutableMapping[str, Any], path: Sequence[str], value: Any) -> None:
    cursor: MutableMapping[str, Any] = target
    *parents, last = path
    for key in parents:
        if key not in cursor or not isinstance(cursor[key], MutableMapping):
            cursor[key] = {}
        cursor = cursor[key]  # type: ignore[assignment]
    cursor[last] = value


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """加载配置：优先显式路径，其次环境变量，最后回退默认 baseline。"""

    env_map = env if env is not None else os.environ
    config_path = path or env_map.get(CONFIG_ENV_KEY)
    target_path = Path(config_path).expanduser() if config_path else _default_config_path()
    data = _load_yaml(target_path)
    _apply_env_overrides(data, env_map)

    work_override = env_map.get(WORK_ROOT_ENV_KEY)
    if work_override:
        data["work_root"] = str(Path(work_override).expanduser())

    cfg = PipelineConfig.model_validate({**data, "raw": data})
    return cfg
