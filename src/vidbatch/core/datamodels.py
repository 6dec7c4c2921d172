"""核心数据结构定义：帧、场景片段、视频描述。"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Union

import numpy as np
from numpy.typing import NDArray

# 帧图片句柄：磁盘上的缩略图路径，或已解码的像素数组
ImageHandle = Union[str, Path, NDArray[np.uint8]]


@dataclass(slots=True)
class Frame:
    """单帧信息：帧序号、归一化后的时间戳（秒）以及图片句柄。"""

    index: int
    timestamp: float
    image: ImageHandle


@dataclass(slots=True, frozen=True)
class SceneSegment:
    """场景片段，帧区间为闭区间 [start_frame, end_frame]。"""

    start_frame: int
    end_frame: int

    @property
    def frame_count(self) -> int:
        return self.end_frame - self.start_frame + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneSegment":
        return cls(start_frame=int(data["start_frame"]), end_frame=int(data["end_frame"]))


@dataclass(slots=True, frozen=True)
class VideoDescriptor:
    """ffprobe 探测结果，仅用于规划，核心逻辑从不修改。"""

    name: str
    codec: str
    width: int
    height: int
    fps: float
    duration: float
    has_audio: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoDescriptor":
        return cls(
            name=str(data["name"]),
            codec=str(data.get("codec", "unknown")),
            width=int(data["width"]),
            height=int(data["height"]),
            fps=float(data.get("fps", 0.0)),
            duration=float(data.get("duration", 0.0)),
            has_audio=bool(data.get("has_audio", False)),
        )


@dataclass(slots=True, frozen=True)
class VideoMetadata:
    """单个视频流的元数据，切分流程用来换算帧数与时长。"""

    width: int
    height: int
    fps: float
    duration: float
    total_frames: int
    codec: str


def normalize_timestamps(timestamps: Iterable[float]) -> List[float]:
    """时间戳归一化：负数/非有限/倒退的值钳到上一个有效值，并整体平移使首帧为 0。"""

    normalized: List[float] = []
    last = 0.0
    for raw in timestamps:
        value = float(raw)
        if not math.isfinite(value) or value < 0.0 or value < last:
            value = last
        normalized.append(value)
        last = value
    if normalized and normalized[0] > 0.0:
        first = normalized[0]
        normalized = [max(0.0, ts - first) for ts in normalized]
    return normalized


def frames_from_images(images: Sequence[ImageHandle], timestamps: Sequence[float]) -> List[Frame]:
    """将图片与时间戳配对成 Frame 列表，长度取两者较小值。"""

    limit = min(len(images), len(timestamps))
    normalized = normalize_timestamps(timestamps[:limit])
    return [Frame(index=idx, timestamp=normalized[idx], image=images[idx]) for idx in range(limit)]
