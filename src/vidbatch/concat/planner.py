from __future__ import annotations

# 本模块负责为 N 个分辨率/音轨各异的视频生成 ffmpeg filter_complex：
# 1) 每路视频等比缩放后居中补边到目标分辨率，统一 SAR/像素格式，时间戳归零；
# 2) 有音轨的统一重采样到相同采样率/声道布局；无音轨的按时长补一段静音；
# 3) 最后用 concat 滤镜按顺序合并为 1 路视频 + 1 路音频。
# 纯函数，不做任何 I/O，相同输入得到相同字符串。

from dataclasses import dataclass
from typing import List, Sequence

from vidbatch.core.config import ConcatConfig
from vidbatch.core.datamodels import VideoDescriptor
from vidbatch.core.errors import EmptyConcatInput, IncompatibleVideos, MissingDurationForSilence

VIDEO_OUTPUT_LABEL = "outv"
AUDIO_OUTPUT_LABEL = "outa"


@dataclass(slots=True)
class InputFragments:
    """单路输入的滤镜片段。

    - video: 缩放/补边链，输出标签 [v{idx}]。
    - audio: 重采样链或静音合成链，输出标签 [a{idx}]。
    - synthesized_audio: 音轨是否为补齐的静音。
    """

    index: int
    video: str
    audio: str
    synthesized_audio: bool

    @property
    def video_label(self) -> str:
        return f"v{self.index}"

    @property
    def audio_label(self) -> str:
        return f"a{self.index}"


@dataclass(slots=True)
class ConcatPlan:
    """完整拼接计划：按输入顺序的片段 + 最终 concat 片段。"""

    inputs: List[InputFragments]
    merge: str
    width: int
    height: int

    @property
    def fragments(self) -> List[str]:
        parts: List[str] = []
        for item in self.inputs:
            parts.append(item.video)
            parts.append(item.audio)
        parts.append(self.merge)
        return parts

    def to_filter_string(self) -> str:
        return ";".join(self.fragments)

    def __str__(self) -> str:
        return self.to_filter_string()


def video_fragment(index: int, width: int, height: int, pixel_format: str = "yuv420p") -> str:
    return (
        f"[{index}:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,format={pixel_format},"
        f"setpts=PTS-STARTPTS[v{index}]"
    )


def audio_fragment(index: int, sample_rate: int = 48000, channel_layout: str = "stereo") -> str:
    return (
        f"[{index}:a]aresample=async=1:first_pts=0,"
        f"aformat=sample_rates={sample_rate}:channel_layouts={channel_layout},"
        f"asetpts=PTS-STARTPTS[a{index}]"
    )


def silence_fragment(index: int, duration: float, sample_rate: int = 48000, channel_layout: str = "stereo") -> str:
    return (
        f"anullsrc=channel_layout={channel_layout}:sample_rate={sample_rate},"
        f"atrim=duration={duration:.6f},asetpts=PTS-STARTPTS[a{index}]"
    )


def merge_fragment(count: int) -> str:
    inputs = "".join(f"[v{idx}][a{idx}]" for idx in range(count))
    return f"{inputs}concat=n={count}:v=1:a=1[{VIDEO_OUTPUT_LABEL}][{AUDIO_OUTPUT_LABEL}]"


def plan_concat(
    descriptors: Sequence[VideoDescriptor],
    target_width: int,
    target_height: int,
    *,
    sample_rate: int = 48000,
    channel_layout: str = "stereo",
    pixel_format: str = "yuv420p",
) -> ConcatPlan:
    """生成结构化的 ConcatPlan；无音轨且时长非正的输入抛 MissingDurationForSilence。"""

    if not descriptors:
        raise EmptyConcatInput()
    if target_width <= 0 or target_height <= 0:
        raise ValueError(f"目标分辨率无效: {target_width}x{target_height}")

    inputs: List[InputFragments] = []
    for idx, info in enumerate(descriptors):
        video = video_fragment(idx, target_width, target_height, pixel_format)
        if info.has_audio:
            audio = audio_fragment(idx, sample_rate, channel_layout)
        else:
            if info.duration <= 0:
                raise MissingDurationForSilence(idx + 1, info.name, info.duration)
            audio = silence_fragment(idx, info.duration, sample_rate, channel_layout)
        inputs.append(InputFragments(index=idx, video=video, audio=audio, synthesized_audio=not info.has_audio))

    return ConcatPlan(
        inputs=inputs,
        merge=merge_fragment(len(descriptors)),
        width=target_width,
        height=target_height,
    )


def build_concat_plan(
    descriptors: Sequence[VideoDescriptor],
    target_width: int,
    target_height: int,
    *,
    sample_rate: int = 48000,
    channel_layout: str = "stereo",
    pixel_format: str = "yuv420p",
) -> str:
    """返回交给 ffmpeg -filter_complex 的完整滤镜字符串。"""

    return plan_concat(
        descriptors,
        target_width,
        target_height,
        sample_rate=sample_rate,
        channel_layout=channel_layout,
        pixel_format=pixel_format,
    ).to_filter_string()


def plan_for_first_resolution(descriptors: Sequence[VideoDescriptor], config: ConcatConfig) -> ConcatPlan:
    """约定以第一个视频的分辨率作为目标分辨率。"""

    if not descriptors:
        raise EmptyConcatInput()
    first = descriptors[0]
    return plan_concat(
        descriptors,
        first.width,
        first.height,
        sample_rate=config.sample_rate,
        channel_layout=config.channel_layout,
        pixel_format=config.pixel_format,
    )


def check_compatibility(descriptors: Sequence[VideoDescriptor]) -> List[str]:
    """列出无法参与拼接的问题：分辨率解析失败或时长非正。"""

    issues: List[str] = []
    for info in descriptors:
        if info.width <= 0 or info.height <= 0:
            issues.append(f"{info.name}: 无法解析分辨率")
        if info.duration <= 0:
            issues.append(f"{info.name}: 无法解析时长")
    return issues


def ensure_compatible(descriptors: Sequence[VideoDescriptor]) -> None:
    issues = check_compatibility(descriptors)
    if issues:
        raise IncompatibleVideos(issues)
