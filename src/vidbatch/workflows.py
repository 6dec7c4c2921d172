"""Batch workflows: scene splitting, manual cuts, ending replacement and random pool concatenation.

These glue the pure planners (segment / pool / concat) to the media
collaborators (ffprobe, frame extraction, ffmpeg). Failures propagate as
``VidBatchError`` subclasses; progress is reported best-effort.
"""

from __future__ import annotations

import random
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from vidbatch.concat import ensure_compatible, plan_for_first_resolution
from vidbatch.core import Frame, PipelineConfig, ProgressSink, SceneSegment, get_logger, notify
from vidbatch.core.errors import VideoDirectoryError
from vidbatch.core.logging_utils import scaled_sink
from vidbatch.core.paths import video_scratch_dir
from vidbatch.media.executor import MediaExecutor, segment_time_ranges, split_outputs
from vidbatch.media.frames import extract_frames, read_stream_frames
from vidbatch.media.probe import probe_frame_timestamps, probe_metadata, probe_video
from vidbatch.pool import SamplingPoolManager, collect_videos
from vidbatch.segment import SegmentationStrategy, SegmentPlan, analyze_with_config

logger = get_logger(__name__)

# Pools live for the whole process so repeated runs keep drawing without replacement.
default_pool_manager = SamplingPoolManager()


@dataclass(slots=True)
class SplitResult:
    video: Path
    segments: List[SceneSegment]
    outputs: List[Path]
    original_count: int


@dataclass(slots=True)
class DrawRecord:
    run_index: int
    requested: int
    videos: List[Path]
    refilled: bool
    remaining: int


@dataclass(slots=True)
class ConcatBatchResult:
    outputs: List[Path] = field(default_factory=list)
    draws: List[DrawRecord] = field(default_factory=list)


def load_frames(video_path: Path, config: PipelineConfig) -> List[Frame]:
    """Backoff scans decode the pixel stream directly; threshold scans use extracted thumbnails."""

    width = config.segment.thumbnail_width
    if SegmentationStrategy.parse(config.segment.strategy) is SegmentationStrategy.BACKOFF:
        frames, _ = read_stream_frames(video_path, width=width)
        return frames
    return extract_frames(video_path, config.work_root, width=width)


def _plan_video(
    video_path: Path,
    config: PipelineConfig,
    *,
    progress: Optional[ProgressSink],
    analysis_range: tuple[float, float],
    trim_first: Optional[bool] = None,
    trim_last: Optional[bool] = None,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
) -> tuple[SegmentPlan, List[float], float]:
    metadata = probe_metadata(video_path)
    notify(progress, "正在提取视频帧...", 0)
    frames = load_frames(video_path, config)
    notify(progress, "正在分析帧相似度...", analysis_range[0])
    plan = analyze_with_config(
        frames,
        config.segment,
        fps=metadata.fps,
        shuffle=shuffle,
        rng=rng,
        progress=scaled_sink(progress, *analysis_range),
        trim_first=trim_first,
        trim_last=trim_last,
    )
    return plan, [frame.timestamp for frame in frames], metadata.duration


def auto_split_video(
    video_path: str | Path,
    output_dir: str | Path,
    config: PipelineConfig,
    *,
    trim_first: Optional[bool] = None,
    trim_last: Optional[bool] = None,
    progress: Optional[ProgressSink] = None,
    executor: Optional[MediaExecutor] = None,
) -> SplitResult:
    """Split one video at detected scene changes into <output_dir>/<stem>/<stem>_<n>.mp4."""

    source = Path(video_path)
    executor = executor or MediaExecutor(config.export)
    plan, timestamps, duration = _plan_video(
        source,
        config,
        progress=progress,
        analysis_range=(10, 70),
        trim_first=trim_first,
        trim_last=trim_last,
    )
    notify(progress, f"识别到 {plan.original_count} 个片段，过滤后输出 {len(plan.segments)} 个", 70)
    logger.info("%s: %d segments detected, %d kept", source.name, plan.original_count, len(plan.segments))

    outputs = _cut_all(source, plan.segments, timestamps, duration, Path(output_dir), executor, progress, start=70)
    return SplitResult(video=source, segments=plan.segments, outputs=outputs, original_count=plan.original_count)


def _cut_all(
    source: Path,
    segments: Sequence[SceneSegment],
    timestamps: Sequence[float],
    duration: float,
    output_dir: Path,
    executor: MediaExecutor,
    progress: Optional[ProgressSink],
    *,
    start: float,
) -> List[Path]:
    ranges = segment_time_ranges(segments, timestamps, duration)
    targets = split_outputs(output_dir, source.stem, len(ranges))
    outputs: List[Path] = []
    for (number, target), time_range in zip(targets, ranges):
        notify(progress, f"正在生成片段 {number}/{len(ranges)}", start + (100 - start) * (number - 1) / len(ranges))
        outputs.append(executor.cut_segment(source, target, time_range))
    notify(progress, "完成", 100)
    return outputs


def cut_segments(
    video_path: str | Path,
    segments: Sequence[SceneSegment],
    output_dir: str | Path,
    config: PipelineConfig,
    *,
    progress: Optional[ProgressSink] = None,
    executor: Optional[MediaExecutor] = None,
) -> SplitResult:
    """Cut caller-chosen frame ranges (e.g. an edited detection result) without re-running detection.

    Frame numbers index the video's own frame timestamps, so ranges come out
    frame-accurate. Any invalid range aborts before ffmpeg runs.
    """

    if not segments:
        raise ValueError("没有需要生成的片段")
    source = Path(video_path)
    executor = executor or MediaExecutor(config.export)
    notify(progress, "正在读取帧时间戳...", 0)
    metadata = probe_metadata(source)
    timestamps = probe_frame_timestamps(source)
    outputs = _cut_all(source, segments, timestamps, metadata.duration, Path(output_dir), executor, progress, start=10)
    logger.info("%s: cut %d caller-supplied segments", source.name, len(outputs))
    return SplitResult(video=source, segments=list(segments), outputs=outputs, original_count=len(segments))


def _require_file(path: str | Path, label: str) -> Path:
    target = Path(path)
    if not target.is_file():
        raise VideoDirectoryError(f"{label}不存在: {target}")
    return target


def repurpose_ending(
    video_path: str | Path,
    output_dir: str | Path,
    config: PipelineConfig,
    *,
    new_ending: Optional[str | Path] = None,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
    progress: Optional[ProgressSink] = None,
    executor: Optional[MediaExecutor] = None,
) -> Path:
    """Drop the last detected scene, optionally shuffle the rest, append a new ending and re-merge."""

    source = Path(video_path)
    ending = _require_file(new_ending, "新结尾视频") if new_ending else None
    executor = executor or MediaExecutor(config.export)
    plan, timestamps, duration = _plan_video(
        source,
        config,
        progress=progress,
        analysis_range=(10, 60),
        trim_first=False,
        trim_last=True,
        shuffle=shuffle,
        rng=rng,
    )
    notify(
        progress,
        f"识别到 {plan.original_count} 个片段，移除最后一个后剩余 {len(plan.segments)} 个",
        60,
    )

    temp_dir = video_scratch_dir(config.work_root, source, "segments")
    if temp_dir.exists():
        shutil.rmtree(temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    try:
        ranges = segment_time_ranges(plan.segments, timestamps, duration)
        pieces: List[Path] = []
        for number, time_range in enumerate(ranges, start=1):
            notify(progress, f"正在生成临时片段 {number}/{len(ranges)}", 60 + 20 * number / len(ranges))
            pieces.append(executor.cut_segment(source, temp_dir / f"segment_{number}.mp4", time_range))
        if ending is not None:
            pieces.append(ending)

        notify(progress, "正在检测视频兼容性...", 80)
        output = Path(output_dir) / f"{source.stem}_processed.mp4"
        _merge(pieces, output, config, executor)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    notify(progress, "完成", 100)
    logger.info("%s: wrote %s from %d segments", source.name, output, len(plan.segments))
    return output


def _merge(videos: Sequence[Path], output: Path, config: PipelineConfig, executor: MediaExecutor) -> Path:
    descriptors = [probe_video(video) for video in videos]
    ensure_compatible(descriptors)
    plan = plan_for_first_resolution(descriptors, config.concat)
    return executor.concat(videos, plan.to_filter_string(), output)


def _validate_counts(count_min: int, count_max: int, runs: int) -> None:
    if count_min <= 0 or count_max <= 0:
        raise ValueError("随机数量必须大于 0")
    if count_min > count_max:
        raise ValueError(f"随机数量范围不合法: {count_min} > {count_max}")
    if runs <= 0:
        raise ValueError("执行次数必须大于 0")


def random_concat(
    input_dir: str | Path,
    output_dir: str | Path,
    config: PipelineConfig,
    *,
    count_min: int,
    count_max: int,
    runs: int = 1,
    ending: Optional[str | Path] = None,
    manager: Optional[SamplingPoolManager] = None,
    rng: Optional[random.Random] = None,
    progress: Optional[ProgressSink] = None,
    executor: Optional[MediaExecutor] = None,
    now: Optional[datetime] = None,
) -> ConcatBatchResult:
    """Run ``runs`` compositions, each drawing clips from the directory pool without replacement."""

    _validate_counts(count_min, count_max, runs)
    ending_path = _require_file(ending, "结尾视频") if ending else None
    manager = manager or default_pool_manager
    rng = rng or random.Random(config.pool.seed)
    executor = executor or MediaExecutor(config.export)
    max_depth = config.pool.max_depth

    notify(progress, "正在扫描视频文件...", 0)
    videos = collect_videos(input_dir, max_depth, config.pool.extensions)
    available = len(videos)
    manager.get_or_create(input_dir, max_depth, videos)

    base_timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    result = ConcatBatchResult()
    for run_index in range(1, runs + 1):
        desired = count_min if count_min == count_max else rng.randint(count_min, count_max)
        draw = manager.draw_result(input_dir, max_depth, min(desired, available), rng=rng)
        if desired > available:
            message = (
                f"第 {run_index}/{runs} 次：请求 {desired} 个视频，但只找到 {available} 个，"
                f"将使用全部 {available} 个视频"
            )
        elif draw.refilled:
            message = f"第 {run_index}/{runs} 次：池子已抽完，重新填充。本次选择 {len(draw.videos)} 个视频"
        else:
            message = f"第 {run_index}/{runs} 次：已选择 {len(draw.videos)} 个视频（池子剩余 {draw.remaining}）"
        logger.info(message)
        notify(progress, message, 100.0 * (run_index - 1) / runs)

        selection = list(draw.videos)
        if ending_path is not None:
            selection.append(ending_path)

        name = f"output_{base_timestamp}.mp4" if runs == 1 else f"output_{base_timestamp}_{run_index}.mp4"
        notify(progress, f"第 {run_index}/{runs} 次：正在拼接视频（统一重编码以保证同步）...", 100.0 * (run_index - 0.5) / runs)
        output = _merge(selection, Path(output_dir) / name, config, executor)

        result.outputs.append(output)
        result.draws.append(
            DrawRecord(
                run_index=run_index,
                requested=desired,
                videos=list(draw.videos),
                refilled=draw.refilled,
                remaining=draw.remaining,
            )
        )

    notify(progress, "完成！", 100)
    return result
