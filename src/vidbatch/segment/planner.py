"""场景切分规划：相邻帧相似度 -> 切分点 -> 场景片段。

两种策略并存且互不替代：
- threshold：并行计算全部相邻帧相似度，再按帧序串行扫描阈值；
- backoff：串行扫描，相似度跌破阈值时在前方窗口内以指数步长回看，
  若与跌落前的参考帧重新相似则视为瞬时抖动（如运动模糊），不切分。
"""

from __future__ import annotations

import math
import os
import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from vidbatch.core.config import SegmentConfig
from vidbatch.core.datamodels import Frame, SceneSegment
from vidbatch.core.errors import AllSegmentsFiltered, InsufficientFrames, NoSceneChangeDetected
from vidbatch.core.logging_utils import ProgressSink, get_logger, notify

from .similarity import SimilarityAlgorithm, similarity

logger = get_logger(__name__)

DEFAULT_BACKOFF_WINDOW_SECONDS = 10.0
DEFAULT_BACKOFF_BASE = 1.5
DEFAULT_PROGRESS_EVERY = 100


class SegmentationStrategy(str, Enum):
    THRESHOLD = "threshold"
    BACKOFF = "backoff"

    @classmethod
    def parse(cls, value: "str | SegmentationStrategy") -> "SegmentationStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"未知的切分策略: {value!r}（可选 threshold/backoff）") from exc


@dataclass(slots=True)
class SegmentPlan:
    """一次切分的完整产物，保留中间结果便于诊断阈值。

    - similarities: 第 k 项对应帧对 (k, k+1)。
    - split_points: 每个片段的起始帧号，首项恒为 0。
    - original_count: 掐头去尾之前的片段数。
    """

    segments: List[SceneSegment]
    split_points: List[int]
    similarities: List[float]
    original_count: int
    min_frames: int
    fps: float
    strategy: SegmentationStrategy = SegmentationStrategy.THRESHOLD
    transient_drops: List[int] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_fps(frames: Sequence[Frame]) -> float:
    """未提供帧率时由时间戳估算：(n-1)/末帧时间，无法估算时回退 1.0。"""

    if len(frames) < 2:
        return 1.0
    span = frames[-1].timestamp - frames[0].timestamp
    if span <= 0 or not math.isfinite(span):
        return 1.0
    return (len(frames) - 1) / span


def compute_similarities(
    frames: Sequence[Frame],
    algorithm: "str | SimilarityAlgorithm",
    *,
    workers: Optional[int] = None,
    progress: Optional[ProgressSink] = None,
    progress_every: int = DEFAULT_PROGRESS_EVERY,
) -> List[float]:
    """并行计算所有相邻帧对的相似度，结果按帧对下标回填，顺序与完成先后无关。"""

    algo = SimilarityAlgorithm.parse(algorithm)
    pair_count = len(frames) - 1
    if pair_count <= 0:
        return []

    results: List[Optional[float]] = [None] * pair_count
    max_workers = max(1, min(workers or os.cpu_count() or 1, pair_count))
    step = max(1, progress_every)

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="similarity") as pool:
        futures = {
            pool.submit(similarity, frames[idx].image, frames[idx + 1].image, algo): idx
            for idx in range(pair_count)
        }
        completed = 0
        for future in as_completed(futures):
            results[futures[future]] = future.result()
            completed += 1
            # 进度仅在协调线程发送，并按 step 合并，不阻塞工作线程
            if completed % step == 0 or completed == pair_count:
                notify(progress, f"已分析 {completed}/{pair_count} 帧对", completed * 100.0 / pair_count)

    return [float(value) for value in results]  # type: ignore[arg-type]


def select_split_points(
    frames: Sequence[Frame],
    similarities: Sequence[float],
    threshold: float,
    min_frames: int,
) -> List[int]:
    """按帧序扫描相似度，低于阈值且距上个切分点不少于 min_frames 帧时切分。"""

    split_points = [0]
    last_split = 0
    for pair_idx, score in enumerate(similarities):
        if score < threshold:
            frame_index = frames[pair_idx + 1].index
            if frame_index - last_split >= min_frames:
                split_points.append(frame_index)
                last_split = frame_index
    return split_points


class BackoffConfirmer:
    """跌破阈值后在有限窗口内以指数增长步长回看，确认是否为真正的镜头切换。"""

    def __init__(
        self,
        algorithm: "str | SimilarityAlgorithm",
        threshold: float,
        window_frames: int,
        *,
        base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        if base <= 1.0:
            raise ValueError("backoff base 需大于 1")
        self.algorithm = SimilarityAlgorithm.parse(algorithm)
        self.threshold = threshold
        self.window_frames = max(1, int(window_frames))
        self.base = base

    def lookahead_positions(self, start: int, limit: int) -> List[int]:
        """从 start 起的回看位置，步长依次乘以 base（至少为 1），不超过窗口与 limit。"""

        end = min(start + self.window_frames, limit)
        positions: List[int] = []
        step = 1.0
        position = start
        while position < end:
            positions.append(position)
            step *= self.base
            position += max(1, int(step))
        return positions

    def find_recovery(self, frames: Sequence[Frame], reference: int, drop: int) -> Optional[int]:
        """返回与参考帧重新相似的位置；窗口内始终不相似则返回 None（确认切换）。"""

        reference_image = frames[reference].image
        for position in self.lookahead_positions(drop + 1, len(frames)):
            score = similarity(reference_image, frames[position].image, self.algorithm)
            if score >= self.threshold:
                return position
        return None

    def scan(self, frames: Sequence[Frame], min_frames: int) -> Tuple[List[int], List[float], List[int]]:
        """串行扫描，返回 (切分点, 相邻相似度, 被判为瞬时跌落的帧号)。"""

        similarities: List[float] = []
        split_points = [0]
        transient: List[int] = []
        last_split = 0
        for position in range(1, len(frames)):
            score = similarity(frames[position - 1].image, frames[position].image, self.algorithm)
            similarities.append(score)
            if score >= self.threshold:
                continue
            # 恢复只撤销本次跌落处的切分，后续帧对照常逐一比较
            if self.find_recovery(frames, position - 1, position) is not None:
                transient.append(frames[position].index)
                continue
            frame_index = frames[position].index
            if frame_index - last_split >= min_frames:
                split_points.append(frame_index)
                last_split = frame_index
        return split_points, similarities, transient


def build_segments(frames: Sequence[Frame], split_points: Sequence[int]) -> List[SceneSegment]:
    """相邻切分点组成闭区间片段，最后一段延伸到末帧，整体连续覆盖全部帧。"""

    last_index = frames[-1].index
    segments = [
        SceneSegment(start_frame=split_points[k], end_frame=split_points[k + 1] - 1)
        for k in range(len(split_points) - 1)
    ]
    segments.append(SceneSegment(start_frame=split_points[-1], end_frame=last_index))
    return segments


def trim_segments(segments: Sequence[SceneSegment], trim_first: bool, trim_last: bool) -> List[SceneSegment]:
    """掐头去尾：仅在多于一个片段时移除；单片段同时要求掐头去尾视为全部过滤。"""

    remaining = list(segments)
    original_count = len(remaining)
    if not remaining or (trim_first and trim_last and original_count == 1):
        raise AllSegmentsFiltered(original_count, trim_first, trim_last)
    if trim_first and len(remaining) > 1:
        remaining.pop(0)
    if trim_last and len(remaining) > 1:
        remaining.pop()
    return remaining


def analyze_frames(
    frames: Sequence[Frame],
    algorithm: "str | SimilarityAlgorithm",
    threshold: float,
    min_duration: float,
    trim_first: bool = False,
    trim_last: bool = False,
    *,
    fps: Optional[float] = None,
    strategy: "str | SegmentationStrategy" = SegmentationStrategy.THRESHOLD,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
    workers: Optional[int] = None,
    progress: Optional[ProgressSink] = None,
    progress_every: int = DEFAULT_PROGRESS_EVERY,
    backoff_window_seconds: float = DEFAULT_BACKOFF_WINDOW_SECONDS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
) -> SegmentPlan:
    """执行一次完整切分并返回 SegmentPlan；任一步失败即抛异常，不返回部分结果。"""

    if len(frames) < 2:
        raise InsufficientFrames(len(frames))
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold 需在 [0, 1] 内: {threshold}")
    if min_duration < 0:
        raise ValueError(f"min_duration 不能为负: {min_duration}")

    algo = SimilarityAlgorithm.parse(algorithm)
    policy = SegmentationStrategy.parse(strategy)
    effective_fps = fps if fps and fps > 0 else estimate_fps(frames)
    min_frames = round_half_up(min_duration * effective_fps)

    transient: List[int] = []
    if policy is SegmentationStrategy.THRESHOLD:
        similarities = compute_similarities(
            frames,
            algo,
            workers=workers,
            progress=progress,
            progress_every=progress_every,
        )
        split_points = select_split_points(frames, similarities, threshold, min_frames)
    else:
        window_frames = max(1, int(backoff_window_seconds * effective_fps))
        confirmer = BackoffConfirmer(algo, threshold, window_frames, base=backoff_base)
        split_points, similarities, transient = confirmer.scan(frames, min_frames)
        notify(progress, f"已分析 {len(frames) - 1}/{len(frames) - 1} 帧对", 100.0)

    if len(split_points) < 2:
        raise NoSceneChangeDetected(len(frames), threshold, min(similarities) if similarities else None)

    segments = build_segments(frames, split_points)
    original_count = len(segments)
    segments = trim_segments(segments, trim_first, trim_last)

    if shuffle:
        (rng or random.Random()).shuffle(segments)

    logger.debug(
        "segmentation: %d frames, strategy=%s, algo=%s, threshold=%.3f, min_frames=%d -> %d segments (%d before trim)",
        len(frames),
        policy.value,
        algo.value,
        threshold,
        min_frames,
        len(segments),
        original_count,
    )
    return SegmentPlan(
        segments=segments,
        split_points=split_points,
        similarities=list(similarities),
        original_count=original_count,
        min_frames=min_frames,
        fps=effective_fps,
        strategy=policy,
        transient_drops=transient,
    )


def plan_segments(
    frames: Sequence[Frame],
    algorithm: "str | SimilarityAlgorithm",
    threshold: float,
    min_duration: float,
    trim_first: bool = False,
    trim_last: bool = False,
    **options,
) -> List[SceneSegment]:
    """主入口：帧序列 -> 场景片段列表（闭区间帧号）。"""

    return analyze_frames(
        frames,
        algorithm,
        threshold,
        min_duration,
        trim_first,
        trim_last,
        **options,
    ).segments


def analyze_with_config(
    frames: Sequence[Frame],
    config: SegmentConfig,
    *,
    fps: Optional[float] = None,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
    progress: Optional[ProgressSink] = None,
    trim_first: Optional[bool] = None,
    trim_last: Optional[bool] = None,
) -> SegmentPlan:
    """按 SegmentConfig 执行切分，trim 参数可单独覆盖配置。"""

    return analyze_frames(
        frames,
        config.algorithm,
        config.threshold,
        config.min_segment_seconds,
        config.trim_first if trim_first is None else trim_first,
        config.trim_last if trim_last is None else trim_last,
        fps=fps,
        strategy=config.strategy,
        shuffle=shuffle,
        rng=rng,
        workers=config.workers,
        progress=progress,
        progress_every=config.progress_every,
        backoff_window_seconds=config.backoff_window_seconds,
        backoff_base=config.backoff_base,
    )
