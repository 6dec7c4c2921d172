"""场景切分模块：帧相似度算法与切分规划。"""

from .planner import (
    BackoffConfirmer,
    SegmentationStrategy,
    SegmentPlan,
    analyze_frames,
    analyze_with_config,
    build_segments,
    compute_similarities,
    plan_segments,
    select_split_points,
    trim_segments,
)
from .similarity import SimilarityAlgorithm, load_gray, similarity

__all__ = [
    "BackoffConfirmer",
    "SegmentationStrategy",
    "SegmentPlan",
    "analyze_frames",
    "analyze_with_config",
    "build_segments",
    "compute_similarities",
    "plan_segments",
    "select_split_points",
    "trim_segments",
    "SimilarityAlgorithm",
    "load_gray",
    "similarity",
]
