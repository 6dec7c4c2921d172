"""拼接滤镜规划：分辨率/音轨统一与 concat 合并。"""

from .planner import (
    ConcatPlan,
    InputFragments,
    build_concat_plan,
    check_compatibility,
    ensure_compatible,
    plan_concat,
    plan_for_first_resolution,
)

__all__ = [
    "ConcatPlan",
    "InputFragments",
    "build_concat_plan",
    "check_compatibility",
    "ensure_compatible",
    "plan_concat",
    "plan_for_first_resolution",
]
