"""视频池：按 (目录, 递归深度) 维护不放回抽取状态，抽完自动重填。"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from vidbatch.core.errors import PoolNotInitialized
from vidbatch.core.logging_utils import get_logger

logger = get_logger(__name__)

PoolKey = Tuple[str, int]


@dataclass(slots=True)
class SamplingPool:
    """单个池子的状态：all_videos 为完整列表，remaining 恒为其子集。"""

    all_videos: List[Path]
    remaining: List[Path] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.all_videos)

    def copy(self) -> "SamplingPool":
        return SamplingPool(all_videos=list(self.all_videos), remaining=list(self.remaining))


@dataclass(slots=True)
class DrawResult:
    """一次抽取的结果，refilled 表示本次抽取前池子已空并被重新填充。"""

    videos: List[Path]
    refilled: bool
    remaining: int


class SamplingPoolManager:
    """视频池管理器，所有状态修改都在同一把锁内完成，单次抽取是原子操作。"""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._pools: Dict[PoolKey, SamplingPool] = {}
        self._lock = threading.Lock()
        self._rng = rng or random.Random()

    @staticmethod
    def make_key(directory: str | Path, max_depth: int) -> PoolKey:
        return (str(directory), int(max_depth))

    def get_or_create(self, directory: str | Path, max_depth: int, videos: Sequence[str | Path]) -> SamplingPool:
        """已有池子且记录的总数与 videos 一致时复用，否则（重新）初始化；返回状态快照。"""

        key = self.make_key(directory, max_depth)
        listing = [Path(video) for video in videos]
        with self._lock:
            pool = self._pools.get(key)
            if pool is not None and pool.total == len(listing):
                return pool.copy()
            if pool is not None:
                logger.info("video pool %s changed size %d -> %d, rebuilding", key, pool.total, len(listing))
            pool = SamplingPool(all_videos=list(listing), remaining=list(listing))
            self._pools[key] = pool
            return pool.copy()

    def draw_result(
        self,
        directory: str | Path,
        max_depth: int,
        count: int,
        *,
        rng: Optional[random.Random] = None,
    ) -> DrawResult:
        """不放回抽取 min(count, 剩余数) 个视频，并报告本次是否触发重填。"""

        if count < 0:
            raise ValueError(f"count 不能为负: {count}")
        key = self.make_key(directory, max_depth)
        with self._lock:
            pool = self._pools.get(key)
            if pool is None:
                raise PoolNotInitialized(str(directory), int(max_depth))
            refilled = False
            if not pool.remaining:
                pool.remaining = list(pool.all_videos)
                refilled = True
            (rng or self._rng).shuffle(pool.remaining)
            actual = min(count, len(pool.remaining))
            selected = pool.remaining[:actual]
            del pool.remaining[:actual]
            return DrawResult(videos=selected, refilled=refilled, remaining=len(pool.remaining))

    def draw(
        self,
        directory: str | Path,
        max_depth: int,
        count: int,
        *,
        rng: Optional[random.Random] = None,
    ) -> List[Path]:
        return self.draw_result(directory, max_depth, count, rng=rng).videos

    def remaining_count(self, directory: str | Path, max_depth: int) -> int:
        key = self.make_key(directory, max_depth)
        with self._lock:
            pool = self._pools.get(key)
            return len(pool.remaining) if pool is not None else 0
