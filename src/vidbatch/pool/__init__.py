"""随机抽取视频池与目录扫描。"""

from .manager import DrawResult, SamplingPool, SamplingPoolManager
from .scanner import collect_videos

__all__ = ["DrawResult", "SamplingPool", "SamplingPoolManager", "collect_videos"]
