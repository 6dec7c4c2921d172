"""异常层级：核心模块只抛结构化异常，不做日志或界面提示。"""

from __future__ import annotations

from typing import Sequence, Tuple


class VidBatchError(Exception):
    """所有 vidbatch 异常的基类，CLI/工作流据此统一转换为失败退出。"""


# ---- 相似度 ----


class SimilarityError(VidBatchError):
    """相似度计算失败。"""


class DimensionMismatch(SimilarityError):
    def __init__(self, shape_a: Tuple[int, int], shape_b: Tuple[int, int]) -> None:
        self.shape_a = tuple(shape_a)
        self.shape_b = tuple(shape_b)
        super().__init__(
            f"图片尺寸不匹配: {self.shape_a[1]}x{self.shape_a[0]} vs {self.shape_b[1]}x{self.shape_b[0]}"
        )


class UnknownAlgorithm(SimilarityError):
    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"未知的算法: {name!r}（可选 histogram/ssim/frame_diff）")


# ---- 切分 ----


class SegmentationError(VidBatchError):
    """场景切分失败，整个请求作废，不返回部分结果。"""


class InsufficientFrames(SegmentationError):
    def __init__(self, frame_count: int) -> None:
        self.frame_count = frame_count
        super().__init__(f"视频帧数不足: 需要至少 2 帧，实际 {frame_count} 帧")


class NoSceneChangeDetected(SegmentationError):
    def __init__(self, frame_count: int, threshold: float, min_similarity: float | None = None) -> None:
        self.frame_count = frame_count
        self.threshold = threshold
        self.min_similarity = min_similarity
        detail = f"，最低相似度 {min_similarity:.4f}" if min_similarity is not None else ""
        super().__init__(
            f"未检测到场景切换（{frame_count} 帧，阈值 {threshold:.4f}{detail}），无法拆分"
        )


class AllSegmentsFiltered(SegmentationError):
    def __init__(self, original_count: int, trim_first: bool, trim_last: bool) -> None:
        self.original_count = original_count
        self.trim_first = trim_first
        self.trim_last = trim_last
        super().__init__(
            f"过滤后无片段可输出（原始片段数: {original_count}，掐头: {trim_first}，去尾: {trim_last}）"
        )


# ---- 视频池 ----


class PoolError(VidBatchError):
    """视频池操作失败。"""


class PoolNotInitialized(PoolError):
    def __init__(self, directory: str, max_depth: int) -> None:
        self.directory = directory
        self.max_depth = max_depth
        super().__init__(f"视频池不存在，请先初始化: {directory} (max_depth={max_depth})")


class VideoDirectoryError(VidBatchError, ValueError):
    """扫描目录失败：目录不存在、不是目录或没有匹配的视频。"""


# ---- 拼接计划 ----


class PlanError(VidBatchError):
    """拼接滤镜计划无法构建。"""


class EmptyConcatInput(PlanError):
    def __init__(self) -> None:
        super().__init__("没有可拼接的视频")


class MissingDurationForSilence(PlanError):
    def __init__(self, position: int, name: str, duration: float) -> None:
        self.position = position
        self.name = name
        self.duration = duration
        super().__init__(
            f"无法获取第 {position} 个视频时长（{name}: {duration}），无法补齐静音音轨"
        )


class IncompatibleVideos(PlanError):
    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        joined = "\n".join(self.issues)
        super().__init__(f"检测到兼容性问题:\n{joined}")


# ---- 外部媒体工具 ----


class MediaError(VidBatchError):
    """ffmpeg/ffprobe 调用失败。"""


class VideoOpenError(MediaError):
    """视频或帧图片无法打开时抛出的异常，便于上层捕获并降级。"""


class ProbeError(MediaError):
    """ffprobe 输出缺失或无法解析。"""


class MediaExecutorError(MediaError):
    def __init__(self, message: str, stderr: bytes | str | None = None) -> None:
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        self.stderr = stderr or ""
        full = message
        if self.stderr:
            full += f"\nffmpeg stderr 输出:\n{self.stderr}"
        super().__init__(full)
