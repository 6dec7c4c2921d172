"""帧相似度算法：直方图巴氏系数、全局 SSIM、逐像素帧差。

三种算法都先转为 8 位灰度，返回 [0, 1] 的相似度，1.0 表示完全相同。
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Callable, Dict

import cv2
import numpy as np
from numpy.typing import NDArray

from vidbatch.core.datamodels import ImageHandle
from vidbatch.core.errors import DimensionMismatch, UnknownAlgorithm, VideoOpenError

HISTOGRAM_BINS = 256
_PIXEL_RANGE = 255.0
SSIM_C1 = (0.01 * _PIXEL_RANGE) ** 2
SSIM_C2 = (0.03 * _PIXEL_RANGE) ** 2


class SimilarityAlgorithm(str, Enum):
    HISTOGRAM = "histogram"
    SSIM = "ssim"
    FRAME_DIFF = "frame_diff"

    @classmethod
    def parse(cls, value: "str | SimilarityAlgorithm") -> "SimilarityAlgorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnknownAlgorithm(value) from exc


def load_gray(image: ImageHandle) -> NDArray[np.uint8]:
    """读取图片句柄并转为二维 uint8 灰度数组；数组输入按 OpenCV 的 BGR 顺序处理。"""

    if isinstance(image, (str, Path)):
        data = cv2.imread(str(image), cv2.IMREAD_GRAYSCALE)
        if data is None:
            raise VideoOpenError(f"无法打开图片: {image}")
        return data

    array = np.asarray(image)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)
    if array.ndim == 2:
        return array
    if array.ndim == 3:
        channels = array.shape[2]
        if channels == 1:
            return array[..., 0]
        if channels == 3:
            return cv2.cvtColor(array, cv2.COLOR_BGR2GRAY)
        if channels == 4:
            return cv2.cvtColor(array, cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"不支持的图片数组形状: {array.shape}")


def histogram_similarity(gray_a: NDArray[np.uint8], gray_b: NDArray[np.uint8]) -> float:
    """256 bin 灰度直方图的巴氏系数 Σ√(p·q)。"""

    _check_shapes(gray_a, gray_b)
    hist_a = np.bincount(gray_a.ravel(), minlength=HISTOGRAM_BINS).astype(np.float64)
    hist_b = np.bincount(gray_b.ravel(), minlength=HISTOGRAM_BINS).astype(np.float64)
    # 先在计数上开方求和再除以像素数，相同输入时整数运算保证结果恰为 1.0
    total = float(gray_a.size)
    coefficient = float(np.sqrt(hist_a * hist_b).sum()) / total
    return _clamp(coefficient)


def ssim_similarity(gray_a: NDArray[np.uint8], gray_b: NDArray[np.uint8]) -> float:
    """整幅图单窗口 SSIM，结果从 [-1, 1] 映射到 [0, 1]。"""

    _check_shapes(gray_a, gray_b)
    pixels_a = gray_a.astype(np.float64)
    pixels_b = gray_b.astype(np.float64)
    mean_a = float(pixels_a.mean())
    mean_b = float(pixels_b.mean())
    diff_a = pixels_a - mean_a
    diff_b = pixels_b - mean_b
    var_a = float(np.mean(diff_a * diff_a))
    var_b = float(np.mean(diff_b * diff_b))
    covar = float(np.mean(diff_a * diff_b))

    numerator = (2.0 * mean_a * mean_b + SSIM_C1) * (2.0 * covar + SSIM_C2)
    denominator = (mean_a * mean_a + mean_b * mean_b + SSIM_C1) * (var_a + var_b + SSIM_C2)
    ssim = numerator / denominator
    return _clamp((ssim + 1.0) / 2.0)


def frame_diff_similarity(gray_a: NDArray[np.uint8], gray_b: NDArray[np.uint8]) -> float:
    """平均绝对像素差归一化到 [0, 1] 后取补。"""

    _check_shapes(gray_a, gray_b)
    diff = np.abs(gray_a.astype(np.int16) - gray_b.astype(np.int16))
    mean_diff = float(diff.mean()) / _PIXEL_RANGE
    return _clamp(1.0 - mean_diff)


_ALGORITHMS: Dict[SimilarityAlgorithm, Callable[[NDArray[np.uint8], NDArray[np.uint8]], float]] = {
    SimilarityAlgorithm.HISTOGRAM: histogram_similarity,
    SimilarityAlgorithm.SSIM: ssim_similarity,
    SimilarityAlgorithm.FRAME_DIFF: frame_diff_similarity,
}


def similarity(image_a: ImageHandle, image_b: ImageHandle, algorithm: "str | SimilarityAlgorithm") -> float:
    """计算两帧的相似度；尺寸不同抛 DimensionMismatch，算法未知抛 UnknownAlgorithm。"""

    algo = SimilarityAlgorithm.parse(algorithm)
    gray_a = load_gray(image_a)
    gray_b = load_gray(image_b)
    return _ALGORITHMS[algo](gray_a, gray_b)


def _check_shapes(gray_a: NDArray[np.uint8], gray_b: NDArray[np.uint8]) -> None:
    if gray_a.shape != gray_b.shape:
        raise DimensionMismatch(gray_a.shape[:2], gray_b.shape[:2])


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)
