"""帧相似度算法测试：恒等、对称、尺寸校验与算法名校验。"""

from pathlib import Path

import cv2
import numpy as np
import pytest

from vidbatch.core.errors import DimensionMismatch, UnknownAlgorithm, VideoOpenError
from vidbatch.segment.similarity import SimilarityAlgorithm, load_gray, similarity

ALGORITHMS = ["histogram", "ssim", "frame_diff"]


def _noise(seed: int, shape=(24, 32, 3)) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


@pytest.mark.parametrize("algorithm", ALGORITHMS)
def test_identical_images_score_exactly_one(algorithm: str) -> None:
    for image in (_noise(1), _noise(2, (7, 5)), np.full((4, 4, 3), 37, dtype=np.uint8)):
        assert similarity(image, image.copy(), algorithm) == 1.0


@pytest.mark.parametrize("algorithm", ["histogram", "frame_diff"])
def test_symmetric_algorithms(algorithm: str) -> None:
    a, b = _noise(3), _noise(4)

    assert similarity(a, b, algorithm) == similarity(b, a, algorithm)


@pytest.mark.parametrize("algorithm", ALGORITHMS)
def test_scores_stay_in_unit_range(algorithm: str) -> None:
    black = np.zeros((8, 8), dtype=np.uint8)
    white = np.full((8, 8), 255, dtype=np.uint8)

    score = similarity(black, white, algorithm)

    assert 0.0 <= score <= 1.0


def test_disjoint_histograms_score_zero() -> None:
    black = np.zeros((8, 8), dtype=np.uint8)
    white = np.full((8, 8), 255, dtype=np.uint8)

    assert similarity(black, white, "histogram") == 0.0
    assert similarity(black, white, "frame_diff") == 0.0


def test_histogram_ignores_pixel_positions() -> None:
    image = _noise(5, (6, 6))
    shuffled = image.reshape(-1, 3)[::-1].reshape(image.shape)

    assert similarity(image, shuffled, "histogram") == pytest.approx(1.0)
    assert similarity(image, shuffled, "frame_diff") < 1.0


def test_frame_diff_known_value() -> None:
    a = np.zeros((2, 2), dtype=np.uint8)
    b = np.full((2, 2), 51, dtype=np.uint8)

    assert similarity(a, b, "frame_diff") == pytest.approx(0.8)


@pytest.mark.parametrize("algorithm", ALGORITHMS)
def test_dimension_mismatch(algorithm: str) -> None:
    with pytest.raises(DimensionMismatch) as excinfo:
        similarity(_noise(1, (10, 10, 3)), _noise(1, (10, 12, 3)), algorithm)

    assert excinfo.value.shape_a == (10, 10)
    assert excinfo.value.shape_b == (10, 12)


def test_unknown_algorithm() -> None:
    image = _noise(1)

    with pytest.raises(UnknownAlgorithm):
        similarity(image, image, "optical_flow")


def test_parse_accepts_enum_and_case() -> None:
    assert SimilarityAlgorithm.parse("SSIM") is SimilarityAlgorithm.SSIM
    assert SimilarityAlgorithm.parse(SimilarityAlgorithm.FRAME_DIFF) is SimilarityAlgorithm.FRAME_DIFF


def test_path_inputs_are_loaded(tmp_path: Path) -> None:
    image = _noise(9, (16, 16, 3))
    path = tmp_path / "frame.png"
    cv2.imwrite(str(path), image)

    assert similarity(path, str(path), "ssim") == 1.0
    assert load_gray(path).shape == (16, 16)


def test_missing_image_path(tmp_path: Path) -> None:
    with pytest.raises(VideoOpenError):
        load_gray(tmp_path / "missing.jpg")
