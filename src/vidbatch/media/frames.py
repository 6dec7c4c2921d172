"""帧来源：ffmpeg 导出缩略图文件，或 OpenCV 直接解码像素流。"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import ffmpeg

from vidbatch.core.datamodels import Frame, frames_from_images
from vidbatch.core.errors import MediaExecutorError, VideoOpenError
from vidbatch.core.logging_utils import get_logger
from vidbatch.core.paths import video_scratch_dir

from .probe import probe_frame_timestamps

logger = get_logger(__name__)

FRAME_PATTERN = "frame_%05d.jpg"


def extract_frames(
    video_path: str | Path,
    work_root: Path,
    *,
    width: int = 320,
    timestamps: Optional[Sequence[float]] = None,
) -> List[Frame]:
    """导出所有帧的缩略图（宽 width，等比），与逐帧时间戳配对成 Frame 列表。

    每个视频使用独立的临时目录，开始前清空旧帧。
    """

    source = Path(video_path)
    frames_dir = video_scratch_dir(work_root, source, "frames")
    if frames_dir.exists():
        shutil.rmtree(frames_dir)
    frames_dir.mkdir(parents=True, exist_ok=True)

    stream = (
        ffmpeg.input(str(source))
        .filter("scale", width, -1)
        .output(str(frames_dir / FRAME_PATTERN), vsync=0, **{"q:v": 3})
        .overwrite_output()
    )
    try:
        stream.run(quiet=True, capture_stdout=True, capture_stderr=True)
    except ffmpeg.Error as exc:  # pragma: no cover - 依赖环境 ffmpeg
        raise MediaExecutorError(f"提取帧失败: {source}", exc.stderr) from exc

    images = sorted(frames_dir.glob("frame_*.jpg"))
    frame_times = list(timestamps) if timestamps is not None else probe_frame_timestamps(source)
    if len(images) != len(frame_times):
        logger.warning(
            "frame count mismatch for %s: %d images vs %d timestamps, using the shorter",
            source.name,
            len(images),
            len(frame_times),
        )
    return frames_from_images(images, frame_times)


def read_stream_frames(video_path: str | Path, *, width: int = 320) -> Tuple[List[Frame], float]:
    """用 OpenCV 顺序解码像素流并缩小到 width，时间戳由 帧号/原始帧率 推算。

    返回 (帧列表, 原始帧率)，供 backoff 策略在不落盘的情况下使用。
    """

    path = Path(video_path)
    capture = cv2.VideoCapture(str(path))
    if not capture.isOpened():
        raise VideoOpenError(f"无法打开视频: {path}")

    native_fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
    if native_fps <= 0:
        native_fps = 25.0
        logger.warning("%s reports no fps, assuming %.1f", path.name, native_fps)

    frames: List[Frame] = []
    frame_index = 0
    try:
        while True:
            success, image = capture.read()
            if not success:
                break
            frames.append(Frame(index=frame_index, timestamp=frame_index / native_fps, image=_shrink(image, width)))
            frame_index += 1
    finally:
        capture.release()
    return frames, native_fps


def _shrink(image, width: int):
    height, current_width = image.shape[:2]
    if current_width <= width:
        return image
    new_height = max(1, int(round(height * width / current_width)))
    return cv2.resize(image, (width, new_height), interpolation=cv2.INTER_AREA)
