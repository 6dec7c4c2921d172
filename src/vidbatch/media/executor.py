from __future__ import annotations

# 本模块是外部转码工具（ffmpeg）的唯一出口：
# 1) 按帧区间换算出的时间段重新编码切片，保证帧精度与编码一致；
# 2) 将 ConcatPlan 生成的 filter_complex 字符串原样交给 ffmpeg 拼接。

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import ffmpeg
from ffmpeg.nodes import InputNode

from vidbatch.core.config import ExportConfig
from vidbatch.core.datamodels import SceneSegment
from vidbatch.core.errors import MediaExecutorError
from vidbatch.core.logging_utils import get_logger

from vidbatch.concat.planner import AUDIO_OUTPUT_LABEL, VIDEO_OUTPUT_LABEL

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class TimeRange:
    """切片时间段（秒）。"""

    start: float
    duration: float


def segment_time_ranges(
    segments: Sequence[SceneSegment],
    timestamps: Sequence[float],
    video_duration: float,
) -> List[TimeRange]:
    """帧区间 -> 时间段：终点取下一帧的时间戳，末帧则取视频时长。"""

    total = len(timestamps)
    ranges: List[TimeRange] = []
    for number, segment in enumerate(segments, start=1):
        start_idx, end_idx = segment.start_frame, segment.end_frame
        if start_idx < 0 or start_idx >= total or end_idx >= total or start_idx > end_idx:
            raise ValueError(f"片段 {number} 的帧范围无效: {start_idx}-{end_idx}（共 {total} 帧）")
        start_time = timestamps[start_idx]
        if end_idx + 1 < total:
            end_time = timestamps[end_idx + 1]
        else:
            end_time = max(video_duration, timestamps[end_idx])
        ranges.append(TimeRange(start=start_time, duration=max(0.0, end_time - start_time)))
    return ranges


class MediaExecutor:
    """ffmpeg 调用封装，编码参数来自 ExportConfig。"""

    def __init__(self, cfg: ExportConfig | None = None, *, ffmpeg_cmd: str = "ffmpeg") -> None:
        self.cfg = cfg or ExportConfig()
        self.ffmpeg_cmd = ffmpeg_cmd

    def cut_segment(self, source: Path, output: Path, time_range: TimeRange) -> Path:
        """重新编码切出单个片段，时间戳从 0 开始。"""

        output.parent.mkdir(parents=True, exist_ok=True)
        stream = ffmpeg.input(str(source)).output(
            str(output),
            ss=time_range.start,
            t=time_range.duration,
            vf="setpts=PTS-STARTPTS",
            af="aresample=async=1:first_pts=0,asetpts=PTS-STARTPTS",
            vsync="vfr",
            vcodec=self.cfg.video_codec,
            preset=self.cfg.preset,
            crf=self.cfg.segment_crf,
            acodec=self.cfg.audio_codec,
            audio_bitrate=self.cfg.audio_bitrate,
            fflags="+genpts",
            avoid_negative_ts="make_zero",
        )
        stream = ffmpeg.overwrite_output(stream)
        try:
            stream.run(cmd=self.ffmpeg_cmd, quiet=True, capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as exc:  # pragma: no cover - 依赖环境 ffmpeg
            raise MediaExecutorError(
                f"生成片段失败 ({source.name}, {time_range.start:.3f}+{time_range.duration:.3f}s)",
                exc.stderr,
            ) from exc
        return output

    def build_concat_stream(self, inputs: Sequence[Path], filter_graph: str, output: Path):
        """输入按顺序编号，filter_graph 原样作为 -filter_complex。"""

        # 同一文件可能出现多次；args 只用来区分节点，不会写进命令行
        sources = [
            InputNode(ffmpeg.input.__name__, args=[position], kwargs={"filename": str(video)}).stream()
            for position, video in enumerate(inputs)
        ]
        stream = ffmpeg.output(
            *sources,
            str(output),
            filter_complex=filter_graph,
            vsync="vfr",
            vcodec=self.cfg.video_codec,
            preset=self.cfg.preset,
            crf=self.cfg.crf,
            pix_fmt="yuv420p",
            acodec=self.cfg.audio_codec,
            audio_bitrate=self.cfg.audio_bitrate,
            fflags="+genpts",
            avoid_negative_ts="make_zero",
            shortest=None,
        )
        return ffmpeg.overwrite_output(stream)

    def build_concat_args(self, inputs: Sequence[Path], filter_graph: str, output: Path) -> List[str]:
        args = self.build_concat_stream(inputs, filter_graph, output).compile(cmd=self.ffmpeg_cmd)
        # ffmpeg-python 为每个输入生成 -map N，这里改为映射滤镜图的两个输出标签
        head_len = 1 + 2 * len(inputs)
        head, tail = args[:head_len], args[head_len:]
        while tail[:1] == ["-map"]:
            tail = tail[2:]
        return head + ["-map", f"[{VIDEO_OUTPUT_LABEL}]", "-map", f"[{AUDIO_OUTPUT_LABEL}]"] + tail

    def concat(self, inputs: Sequence[Path], filter_graph: str, output: Path) -> Path:
        """统一重编码拼接；filter_graph 原样作为 -filter_complex 传入。"""

        if not inputs:
            raise MediaExecutorError("没有可拼接的输入")
        output.parent.mkdir(parents=True, exist_ok=True)
        args = self.build_concat_args(inputs, filter_graph, output)
        logger.debug("running %s", " ".join(args))
        try:
            _execute(args)
        except ffmpeg.Error as exc:
            raise MediaExecutorError(f"FFmpeg 拼接失败: {output.name}", exc.stderr) from exc
        return output


def _execute(args: Sequence[str]) -> None:
    """与 ffmpeg.run(quiet=True) 相同的约定：非零退出码抛出 ffmpeg.Error。"""

    process = subprocess.Popen(list(args), stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    out, err = process.communicate()
    if process.poll():
        raise ffmpeg.Error(args[0], out, err)


def split_outputs(output_dir: Path, stem: str, count: int) -> List[Tuple[int, Path]]:
    """切分输出路径：<output_dir>/<stem>/<stem>_<n>.mp4，n 从 1 开始。"""

    base = output_dir / stem
    return [(number, base / f"{stem}_{number}.mp4") for number in range(1, count + 1)]
