"""ffprobe 封装：视频描述、流元数据与逐帧时间戳。"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import ffmpeg

from vidbatch.core.datamodels import VideoDescriptor, VideoMetadata, normalize_timestamps
from vidbatch.core.errors import ProbeError

TIMESTAMP_FIELDS = ("best_effort_timestamp_time", "pkt_pts_time", "pkt_dts_time")


def parse_rational(value: Any) -> Optional[float]:
    """解析 "30000/1001" 或 "25" 形式的帧率，N/A、空串与零分母返回 None。"""

    if value is None:
        return None
    text = str(value).strip()
    if not text or text == "N/A":
        return None
    try:
        if "/" in text:
            num, den = text.split("/", 1)
            denominator = float(den)
            if denominator == 0:
                return None
            return float(num) / denominator
        return float(text)
    except ValueError:
        return None


def _parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _run_probe(path: str | Path, **kwargs: Any) -> Dict[str, Any]:
    try:
        return ffmpeg.probe(str(path), **kwargs)
    except ffmpeg.Error as exc:
        stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
        raise ProbeError(f"FFprobe 执行失败 ({path}): {stderr.strip()}") from exc


def _first_stream(streams: Sequence[Dict[str, Any]], codec_type: str) -> Optional[Dict[str, Any]]:
    for stream in streams:
        if stream.get("codec_type") == codec_type:
            return stream
    return None


def descriptor_from_probe(name: str, payload: Dict[str, Any]) -> VideoDescriptor:
    """把 ffprobe JSON 转为 VideoDescriptor，帧率优先 avg_frame_rate，时长优先 format。"""

    streams = payload.get("streams") or []
    video = _first_stream(streams, "video")
    if video is None:
        raise ProbeError(f"{name}: 未找到视频流信息")
    if "width" not in video or "height" not in video:
        raise ProbeError(f"{name}: 无法获取分辨率")

    fps = parse_rational(video.get("avg_frame_rate"))
    if fps is None or fps <= 0:
        fps = parse_rational(video.get("r_frame_rate")) or 0.0

    duration = _parse_float((payload.get("format") or {}).get("duration"))
    if duration is None:
        duration = _parse_float(video.get("duration"))

    return VideoDescriptor(
        name=name,
        codec=str(video.get("codec_name") or "unknown"),
        width=int(video["width"]),
        height=int(video["height"]),
        fps=fps,
        duration=duration or 0.0,
        has_audio=_first_stream(streams, "audio") is not None,
    )


def probe_video(path: str | Path) -> VideoDescriptor:
    target = Path(path)
    return descriptor_from_probe(target.name, _run_probe(target))


def metadata_from_probe(payload: Dict[str, Any]) -> VideoMetadata:
    """切分流程所需的元数据；帧数缺失时由 时长×帧率 推算，帧率缺失时反推。"""

    streams = payload.get("streams") or []
    if not streams:
        raise ProbeError("无法获取视频流信息")
    stream = streams[0]
    if "width" not in stream or "height" not in stream:
        raise ProbeError("无法获取宽度/高度")
    codec = stream.get("codec_name")
    if not codec:
        raise ProbeError("无法获取编码格式")

    fps = parse_rational(stream.get("avg_frame_rate"))
    if fps is None or fps <= 0:
        fps = parse_rational(stream.get("r_frame_rate")) or 0.0

    if "duration" in stream:
        duration = _parse_float(stream.get("duration"))
        if duration is None:
            raise ProbeError("无法解析时长")
    else:
        duration = _parse_float((payload.get("format") or {}).get("duration"))
        if duration is None:
            raise ProbeError("无法获取视频时长")

    total_frames: Optional[int] = None
    for key in ("nb_read_frames", "nb_frames"):
        count = _parse_float(stream.get(key))
        if count is not None:
            total_frames = int(count)
            break
    if total_frames is None:
        total_frames = int(round(duration * fps)) if fps > 0 else 0

    if fps <= 0 and duration > 0 and total_frames > 0:
        fps = total_frames / duration

    return VideoMetadata(
        width=int(stream["width"]),
        height=int(stream["height"]),
        fps=fps,
        duration=duration,
        total_frames=total_frames,
        codec=str(codec),
    )


def probe_metadata(path: str | Path) -> VideoMetadata:
    payload = _run_probe(path, select_streams="v:0", count_frames=None)
    return metadata_from_probe(payload)


def timestamps_from_probe(payload: Dict[str, Any], field: str) -> List[float]:
    values: List[float] = []
    for frame in payload.get("frames") or []:
        raw = frame.get(field)
        if raw is None or raw == "N/A":
            continue
        value = _parse_float(raw)
        if value is not None:
            values.append(value)
    return normalize_timestamps(values)


def probe_frame_timestamps(path: str | Path) -> List[float]:
    """依次尝试多个时间戳字段，返回第一个有值的归一化结果。"""

    for field in TIMESTAMP_FIELDS:
        payload = _run_probe(path, select_streams="v:0", show_frames=None, show_entries=f"frame={field}")
        timestamps = timestamps_from_probe(payload, field)
        if timestamps:
            return timestamps
    raise ProbeError(f"无法获取帧时间戳: {path}")
