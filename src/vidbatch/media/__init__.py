"""外部媒体工具封装：ffprobe 探测、抽帧与 ffmpeg 执行。"""

from .executor import MediaExecutor, TimeRange, segment_time_ranges
from .frames import extract_frames, read_stream_frames
from .probe import parse_rational, probe_frame_timestamps, probe_metadata, probe_video

__all__ = [
    "MediaExecutor",
    "TimeRange",
    "segment_time_ranges",
    "extract_frames",
    "read_stream_frames",
    "parse_rational",
    "probe_frame_timestamps",
    "probe_metadata",
    "probe_video",
]
