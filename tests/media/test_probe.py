"""ffprobe 结果解析测试，ffmpeg.probe 全部替换为桩。"""

import ffmpeg
import pytest

from vidbatch.core.errors import ProbeError
from vidbatch.media import probe
from vidbatch.media.probe import (
    descriptor_from_probe,
    metadata_from_probe,
    parse_rational,
    probe_frame_timestamps,
    timestamps_from_probe,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [("30000/1001", 30000 / 1001), ("25", 25.0), ("25/0", None), ("N/A", None), ("", None), (None, None), ("abc", None)],
)
def test_parse_rational(text, expected) -> None:
    assert parse_rational(text) == expected


def test_descriptor_prefers_format_duration() -> None:
    payload = {
        "streams": [
            {"codec_type": "video", "codec_name": "h264", "width": 1280, "height": 720, "avg_frame_rate": "0/0", "r_frame_rate": "30/1", "duration": "9.0"},
            {"codec_type": "audio", "codec_name": "aac"},
        ],
        "format": {"duration": "10.5"},
    }

    info = descriptor_from_probe("clip.mp4", payload)

    assert info.width == 1280 and info.height == 720
    assert info.fps == 30.0
    assert info.duration == 10.5
    assert info.has_audio is True


def test_descriptor_without_video_stream() -> None:
    with pytest.raises(ProbeError):
        descriptor_from_probe("a.mp3", {"streams": [{"codec_type": "audio"}]})


def test_metadata_estimates_frame_count() -> None:
    payload = {"streams": [{"codec_name": "h264", "width": 640, "height": 360, "avg_frame_rate": "25/1"}], "format": {"duration": "4.0"}}

    meta = metadata_from_probe(payload)

    assert meta.total_frames == 100
    assert meta.fps == 25.0
    assert meta.duration == 4.0


def test_metadata_uses_counted_frames_and_derives_fps() -> None:
    payload = {"streams": [{"codec_name": "vp9", "width": 640, "height": 360, "duration": "2.0", "nb_read_frames": "48"}]}

    meta = metadata_from_probe(payload)

    assert meta.total_frames == 48
    assert meta.fps == 24.0


@pytest.mark.parametrize(
    "payload",
    [
        {"streams": []},
        {"streams": [{"codec_name": "h264"}]},
        {"streams": [{"width": 1, "height": 1}]},
        {"streams": [{"codec_name": "h264", "width": 1, "height": 1}]},
    ],
)
def test_metadata_errors(payload) -> None:
    with pytest.raises(ProbeError):
        metadata_from_probe(payload)


def test_timestamps_skip_missing_values() -> None:
    payload = {"frames": [{"pkt_pts_time": "1.0"}, {"pkt_pts_time": "N/A"}, {}, {"pkt_pts_time": "1.5"}]}

    assert timestamps_from_probe(payload, "pkt_pts_time") == [0.0, 0.5]


def test_probe_frame_timestamps_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_probe(path, **kwargs):
        calls.append(kwargs["show_entries"])
        if kwargs["show_entries"] == "frame=pkt_dts_time":
            return {"frames": [{"pkt_dts_time": "0.2"}, {"pkt_dts_time": "0.6"}]}
        return {"frames": []}

    monkeypatch.setattr(probe.ffmpeg, "probe", fake_probe)

    assert probe_frame_timestamps("clip.mp4") == pytest.approx([0.0, 0.4])
    assert calls == [
        "frame=best_effort_timestamp_time",
        "frame=pkt_pts_time",
        "frame=pkt_dts_time",
    ]


def test_probe_frame_timestamps_all_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(probe.ffmpeg, "probe", lambda path, **kwargs: {"frames": []})

    with pytest.raises(ProbeError):
        probe_frame_timestamps("clip.mp4")


def test_probe_failure_is_wrapped(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_probe(path, **kwargs):
        raise ffmpeg.Error("ffprobe", b"", b"moov atom not found")

    monkeypatch.setattr(probe.ffmpeg, "probe", failing_probe)

    with pytest.raises(ProbeError, match="moov atom not found"):
        probe.probe_video("broken.mp4")
