"""工作流测试：探测、抽帧与 ffmpeg 均替换为桩，仅验证编排逻辑。"""

import random
from datetime import datetime
from pathlib import Path
from typing import List

import numpy as np
import pytest

from vidbatch import workflows
from vidbatch.core import Frame, PipelineConfig, SceneSegment, VideoDescriptor, VideoMetadata
from vidbatch.core.config import PoolConfig, SegmentConfig
from vidbatch.core.errors import NoSceneChangeDetected, VideoDirectoryError
from vidbatch.core.paths import video_scratch_dir
from vidbatch.pool import SamplingPoolManager


class FakeExecutor:
    def __init__(self) -> None:
        self.cuts = []
        self.concats = []

    def cut_segment(self, source, output, time_range):
        self.cuts.append((output, time_range))
        return output

    def concat(self, inputs, filter_graph, output):
        self.concats.append((list(inputs), filter_graph, output))
        return output


def color_frames(colors: List[int]) -> List[Frame]:
    return [
        Frame(index=idx, timestamp=float(idx), image=np.full((8, 8, 3), color, dtype=np.uint8))
        for idx, color in enumerate(colors)
    ]


@pytest.fixture()
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        segment=SegmentConfig(threshold=0.6, min_segment_seconds=0.0),
        pool=PoolConfig(seed=11),
        work_root=tmp_path / "work",
    )


@pytest.fixture()
def stub_media(monkeypatch: pytest.MonkeyPatch):
    colors = [20, 20, 20, 220, 220, 220, 90, 90, 90]
    monkeypatch.setattr(
        workflows,
        "probe_metadata",
        lambda path: VideoMetadata(width=640, height=360, fps=1.0, duration=9.0, total_frames=9, codec="h264"),
    )
    monkeypatch.setattr(workflows, "extract_frames", lambda path, work_root, width=320: color_frames(colors))
    monkeypatch.setattr(
        workflows,
        "probe_video",
        lambda path: VideoDescriptor(
            name=Path(path).name,
            codec="h264",
            width=640,
            height=360,
            fps=30.0,
            duration=3.0,
            has_audio=Path(path).name != "silent.mp4",
        ),
    )


def test_auto_split_writes_numbered_segments(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    executor = FakeExecutor()
    events = []

    result = workflows.auto_split_video(
        tmp_path / "clip.mp4", tmp_path / "out", config, progress=events.append, executor=executor
    )

    assert result.segments == [SceneSegment(0, 2), SceneSegment(3, 5), SceneSegment(6, 8)]
    assert result.original_count == 3
    assert result.outputs == [tmp_path / "out" / "clip" / f"clip_{n}.mp4" for n in (1, 2, 3)]
    assert [(r.start, r.duration) for _, r in executor.cuts] == [(0.0, 3.0), (3.0, 3.0), (6.0, 3.0)]
    assert events[-1].percent == 100
    assert all(0 <= event.percent <= 100 for event in events)


def test_auto_split_applies_trim(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    result = workflows.auto_split_video(
        tmp_path / "clip.mp4", tmp_path / "out", config, trim_first=True, executor=FakeExecutor()
    )

    assert result.segments == [SceneSegment(3, 5), SceneSegment(6, 8)]
    assert result.original_count == 3


def test_auto_split_without_scene_change(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    monkeypatch.setattr(workflows, "extract_frames", lambda path, work_root, width=320: color_frames([50] * 5))
    executor = FakeExecutor()

    with pytest.raises(NoSceneChangeDetected):
        workflows.auto_split_video(tmp_path / "clip.mp4", tmp_path / "out", config, executor=executor)
    assert executor.cuts == []


def test_load_frames_picks_source_by_strategy(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls = []
    monkeypatch.setattr(workflows, "extract_frames", lambda path, work_root, width=320: calls.append("extract") or [])
    monkeypatch.setattr(workflows, "read_stream_frames", lambda path, width=320: (calls.append("stream") or [], 25.0))

    workflows.load_frames(tmp_path / "a.mp4", PipelineConfig(work_root=tmp_path))
    workflows.load_frames(tmp_path / "a.mp4", PipelineConfig(segment=SegmentConfig(strategy="backoff"), work_root=tmp_path))

    assert calls == ["extract", "stream"]


def test_cut_segments_uses_supplied_ranges(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    monkeypatch.setattr(workflows, "probe_frame_timestamps", lambda path: [float(idx) for idx in range(9)])
    monkeypatch.setattr(workflows, "extract_frames", lambda *_args, **_kwargs: pytest.fail("不应抽帧"))
    executor = FakeExecutor()

    result = workflows.cut_segments(
        tmp_path / "clip.mp4", [SceneSegment(1, 3), SceneSegment(7, 8)], tmp_path / "out", config, executor=executor
    )

    assert result.outputs == [tmp_path / "out" / "clip" / f"clip_{n}.mp4" for n in (1, 2)]
    assert result.original_count == 2
    assert [(r.start, r.duration) for _, r in executor.cuts] == [(1.0, 3.0), (7.0, 2.0)]


def test_cut_segments_rejects_bad_range_before_cutting(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    monkeypatch.setattr(workflows, "probe_frame_timestamps", lambda path: [0.0, 1.0, 2.0])
    executor = FakeExecutor()

    with pytest.raises(ValueError):
        workflows.cut_segments(tmp_path / "clip.mp4", [SceneSegment(0, 1), SceneSegment(2, 5)], tmp_path / "out", config, executor=executor)
    with pytest.raises(ValueError):
        workflows.cut_segments(tmp_path / "clip.mp4", [], tmp_path / "out", config, executor=executor)
    assert executor.cuts == []


def test_repurpose_ending_drops_last_scene_and_appends(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    ending = tmp_path / "silent.mp4"
    ending.write_bytes(b"")
    source = tmp_path / "clip.mp4"
    executor = FakeExecutor()

    output = workflows.repurpose_ending(source, tmp_path / "out", config, new_ending=ending, executor=executor)

    assert output == tmp_path / "out" / "clip_processed.mp4"
    assert len(executor.cuts) == 2
    inputs, graph, target = executor.concats[0]
    assert target == output
    assert inputs[-1] == ending
    assert [path.name for path in inputs[:2]] == ["segment_1.mp4", "segment_2.mp4"]
    assert "concat=n=3:v=1:a=1" in graph
    assert "anullsrc" in graph
    assert not video_scratch_dir(config.work_root, source, "segments").exists()


def test_repurpose_ending_requires_existing_ending(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    executor = FakeExecutor()

    with pytest.raises(VideoDirectoryError):
        workflows.repurpose_ending(tmp_path / "clip.mp4", tmp_path / "out", config, new_ending=tmp_path / "nope.mp4", executor=executor)
    assert executor.cuts == []


def _library(tmp_path: Path, count: int = 5) -> Path:
    library = tmp_path / "library"
    library.mkdir()
    for idx in range(count):
        (library / f"v{idx}.mp4").write_bytes(b"")
    return library


def test_random_concat_cycles_through_pool(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    library = _library(tmp_path)
    executor = FakeExecutor()
    manager = SamplingPoolManager()

    result = workflows.random_concat(
        library,
        tmp_path / "out",
        config,
        count_min=2,
        count_max=2,
        runs=4,
        manager=manager,
        rng=random.Random(1),
        executor=executor,
        now=datetime(2024, 1, 2, 3, 4, 5),
    )

    assert [record.refilled for record in result.draws] == [False, False, False, True]
    assert [len(record.videos) for record in result.draws] == [2, 2, 1, 2]
    first_cycle = [video for record in result.draws[:3] for video in record.videos]
    assert sorted(first_cycle) == sorted(library.glob("*.mp4"))
    assert result.outputs[0] == tmp_path / "out" / "output_20240102_030405_1.mp4"
    assert len(executor.concats) == 4


def test_random_concat_single_run_name_and_ending(tmp_path: Path, config: PipelineConfig, stub_media) -> None:
    library = _library(tmp_path)
    ending = tmp_path / "ending.mp4"
    ending.write_bytes(b"")
    executor = FakeExecutor()

    result = workflows.random_concat(
        library,
        tmp_path / "out",
        config,
        count_min=7,
        count_max=9,
        ending=ending,
        manager=SamplingPoolManager(),
        executor=executor,
        now=datetime(2024, 1, 2, 3, 4, 5),
    )

    assert result.outputs == [tmp_path / "out" / "output_20240102_030405.mp4"]
    record = result.draws[0]
    assert 7 <= record.requested <= 9
    assert len(record.videos) == 5
    inputs, graph, _ = executor.concats[0]
    assert inputs[-1] == ending
    assert "concat=n=6" in graph


@pytest.mark.parametrize(("count_min", "count_max", "runs"), [(0, 2, 1), (3, 2, 1), (1, 2, 0)])
def test_random_concat_validates_counts(tmp_path: Path, config: PipelineConfig, count_min: int, count_max: int, runs: int) -> None:
    with pytest.raises(ValueError):
        workflows.random_concat(tmp_path, tmp_path / "out", config, count_min=count_min, count_max=count_max, runs=runs)


def test_random_concat_empty_directory(tmp_path: Path, config: PipelineConfig) -> None:
    with pytest.raises(VideoDirectoryError):
        workflows.random_concat(tmp_path, tmp_path / "out", config, count_min=1, count_max=1, manager=SamplingPoolManager())
