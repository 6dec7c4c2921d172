"""vidbatch Typer CLI，便于在命令行触发切分、按区间切片、换结尾与随机拼接流程。"""

from __future__ import annotations

import json
import random
from pathlib import Path
from typing import List, Optional

import typer

from vidbatch.core import PipelineConfig, ProgressEvent, SceneSegment, VidBatchError, load_config, setup_logging
from vidbatch.segment.similarity import similarity as score_images
from vidbatch.workflows import auto_split_video, cut_segments, random_concat, repurpose_ending

app = typer.Typer(help="vidbatch 批量视频处理 CLI")


@app.callback()
def main() -> None:
    """vidbatch 顶层 CLI，占位以展示子命令列表。"""

    return None


def _resolve_config(config_path: Optional[Path]) -> PipelineConfig:
    return load_config(config_path) if config_path else load_config()


def _apply_segment_overrides(
    cfg: PipelineConfig,
    *,
    algorithm: Optional[str],
    threshold: Optional[float],
    min_duration: Optional[float],
    strategy: Optional[str],
) -> PipelineConfig:
    updates = {}
    if algorithm:
        updates["algorithm"] = algorithm
    if threshold is not None:
        updates["threshold"] = threshold
    if min_duration is not None:
        updates["min_segment_seconds"] = min_duration
    if strategy:
        updates["strategy"] = strategy
    if not updates:
        return cfg
    # 走一遍校验，非法算法/阈值在这里就报错
    segment = type(cfg.segment).model_validate({**cfg.segment.model_dump(), **updates})
    return cfg.model_copy(update={"segment": segment})


def _echo_progress(event: ProgressEvent) -> None:
    typer.echo(f"[{event.percent:3d}%] {event.message}")


def _fail(exc: Exception) -> None:
    typer.echo(f"处理失败：{exc}", err=True)
    raise typer.Exit(code=1) from exc


@app.command("split")
def split_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待拆分视频路径"),
    output_dir: Path = typer.Option(Path("output"), "--output-dir", "-o", help="片段输出目录"),
    algorithm: Optional[str] = typer.Option(None, "--algorithm", "-a", help="histogram/ssim/frame_diff"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="相似度阈值 (0-1)"),
    min_duration: Optional[float] = typer.Option(None, "--min-duration", help="最短片段时长（秒）"),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="threshold/backoff"),
    trim_first: Optional[bool] = typer.Option(None, "--trim-first/--no-trim-first", help="掐头：丢弃第一个片段（默认取配置）"),
    trim_last: Optional[bool] = typer.Option(None, "--trim-last/--no-trim-last", help="去尾：丢弃最后一个片段（默认取配置）"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """按帧相似度自动拆分单个视频。"""

    setup_logging(log_level)
    try:
        cfg = _apply_segment_overrides(
            _resolve_config(config_path),
            algorithm=algorithm,
            threshold=threshold,
            min_duration=min_duration,
            strategy=strategy,
        )
        result = auto_split_video(
            video,
            output_dir,
            cfg,
            trim_first=trim_first,
            trim_last=trim_last,
            progress=_echo_progress,
        )
    except (VidBatchError, ValueError) as exc:
        _fail(exc)
        return
    typer.echo(f"成功生成 {len(result.outputs)} 个视频片段（识别 {result.original_count} 个）")
    for path in result.outputs:
        typer.echo(str(path))


def _parse_segment(text: str) -> SceneSegment:
    start, sep, end = text.partition("-")
    if not sep:
        raise ValueError(f"片段格式应为 START-END: {text!r}")
    return SceneSegment(start_frame=int(start), end_frame=int(end))


@app.command("cut")
def cut_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待切分视频路径"),
    segments: List[str] = typer.Option(..., "--segment", "-s", help="帧区间 START-END（闭区间），可重复"),
    output_dir: Path = typer.Option(Path("output"), "--output-dir", "-o", help="片段输出目录"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """按给定帧区间切出片段，不做场景检测。"""

    setup_logging(log_level)
    try:
        ranges = [_parse_segment(text) for text in segments]
        result = cut_segments(video, ranges, output_dir, _resolve_config(config_path), progress=_echo_progress)
    except (VidBatchError, ValueError) as exc:
        _fail(exc)
        return
    typer.echo(f"成功生成 {len(result.outputs)} 个视频片段")
    for path in result.outputs:
        typer.echo(str(path))


@app.command("repurpose")
def repurpose_cmd(
    video: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="待处理视频路径"),
    output_dir: Path = typer.Option(Path("output"), "--output-dir", "-o", help="输出目录"),
    new_ending: Optional[Path] = typer.Option(None, "--ending", help="新的结尾视频"),
    shuffle: bool = typer.Option(False, "--shuffle", help="随机打乱剩余片段顺序"),
    seed: Optional[int] = typer.Option(None, "--seed", help="打乱顺序的随机种子"),
    algorithm: Optional[str] = typer.Option(None, "--algorithm", "-a", help="histogram/ssim/frame_diff"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="相似度阈值 (0-1)"),
    min_duration: Optional[float] = typer.Option(None, "--min-duration", help="最短片段时长（秒）"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """去掉原结尾片段，可选打乱顺序并拼接新结尾。"""

    setup_logging(log_level)
    try:
        cfg = _apply_segment_overrides(
            _resolve_config(config_path),
            algorithm=algorithm,
            threshold=threshold,
            min_duration=min_duration,
            strategy=None,
        )
        output = repurpose_ending(
            video,
            output_dir,
            cfg,
            new_ending=new_ending,
            shuffle=shuffle,
            rng=random.Random(seed) if seed is not None else None,
            progress=_echo_progress,
        )
    except (VidBatchError, ValueError) as exc:
        _fail(exc)
        return
    typer.echo(f"成功处理视频，输出文件: {output}")


@app.command("concat-random")
def concat_random_cmd(
    input_dir: Path = typer.Argument(..., exists=True, file_okay=False, resolve_path=True, help="素材目录"),
    output_dir: Path = typer.Option(Path("output"), "--output-dir", "-o", help="输出目录"),
    count_min: int = typer.Option(3, "--min", help="每次最少抽取数量"),
    count_max: int = typer.Option(3, "--max", help="每次最多抽取数量"),
    runs: int = typer.Option(1, "--runs", "-n", help="生成次数"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="目录最大递归层数"),
    ending: Optional[Path] = typer.Option(None, "--ending", help="追加到每个成品末尾的视频"),
    seed: Optional[int] = typer.Option(None, "--seed", help="随机种子"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """从目录视频池中不放回随机抽取并拼接，多次执行时池子抽完才重填。"""

    setup_logging(log_level)
    try:
        cfg = _resolve_config(config_path)
        pool_updates = {}
        if max_depth is not None:
            pool_updates["max_depth"] = max_depth
        if seed is not None:
            pool_updates["seed"] = seed
        if pool_updates:
            pool = type(cfg.pool).model_validate({**cfg.pool.model_dump(), **pool_updates})
            cfg = cfg.model_copy(update={"pool": pool})
        result = random_concat(
            input_dir,
            output_dir,
            cfg,
            count_min=count_min,
            count_max=count_max,
            runs=runs,
            ending=ending,
            progress=_echo_progress,
        )
    except (VidBatchError, ValueError) as exc:
        _fail(exc)
        return
    typer.echo(f"视频拼接完成！共生成 {len(result.outputs)} 个视频：")
    for path in result.outputs:
        typer.echo(str(path))


@app.command("similarity")
def similarity_cmd(
    image_a: Path = typer.Argument(..., exists=True, dir_okay=False, help="图片 A"),
    image_b: Path = typer.Argument(..., exists=True, dir_okay=False, help="图片 B"),
    algorithm: str = typer.Option("histogram", "--algorithm", "-a", help="histogram/ssim/frame_diff，all 表示全部"),
) -> None:
    """计算两张图片的相似度，用于调试阈值。"""

    names = ["histogram", "ssim", "frame_diff"] if algorithm == "all" else [algorithm]
    scores = {}
    try:
        for name in names:
            scores[name] = score_images(image_a, image_b, name)
    except VidBatchError as exc:
        _fail(exc)
        return
    typer.echo(json.dumps(scores, ensure_ascii=False))


if __name__ == "__main__":  # pragma: no cover
    app()
