"""轻量日志与进度工具，便于后续切换更复杂的观测方案。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional


def setup_logging(level: str = "INFO") -> None:
    """设置全局日志级别，默认 INFO，可在 CLI 入口覆盖。"""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """获取模块专属 logger。"""

    return logging.getLogger(name or "vidbatch")


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """进度通知：说明文字与 0-100 的百分比。"""

    message: str
    percent: int


ProgressSink = Callable[[ProgressEvent], None]


def notify(sink: Optional[ProgressSink], message: str, percent: float) -> None:
    """尽力而为地发送进度；sink 出错只记 debug 日志，不影响计算。"""

    if sink is None:
        return
    event = ProgressEvent(message=message, percent=int(max(0.0, min(100.0, percent))))
    try:
        sink(event)
    except Exception:  # noqa: BLE001 - 进度投递失败不应中断主流程
        get_logger(__name__).debug("progress sink failed for %r", event, exc_info=True)


def scaled_sink(sink: Optional[ProgressSink], start: float, end: float) -> Optional[ProgressSink]:
    """把子步骤的 0-100 进度映射到总进度的 [start, end] 区间。"""

    if sink is None:
        return None

    def _forward(event: ProgressEvent) -> None:
        percent = start + (end - start) * event.percent / 100.0
        sink(ProgressEvent(message=event.message, percent=int(percent)))

    return _forward
