"""核心模块入口，聚合数据模型、异常与配置加载工具供各步骤复用。"""

from .datamodels import Frame, SceneSegment, VideoDescriptor, VideoMetadata, normalize_timestamps
from .config import PipelineConfig, load_config
from .errors import VidBatchError
from .logging_utils import ProgressEvent, ProgressSink, get_logger, notify, setup_logging
from .paths import resolve_work_root

__all__ = [
    "Frame",
    "SceneSegment",
    "VideoDescriptor",
    "VideoMetadata",
    "normalize_timestamps",
    "PipelineConfig",
    "load_config",
    "VidBatchError",
    "ProgressEvent",
    "ProgressSink",
    "get_logger",
    "notify",
    "setup_logging",
    "resolve_work_root",
]
