"""vidbatch：批量视频场景切分、随机抽取与拼接规划。"""

__version__ = "0.1.0"
