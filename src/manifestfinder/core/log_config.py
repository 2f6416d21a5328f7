"""
日志配置类

统一管理 ManifestFinder 各组件的日志行为
"""
import logging
from dataclasses import dataclass


@dataclass
class LogConfig:
    """日志配置类

    Attributes:
        log_dir: 日志文件目录（默认 ./logs）
        level: 日志级别（默认 INFO）
    """
    log_dir: str = "./logs"
    level: int = logging.INFO

    @staticmethod
    def parse_level(level_str) -> int:
        """解析日志级别字符串

        Args:
            level_str: 日志级别字符串（如 "DEBUG", "INFO"），整数原样返回

        Returns:
            日志级别整数值，无法识别时回退到 INFO
        """
        if isinstance(level_str, int):
            return level_str
        level = getattr(logging, str(level_str).strip().upper(), None)
        return level if isinstance(level, int) else logging.INFO
