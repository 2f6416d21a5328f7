import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


# 1. 过滤器：决定什么能上控制台
class ConsoleDisplayFilter(logging.Filter):
    def filter(self, record):
        # 错误(ERROR/CRITICAL) 必须显示
        if record.levelno >= logging.ERROR:
            return True

        # 携带 'echo' 标记的记录也显示
        if getattr(record, 'echo', False):
            return True

        return False


# ==========================================
# 1. LogFactory: 创建 Logger 和 Handler
# ==========================================
class LogFactory:
    _log_dir = "./logs"
    _formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )
    _default_level = logging.INFO

    @classmethod
    def set_log_dir(cls, path: str):
        cls._log_dir = path

    @classmethod
    def set_level(cls, level: int):
        """设置全局默认日志级别"""
        cls._default_level = level

    @classmethod
    def configure(cls, log_config) -> None:
        """用 LogConfig 一次性设置目录和级别"""
        cls.set_log_dir(log_config.log_dir)
        cls.set_level(log_config.level)

    @classmethod
    def get_logger(cls, logger_name: str, filename: str, level: int = None) -> logging.Logger:
        logger = logging.getLogger(logger_name)
        target_level = level if level is not None else cls._default_level
        logger.setLevel(target_level)
        logger.propagate = False

        if logger.handlers:
            return logger

        os.makedirs(cls._log_dir, exist_ok=True)

        # 文件 Handler: 收录所有记录
        file_path = os.path.join(cls._log_dir, filename)
        file_handler = RotatingFileHandler(
            file_path, maxBytes=10*1024*1024, backupCount=5, encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(cls._formatter)
        logger.addHandler(file_handler)

        # 控制台 Handler: 只显示错误和 echo
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.addFilter(ConsoleDisplayFilter())
        console_handler.setFormatter(cls._formatter)
        logger.addHandler(console_handler)

        return logger


# ==========================================
# 2. AutoLoggerMixin: 决定文件名，提供 self.logger / echo
# ==========================================
class AutoLoggerMixin:
    """
    日志 Mixin。

    优先级策略：
    1. 如果设置了 _parent_logger，则直接使用（不创建新文件）
    2. 如果设置了 _custom_log_filename = "yyy.log"，则文件名为 "yyy.log"
    3. 默认使用 类名.log
    """

    _custom_log_filename: Optional[str] = None

    _custom_log_level: Optional[int] = None

    _parent_logger: Optional[logging.Logger] = None
    _log_prefix_template: str = ""

    @property
    def logger(self) -> logging.Logger:
        # 懒加载：只有第一次调用时才初始化
        if not hasattr(self, '_internal_logger'):
            self._init_logger()
        return self._internal_logger

    def _init_logger(self):
        if self._parent_logger:
            self._internal_logger = self._parent_logger
            return

        filename = self._custom_log_filename or f"{self.__class__.__name__}.log"
        # 使用 "类名_文件名" 作为 logger 内部的 key
        logger_name = f"{self.__class__.__name__}_{filename}"

        self._internal_logger = LogFactory.get_logger(
            logger_name,
            filename,
            level=self._custom_log_level
        )

    def _get_log_prefix(self) -> str:
        if not self._log_prefix_template:
            return ""
        return self._log_prefix_template.format(**self._get_log_context())

    def _get_log_context(self) -> dict:
        """收集日志上下文变量（子类可覆盖）"""
        return {}

    def _log(self, level: int, msg: str, *args, **kwargs):
        """带前缀的日志方法"""
        prefix = self._get_log_prefix()
        prefixed_msg = f"{prefix} {msg}" if prefix else msg
        self.logger.log(level, prefixed_msg, *args, **kwargs)

    def echo(self, msg: str, *args, **kwargs):
        """
        既写日志文件，也输出到控制台。
        用法: self.echo("Server started on port %s", 3000)
        """
        if 'extra' not in kwargs:
            kwargs['extra'] = {}
        kwargs['extra']['echo'] = True

        self._log(logging.INFO, msg, *args, **kwargs)
