"""
运行配置

所有常量集中在 FinderConfig 中。进程启动时可以通过 .env 或
MANIFESTFINDER_* 环境变量覆盖，请求处理期间不再读取环境。
"""
import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .log_config import LogConfig


DEFAULT_TARGET_URL = "https://www.bloomberg.com/live/us"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
)
DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]

ENV_PREFIX = "MANIFESTFINDER_"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class FinderConfig:
    """ManifestFinder 与 HTTP 服务的配置

    Attributes:
        target_url: 抓取的页面（固定，不接受请求参数）
        find_timeout_ms: 等待 m3u8 请求的最长时间，同时也是导航超时
        manifest_suffix: 判定为 manifest 的 URL 后缀
        headless: 是否无头启动
        launch_args: 浏览器启动参数
        user_agent: 模拟真实浏览器的 UA
        wait_until: 导航就绪条件，m3u8 请求通常很早发出，所以用 domcontentloaded
        host / port: HTTP 监听地址
        log: 日志配置
    """
    target_url: str = DEFAULT_TARGET_URL
    find_timeout_ms: int = 10000
    manifest_suffix: str = ".m3u8"
    headless: bool = True
    launch_args: List[str] = field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    user_agent: str = DEFAULT_USER_AGENT
    wait_until: str = "domcontentloaded"
    host: str = "0.0.0.0"
    port: int = 3000
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def find_timeout(self) -> float:
        """超时时间（秒）"""
        return self.find_timeout_ms / 1000

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'FinderConfig':
        """从 .env 文件和环境变量构建配置

        Args:
            env_file: .env 文件路径，存在且可读时才加载
        """
        if env_file and os.path.exists(env_file) and os.access(env_file, os.R_OK):
            load_dotenv(env_file)

        def env(name: str) -> Optional[str]:
            value = os.getenv(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        config = cls()
        if env("TARGET_URL"):
            config.target_url = env("TARGET_URL")
        if env("FIND_TIMEOUT_MS"):
            config.find_timeout_ms = int(env("FIND_TIMEOUT_MS"))
        if env("HEADLESS"):
            config.headless = _parse_bool(env("HEADLESS"))
        if env("USER_AGENT"):
            config.user_agent = env("USER_AGENT")
        if env("HOST"):
            config.host = env("HOST")
        if env("PORT"):
            config.port = int(env("PORT"))

        config.log = LogConfig(
            log_dir=env("LOG_DIR") or config.log.log_dir,
            level=LogConfig.parse_level(env("LOG_LEVEL") or logging.INFO),
        )
        return config
