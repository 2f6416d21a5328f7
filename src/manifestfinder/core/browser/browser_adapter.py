'''
BrowserAdapter 抽象层。

它定义了查找逻辑（ManifestFinder）与浏览器执行层之间的契约，逻辑层只依赖这里的接口，
具体实现见 playwright_adapter.py，测试中可以用假的实现替换。

BrowserSession：

    一次查找独占的浏览器会话，只有一个页面。由 create_session() 创建（不做 I/O），
    start() 真正启动浏览器。close() 可以重复调用，但只会真正关闭一次。

InterceptedRequest：

    被拦截的一个出站请求。每个请求只能被放行或中止一次，
    再次处理会抛出 InterceptionAlreadyHandledError，调用方可以先检查 is_handled。
'''
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional


class InterceptedRequest(ABC):
    """
    [Input] 拦截回调收到的请求对象。
    """

    @property
    @abstractmethod
    def url(self) -> str:
        """请求的完整 URL"""
        pass

    @property
    @abstractmethod
    def is_handled(self) -> bool:
        """该请求是否已经被放行或中止"""
        pass

    @abstractmethod
    async def abort(self) -> None:
        """中止请求"""
        pass

    @abstractmethod
    async def proceed(self) -> None:
        """放行请求"""
        pass


RequestHandler = Callable[[InterceptedRequest], Awaitable[None]]


class BrowserSession(ABC):
    """
    一次性的浏览器会话（一个浏览器实例 + 一个页面）。
    """

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """浏览器是否仍在运行"""
        pass

    @abstractmethod
    async def start(self) -> None:
        """启动浏览器并创建页面，失败时抛出 SessionSetupError"""
        pass

    @abstractmethod
    async def intercept(self, handler: RequestHandler) -> None:
        """拦截页面的所有出站请求，每个请求交给 handler 决定放行还是中止"""
        pass

    @abstractmethod
    async def disable_interception(self) -> None:
        """尽力停止后续请求的处理，失败时抛出 TeardownError"""
        pass

    @abstractmethod
    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 10000) -> None:
        """导航到 url，失败或超时抛出 NavigationError"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """关闭会话。只有第一次调用真正生效，失败时抛出 TeardownError"""
        pass


class BrowserAdapter(ABC):
    """
    浏览器自动化层的统一接口，负责创建相互隔离的会话。
    """

    @abstractmethod
    def create_session(
        self,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        user_agent: Optional[str] = None,
    ) -> BrowserSession:
        """创建一个尚未启动的会话对象"""
        pass
