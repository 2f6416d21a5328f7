"""
基于 Playwright (async API) 的 BrowserAdapter 实现类。

每个会话启动独立的 Chromium 进程，使用 page.route 拦截全部请求。
"""

import logging
import uuid
from typing import List, Optional, Any

from playwright.async_api import async_playwright, Error as PlaywrightError

from .browser_adapter import (
    BrowserAdapter,
    BrowserSession,
    InterceptedRequest,
    RequestHandler,
)
from ..exceptions import (
    InterceptionAlreadyHandledError,
    NavigationError,
    SessionSetupError,
    TeardownError,
)
from ..log_util import AutoLoggerMixin


class PlaywrightRequest(InterceptedRequest):
    """
    包装 Playwright 的 Route 对象。
    """

    def __init__(self, route):
        self._route = route
        self._handled = False

    @property
    def url(self) -> str:
        return self._route.request.url

    @property
    def is_handled(self) -> bool:
        return self._handled

    async def abort(self) -> None:
        await self._resolve(self._route.abort)

    async def proceed(self) -> None:
        await self._resolve(self._route.continue_)

    async def _resolve(self, action) -> None:
        if self._handled:
            raise InterceptionAlreadyHandledError(f"Request already handled: {self.url}")
        # 先置位再 await，防止并发的第二次处理
        self._handled = True
        try:
            await action()
        except PlaywrightError as e:
            if "already handled" in str(e).lower():
                raise InterceptionAlreadyHandledError(str(e)) from e
            raise


class PlaywrightSession(BrowserSession, AutoLoggerMixin):
    """
    Playwright 会话：playwright 驱动 + browser + context + page。
    """
    _custom_log_filename = "PlaywrightAdapter.log"
    _log_prefix_template = "[session-{session_id}]"

    def __init__(
        self,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        user_agent: Optional[str] = None,
        parent_logger: Optional[logging.Logger] = None,
    ):
        self.headless = headless
        self.launch_args = list(launch_args or [])
        self.user_agent = user_agent
        self._parent_logger = parent_logger
        self.session_id = uuid.uuid4().hex[:8]

        self._playwright: Optional[Any] = None
        self._browser: Optional[Any] = None
        self._context: Optional[Any] = None
        self.page: Optional[Any] = None
        self._closed = False

    def _get_log_context(self) -> dict:
        return {"session_id": self.session_id}

    @property
    def is_alive(self) -> bool:
        return (
            not self._closed
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def start(self) -> None:
        if self._closed:
            raise SessionSetupError("Session already closed")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
            )
            self._context = await self._browser.new_context(user_agent=self.user_agent)
            self.page = await self._context.new_page()
        except PlaywrightError as e:
            raise SessionSetupError(f"Failed to start browser session: {e}") from e
        self._log(logging.INFO, "Browser launched (headless=%s)", self.headless)

    async def intercept(self, handler: RequestHandler) -> None:
        if self.page is None:
            raise SessionSetupError("Browser not started. Call start() first.")

        async def on_route(route):
            await handler(PlaywrightRequest(route))

        try:
            await self.page.route("**/*", on_route)
        except PlaywrightError as e:
            raise SessionSetupError(f"Failed to enable request interception: {e}") from e

    async def disable_interception(self) -> None:
        # 路由保持安装，让之后到达的请求仍然被中止；这里只让页面停止继续加载
        if self.page is None or self.page.is_closed():
            return
        try:
            await self.page.evaluate("() => window.stop()")
        except PlaywrightError as e:
            raise TeardownError(f"Could not stop page loading: {e}") from e

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout_ms: int = 10000) -> None:
        if self.page is None:
            raise NavigationError("Browser not started. Call start() first.", url=url)
        self._log(logging.INFO, f"Navigating to {url} (wait_until={wait_until}, timeout={timeout_ms}ms)")
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(str(e), url=url) from e

    async def close(self) -> None:
        """关闭浏览器进程并清理资源，所有步骤都会尝试，最后汇总错误"""
        if self._closed:
            return
        self._closed = True

        errors = []
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                errors.append(f"browser.close: {e}")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                errors.append(f"playwright.stop: {e}")

        self._browser = None
        self._context = None
        self.page = None
        self._playwright = None

        if errors:
            raise TeardownError("; ".join(errors))
        self._log(logging.INFO, "Browser closed")


class PlaywrightAdapter(BrowserAdapter, AutoLoggerMixin):
    """
    为每次查找创建独立的 PlaywrightSession。
    """

    def create_session(
        self,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        user_agent: Optional[str] = None,
    ) -> PlaywrightSession:
        return PlaywrightSession(
            headless=headless,
            launch_args=launch_args,
            user_agent=user_agent,
            parent_logger=self.logger,
        )
