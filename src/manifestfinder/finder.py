"""
ManifestFinder：打开页面，监听出站请求，捕获第一个 .m3u8 请求的 URL。

流程：
    IDLE -> SEARCHING -> FOUND / TIMED_OUT -> CLOSED
    启动失败时 IDLE -> FAILED -> CLOSED

查找过程中的任何异常都不会抛给调用方，最终只返回链接或 None。
"""

import asyncio
import functools
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from .core.browser.browser_adapter import BrowserAdapter, BrowserSession, InterceptedRequest
from .core.config import FinderConfig
from .core.exceptions import InterceptionAlreadyHandledError
from .core.log_util import AutoLoggerMixin


class Decision(Enum):
    """对一个被拦截请求的处理决定"""
    CONTINUE = auto()   # 放行
    ABORT = auto()      # 中止
    CAPTURE = auto()    # 记录为 manifest 链接，然后中止


class SearchOutcome(Enum):
    """查找结束的原因（只用于日志，HTTP 层只返回 link）"""
    FOUND = auto()
    TIMED_OUT = auto()
    SETUP_FAILED = auto()
    INVALID_URL = auto()


class SearchPhase(Enum):
    IDLE = auto()
    SEARCHING = auto()
    FOUND = auto()
    TIMED_OUT = auto()
    FAILED = auto()
    CLOSED = auto()


_TRANSITIONS = {
    SearchPhase.IDLE: {SearchPhase.SEARCHING, SearchPhase.FAILED},
    SearchPhase.SEARCHING: {SearchPhase.FOUND, SearchPhase.TIMED_OUT, SearchPhase.FAILED},
    SearchPhase.FOUND: {SearchPhase.CLOSED},
    SearchPhase.TIMED_OUT: {SearchPhase.CLOSED},
    SearchPhase.FAILED: {SearchPhase.CLOSED},
    SearchPhase.CLOSED: set(),
}


@dataclass
class InterceptionState:
    """
    单次查找的拦截状态。

    link_found 一旦为 True 不会再变回 False，captured_link 只会被赋值一次。
    """
    suffix: str = ".m3u8"
    link_found: bool = False
    captured_link: Optional[str] = None
    completed: asyncio.Event = field(default_factory=asyncio.Event)

    def is_manifest(self, url: str) -> bool:
        return bool(url) and url.endswith(self.suffix)

    def capture(self, url: str) -> bool:
        """记录链接并发出完成信号，只有第一次调用返回 True"""
        if self.link_found:
            return False
        self.link_found = True
        self.captured_link = url
        self.completed.set()
        return True


def decide(state: InterceptionState, url: str) -> Decision:
    """按顺序判断：已找到 -> 中止；是 manifest -> 捕获；否则放行"""
    if state.link_found:
        return Decision.ABORT
    if state.is_manifest(url):
        return Decision.CAPTURE
    return Decision.CONTINUE


@dataclass
class SearchContext:
    """一次查找的全部可变状态，不在请求之间共享"""
    url: str
    interception: InterceptionState
    search_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    phase: SearchPhase = SearchPhase.IDLE
    started: float = field(default_factory=time.monotonic)

    def transition(self, phase: SearchPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Illegal transition {self.phase.name} -> {phase.name}")
        self.phase = phase

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started


@dataclass
class SearchReport:
    """查找结果"""
    link: Optional[str]
    outcome: SearchOutcome
    elapsed: float = 0.0


class ManifestFinder(AutoLoggerMixin):
    """
    在页面的网络请求中查找第一个 manifest 链接。

    同一个实例可以被并发调用，每次调用使用独立的会话和状态。
    """
    _custom_log_filename = "ManifestFinder.log"

    def __init__(self, adapter: BrowserAdapter, config: Optional[FinderConfig] = None):
        self.adapter = adapter
        self.config = config or FinderConfig()

    async def find(self, url: str) -> Optional[str]:
        """返回第一个 manifest 链接，没找到返回 None"""
        report = await self.search(url)
        return report.link

    async def search(self, url: str) -> SearchReport:
        if not url:
            self.logger.error("Error: URL is required.")
            return SearchReport(link=None, outcome=SearchOutcome.INVALID_URL)

        ctx = SearchContext(url=url, interception=InterceptionState(suffix=self.config.manifest_suffix))
        state = ctx.interception
        session: Optional[BrowserSession] = None
        nav_task: Optional[asyncio.Task] = None
        link: Optional[str] = None

        self.echo(f"[{ctx.search_id}] Attempting to scrape: {url}")

        try:
            self.logger.info(f"[{ctx.search_id}] Launching browser...")
            session = self.adapter.create_session(
                headless=self.config.headless,
                launch_args=self.config.launch_args,
                user_agent=self.config.user_agent,
            )
            await session.start()

            self.logger.info(f"[{ctx.search_id}] Setting up network request interception...")
            await session.intercept(functools.partial(self._handle_request, ctx, session))
            ctx.transition(SearchPhase.SEARCHING)

            self.logger.info(
                f"[{ctx.search_id}] Navigating to {url}... "
                f"(will stop once {state.suffix} is found or after timeout)"
            )
            nav_task = asyncio.create_task(self._navigate(ctx, session))

            self.logger.info(
                f"[{ctx.search_id}] Waiting up to {self.config.find_timeout:g} seconds for the M3U8 link..."
            )
            try:
                await asyncio.wait_for(state.completed.wait(), timeout=self.config.find_timeout)
            except asyncio.TimeoutError:
                pass

            link = state.captured_link
            ctx.transition(SearchPhase.FOUND if link else SearchPhase.TIMED_OUT)
        except Exception as e:
            link = state.captured_link
            if not state.link_found:
                self.logger.error(f"[{ctx.search_id}] An error occurred during setup or navigation: {e}")
        finally:
            # 启动失败或调用方取消时仍停留在 IDLE/SEARCHING
            if ctx.phase in (SearchPhase.IDLE, SearchPhase.SEARCHING):
                ctx.transition(SearchPhase.FAILED)
            final_phase = ctx.phase

            if nav_task is not None and not nav_task.done():
                nav_task.cancel()
            if nav_task is not None:
                await asyncio.gather(nav_task, return_exceptions=True)
            if session is not None:
                await self._teardown(ctx, session)
            ctx.transition(SearchPhase.CLOSED)

        elapsed = ctx.elapsed
        if link:
            outcome = SearchOutcome.FOUND
            self.echo(f"[{ctx.search_id}] ✅ Successfully extracted M3U8 Link in {elapsed:.2f}s: {link}")
        elif final_phase is SearchPhase.FAILED:
            outcome = SearchOutcome.SETUP_FAILED
            self.echo(
                f"[{ctx.search_id}] ❌ Search aborted after {elapsed:.2f}s, browser session could not be set up."
            )
        else:
            outcome = SearchOutcome.TIMED_OUT
            self.echo(
                f"[{ctx.search_id}] ❌ M3U8 link not detected within {self.config.find_timeout:g} seconds "
                f"(elapsed {elapsed:.2f}s)."
            )
        return SearchReport(link=link, outcome=outcome, elapsed=elapsed)

    async def _navigate(self, ctx: SearchContext, session: BrowserSession) -> None:
        """后台导航。导航失败只记录警告，捕获可能已经独立完成"""
        try:
            await session.navigate(
                ctx.url,
                wait_until=self.config.wait_until,
                timeout_ms=self.config.find_timeout_ms,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not ctx.interception.link_found:
                self.logger.warning(
                    f"[{ctx.search_id}] Navigation potentially failed before M3U8 link found: {e}"
                )
            else:
                self.logger.info(
                    f"[{ctx.search_id}] Navigation ended (or timed out), but M3U8 link was already found."
                )

    async def _handle_request(self, ctx: SearchContext, session: BrowserSession, request: InterceptedRequest) -> None:
        state = ctx.interception
        url = request.url
        decision = decide(state, url)

        if decision is Decision.CAPTURE:
            if state.capture(url):
                self.logger.info(f"[{ctx.search_id}] ---> Found potential M3U8 request: {url}")
                try:
                    await session.disable_interception()
                except Exception as e:
                    self.logger.warning(
                        f"[{ctx.search_id}] Could not disable request interception during cleanup: {e}"
                    )
            await self._resolve(ctx, request, Decision.ABORT)
        else:
            await self._resolve(ctx, request, decision)

    async def _resolve(self, ctx: SearchContext, request: InterceptedRequest, decision: Decision) -> None:
        """放行或中止请求，重复处理和处理失败都只记录不抛出"""
        # 放行前再检查一次，链接已找到时一律中止
        if decision is Decision.CONTINUE and ctx.interception.link_found:
            decision = Decision.ABORT

        if request.is_handled:
            self.logger.debug(f"[{ctx.search_id}] Request already handled, skipping: {request.url}")
            return

        try:
            if decision is Decision.CONTINUE:
                await request.proceed()
            else:
                await request.abort()
        except InterceptionAlreadyHandledError:
            self.logger.debug(f"[{ctx.search_id}] Request already handled, skipping: {request.url}")
        except Exception as e:
            self.logger.warning(f"[{ctx.search_id}] Could not {decision.name.lower()} request {request.url}: {e}")

    async def _teardown(self, ctx: SearchContext, session: BrowserSession) -> None:
        self.logger.info(f"[{ctx.search_id}] Closing browser (finally block)...")
        try:
            await session.close()
        except Exception as e:
            self.logger.warning(f"[{ctx.search_id}] Error closing browser: {e}")
