"""
测试 ManifestFinder 的拦截竞争逻辑

用 FakeSession 模拟页面发出的请求序列，覆盖：
1. 第一个 m3u8 请求胜出
2. 捕获后其余请求全部被中止
3. 超时、启动失败、导航失败、关闭失败
4. 每次查找只关闭一次会话
"""

import asyncio
import logging
import time

import pytest

from fake_browser import FakeAdapter, FakeRequest, FakeSession

from manifestfinder.core.config import FinderConfig
from manifestfinder.core.exceptions import (
    NavigationError,
    SessionSetupError,
    TeardownError,
)
from manifestfinder.finder import (
    Decision,
    InterceptionState,
    ManifestFinder,
    SearchContext,
    SearchOutcome,
    SearchPhase,
    decide,
)

PAGE = "https://news.example.com/live"


def make_finder(*sessions, timeout_ms=500):
    config = FinderConfig(target_url=PAGE, find_timeout_ms=timeout_ms)
    adapter = FakeAdapter(*sessions)
    return ManifestFinder(adapter, config), adapter


# ---------- 决策函数 ----------

def test_decide_order():
    state = InterceptionState()
    assert decide(state, "https://cdn.example.com/app.js") is Decision.CONTINUE
    assert decide(state, "https://cdn.example.com/live/playlist.m3u8") is Decision.CAPTURE

    state.capture("https://cdn.example.com/live/playlist.m3u8")
    assert decide(state, "https://cdn.example.com/app.js") is Decision.ABORT
    assert decide(state, "https://cdn.example.com/live/other.m3u8") is Decision.ABORT


def test_decide_requires_suffix_at_end():
    state = InterceptionState()
    assert decide(state, "https://cdn.example.com/playlist.m3u8?token=abc") is Decision.CONTINUE
    assert decide(state, "https://cdn.example.com/playlist.m3u8.js") is Decision.CONTINUE


def test_capture_only_once():
    state = InterceptionState()
    assert state.capture("https://a.example.com/a.m3u8")
    assert not state.capture("https://b.example.com/b.m3u8")
    assert state.link_found
    assert state.captured_link == "https://a.example.com/a.m3u8"
    assert state.completed.is_set()


def test_illegal_phase_transition():
    ctx = SearchContext(url=PAGE, interception=InterceptionState())
    ctx.transition(SearchPhase.SEARCHING)
    ctx.transition(SearchPhase.TIMED_OUT)
    with pytest.raises(RuntimeError):
        ctx.transition(SearchPhase.FOUND)
    ctx.transition(SearchPhase.CLOSED)
    with pytest.raises(RuntimeError):
        ctx.transition(SearchPhase.SEARCHING)


# ---------- 查找流程 ----------

async def test_finds_manifest_link():
    session = FakeSession(script=[
        (0, "https://news.example.com/app.js"),
        (0.05, "https://cdn.example.com/live/playlist.m3u8"),
    ])
    finder, adapter = make_finder(session)

    report = await finder.search(PAGE)

    assert report.link == "https://cdn.example.com/live/playlist.m3u8"
    assert report.outcome is SearchOutcome.FOUND
    assert session.navigated_to == PAGE
    assert session.navigate_kwargs == {"wait_until": "domcontentloaded", "timeout_ms": 500}
    assert session.requests[0].action == "continue"
    # manifest 请求本身也被中止
    assert session.requests[1].action == "abort"
    assert session.disable_calls == 1
    assert session.close_calls == 1


async def test_session_uses_configured_identity():
    finder, adapter = make_finder(FakeSession(script=[(0, "https://cdn.example.com/a.m3u8")]))
    await finder.find(PAGE)

    kwargs = adapter.create_kwargs[0]
    assert kwargs["headless"] is True
    assert "--no-sandbox" in kwargs["launch_args"]
    assert "--disable-blink-features=AutomationControlled" in kwargs["launch_args"]
    assert kwargs["user_agent"].startswith("Mozilla/5.0")


async def test_first_manifest_wins():
    session = FakeSession(script=[
        (0, "https://cdn.example.com/a.m3u8"),
        (0.05, "https://cdn.example.com/b.m3u8"),
    ])
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) == "https://cdn.example.com/a.m3u8"


async def test_requests_after_capture_are_aborted():
    session = FakeSession(script=[
        (0, "https://news.example.com/app.js"),
        (0, "https://cdn.example.com/a.m3u8"),
        (0, "https://cdn.example.com/b.m3u8"),
        (0, "https://news.example.com/style.css"),
        (0, "https://ads.example.com/pixel.gif"),
    ])
    finder, _ = make_finder(session)

    link = await finder.find(PAGE)

    assert link == "https://cdn.example.com/a.m3u8"
    actions = [r.action for r in session.requests]
    assert actions == ["continue", "abort", "abort", "abort", "abort"]
    # 只在第一次捕获时关闭拦截
    assert session.disable_calls == 1


async def test_timeout_returns_none():
    session = FakeSession(script=[
        (0, "https://news.example.com/app.js"),
        (0, "https://news.example.com/video.mp4"),
    ])
    finder, _ = make_finder(session, timeout_ms=200)

    started = time.monotonic()
    report = await finder.search(PAGE)
    elapsed = time.monotonic() - started

    assert report.link is None
    assert report.outcome is SearchOutcome.TIMED_OUT
    assert elapsed >= 0.2
    assert elapsed < 0.2 + 1.0
    assert 0.2 <= report.elapsed <= elapsed
    assert all(r.action == "continue" for r in session.requests)
    assert session.close_calls == 1


async def test_empty_url_creates_no_session():
    finder, adapter = make_finder(FakeSession())

    report = await finder.search("")
    assert report.link is None
    assert report.outcome is SearchOutcome.INVALID_URL
    assert await finder.find(None) is None
    assert adapter.created == []


async def test_setup_failure_returns_none_and_closes_once():
    session = FakeSession(start_error=SessionSetupError("browser launch failed"))
    finder, _ = make_finder(session)

    report = await finder.search(PAGE)

    assert report.link is None
    assert report.outcome is SearchOutcome.SETUP_FAILED
    assert session.close_calls == 1
    assert session.navigated_to is None


async def test_unexpected_setup_error_is_contained():
    session = FakeSession(intercept_error=RuntimeError("out of memory"))
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) is None
    assert session.close_calls == 1


async def test_navigation_error_after_capture_keeps_link():
    session = FakeSession(
        script=[(0, "https://cdn.example.com/live/playlist.m3u8")],
        navigate_error=NavigationError("Timeout 500ms exceeded", url=PAGE),
    )
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) == "https://cdn.example.com/live/playlist.m3u8"
    assert session.close_calls == 1


async def test_navigation_error_before_capture_waits_for_deadline():
    session = FakeSession(
        navigate_error=NavigationError("net::ERR_NAME_NOT_RESOLVED", url=PAGE),
        hang_after_script=False,
    )
    finder, _ = make_finder(session, timeout_ms=150)

    started = time.monotonic()
    report = await finder.search(PAGE)

    assert report.link is None
    assert report.outcome is SearchOutcome.TIMED_OUT
    assert time.monotonic() - started >= 0.15
    assert session.close_calls == 1


async def test_teardown_failure_does_not_mask_capture():
    session = FakeSession(
        script=[(0, "https://cdn.example.com/a.m3u8")],
        close_error=TeardownError("browser already gone"),
    )
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) == "https://cdn.example.com/a.m3u8"
    assert session.close_calls == 1


async def test_disable_interception_failure_is_ignored():
    session = FakeSession(
        script=[
            (0, "https://cdn.example.com/a.m3u8"),
            (0, "https://news.example.com/app.js"),
        ],
        disable_error=TeardownError("page closed"),
    )
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) == "https://cdn.example.com/a.m3u8"
    assert [r.action for r in session.requests] == ["abort", "abort"]


async def test_already_handled_requests_are_skipped():
    handled = FakeRequest("https://news.example.com/app.js", handled=True)
    raced = FakeRequest("https://news.example.com/font.woff", race_on_resolve=True)
    session = FakeSession(script=[
        (0, handled),
        (0, raced),
        (0, "https://cdn.example.com/a.m3u8"),
    ])
    finder, _ = make_finder(session)

    assert await finder.find(PAGE) == "https://cdn.example.com/a.m3u8"
    # 已处理的请求不会再被处理
    assert handled.resolve_calls == 0
    assert handled.action == "preresolved"
    # 并发抢先处理的请求只尝试一次，异常被吞掉
    assert raced.resolve_calls == 1


async def test_concurrent_searches_are_isolated():
    first = FakeSession(script=[(0.05, "https://cdn.example.com/first.m3u8")])
    second = FakeSession(script=[(0, "https://news.example.com/app.js")])
    finder, adapter = make_finder(first, second, timeout_ms=300)

    results = await asyncio.gather(finder.search(PAGE), finder.search(PAGE))

    assert results[0].link == "https://cdn.example.com/first.m3u8"
    assert results[1].link is None
    assert len(adapter.created) == 2
    assert first.close_calls == 1
    assert second.close_calls == 1


async def test_repeated_searches_use_new_sessions():
    first = FakeSession(script=[(0, "https://cdn.example.com/one.m3u8")])
    second = FakeSession(script=[(0, "https://cdn.example.com/two.m3u8")])
    finder, adapter = make_finder(first, second)

    assert await finder.find(PAGE) == "https://cdn.example.com/one.m3u8"
    assert await finder.find(PAGE) == "https://cdn.example.com/two.m3u8"
    assert adapter.created == [first, second]


async def test_cancelled_search_still_closes_session():
    session = FakeSession(script=[(0, "https://news.example.com/app.js")])
    finder, _ = make_finder(session, timeout_ms=5000)

    task = asyncio.create_task(finder.search(PAGE))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.close_calls == 1


async def test_final_report_logs_elapsed(caplog):
    session = FakeSession(script=[(0.05, "https://cdn.example.com/live/playlist.m3u8")])
    finder, _ = make_finder(session)
    finder._parent_logger = logging.getLogger("manifestfinder.test.elapsed")

    with caplog.at_level(logging.INFO, logger="manifestfinder.test.elapsed"):
        report = await finder.search(PAGE)

    assert report.outcome is SearchOutcome.FOUND
    assert report.elapsed >= 0.05
    summary = [r.getMessage() for r in caplog.records if "Successfully extracted" in r.getMessage()]
    assert len(summary) == 1
    assert summary[0].endswith(
        f"Successfully extracted M3U8 Link in {report.elapsed:.2f}s: https://cdn.example.com/live/playlist.m3u8"
    )
