"""Tests for BrowserHandle acquire/release and its reconnect policy."""

import pytest
from playwright.async_api import Error as PlaywrightError

from hr_browser import BrowserHandle, BrowserUnavailableError, is_disconnect_error
from tests.fakes import FakePlaywright


class TestAcquireRelease:
    @pytest.mark.asyncio
    async def test_acquire_launches_once_and_reuses_context(self):
        pw = FakePlaywright()
        handle = BrowserHandle(playwright_factory=pw)

        first = await handle.acquire()
        second = await handle.acquire()

        assert first is second
        assert len(pw.chromium.browsers) == 1
        assert pw.starts == 1
        await handle.release()

    @pytest.mark.asyncio
    async def test_launch_options_are_forwarded(self):
        pw = FakePlaywright()
        handle = BrowserHandle(
            headless=False,
            slow_mo=25,
            user_agent="Bot/1.0",
            launch_args=["--no-sandbox"],
            playwright_factory=pw,
        )

        context = await handle.acquire()

        assert pw.chromium.launch_kwargs[0] == {"headless": False, "slow_mo": 25, "args": ["--no-sandbox"]}
        assert context.kwargs == {"user_agent": "Bot/1.0"}
        await handle.release()

    @pytest.mark.asyncio
    async def test_release_closes_everything_and_is_idempotent(self):
        pw = FakePlaywright()
        handle = BrowserHandle(playwright_factory=pw)
        context = await handle.acquire()
        browser = pw.chromium.browsers[0]

        await handle.release()
        await handle.release()

        assert context.closed
        assert browser.closed
        assert pw.stopped
        assert not handle.connected

    @pytest.mark.asyncio
    async def test_async_with_releases(self):
        pw = FakePlaywright()
        async with BrowserHandle(playwright_factory=pw) as handle:
            await handle.new_page()
        assert pw.stopped
        assert pw.chromium.browsers[0].closed


class TestReconnect:
    @pytest.mark.asyncio
    async def test_disconnect_triggers_relaunch_on_next_acquire(self):
        pw = FakePlaywright()
        handle = BrowserHandle(playwright_factory=pw)
        first = await handle.acquire()

        pw.chromium.browsers[0].crash()
        assert not handle.connected

        second = await handle.acquire()
        assert second is not first
        assert len(pw.chromium.browsers) == 2
        assert handle.launches == 2
        await handle.release()

    @pytest.mark.asyncio
    async def test_relaunch_limit(self):
        pw = FakePlaywright()
        handle = BrowserHandle(max_relaunches=1, playwright_factory=pw)

        await handle.acquire()
        await handle.reconnect()

        with pytest.raises(BrowserUnavailableError):
            await handle.reconnect()
        await handle.release()

    @pytest.mark.asyncio
    async def test_run_retries_once_after_disconnect(self):
        pw = FakePlaywright()
        handle = BrowserHandle(playwright_factory=pw)
        seen = []

        async def job(context, value):
            seen.append(context)
            if len(seen) == 1:
                raise PlaywrightError("Target page, context or browser has been closed")
            return value

        assert await handle.run(job, "ok") == "ok"
        assert len(seen) == 2
        assert seen[0] is not seen[1]
        assert len(pw.chromium.browsers) == 2
        await handle.release()

    @pytest.mark.asyncio
    async def test_run_does_not_retry_other_errors(self):
        pw = FakePlaywright()
        handle = BrowserHandle(playwright_factory=pw)
        calls = []

        async def job(context):
            calls.append(context)
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(PlaywrightError):
            await handle.run(job)
        assert len(calls) == 1
        await handle.release()


def test_is_disconnect_error():
    assert is_disconnect_error(PlaywrightError("Browser has been closed"))
    assert not is_disconnect_error(PlaywrightError("Timeout 30000ms exceeded"))
    assert not is_disconnect_error(RuntimeError("Target closed"))
