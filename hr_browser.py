from typing import Optional, List

from playwright.async_api import async_playwright, Error as PlaywrightError

from hr_common import log

# Messages Playwright raises once the browser process or its pipe is gone
DISCONNECT_MARKERS = (
    "Target closed",
    "Target page, context or browser has been closed",
    "Browser has been closed",
    "Browser closed",
    "Connection closed",
    "Session closed",
    "Protocol error",
)


class BrowserUnavailableError(RuntimeError):
    pass


def is_disconnect_error(exc: BaseException) -> bool:
    if not isinstance(exc, PlaywrightError):
        return False
    msg = str(exc)
    return any(marker in msg for marker in DISCONNECT_MARKERS)


class BrowserHandle:
    """
    One Chromium browser + one context for a whole run.

    acquire() launches lazily and hands back the live context,
    relaunching if the browser went away (at most `max_relaunches` times).
    release() tears everything down.
    """

    def __init__(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        user_agent: Optional[str] = None,
        launch_args: Optional[List[str]] = None,
        max_relaunches: int = 3,
        playwright_factory=async_playwright,
    ):
        self.headless = headless
        self.slow_mo = slow_mo
        self.user_agent = user_agent
        self.launch_args = list(launch_args or [])
        self.max_relaunches = max_relaunches
        self._factory = playwright_factory

        self._playwright = None
        self._browser = None
        self._context = None
        self.launches = 0

    async def __aenter__(self) -> "BrowserHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()

    @property
    def connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def _on_disconnected(self, _browser) -> None:
        log("Browser disconnected unexpectedly")
        self._browser = None
        self._context = None

    async def _launch(self) -> None:
        if self.launches > self.max_relaunches:
            raise BrowserUnavailableError(
                f"Browser relaunched {self.launches - 1} times, giving up"
            )

        if self._playwright is None:
            self._playwright = await self._factory().start()

        self.launches += 1
        log(f"Launching browser (headless={self.headless}, launch #{self.launches})")
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            slow_mo=self.slow_mo,
            args=self.launch_args,
        )
        self._browser.on("disconnected", self._on_disconnected)

        if self.user_agent:
            self._context = await self._browser.new_context(user_agent=self.user_agent)
        else:
            self._context = await self._browser.new_context()

    async def acquire(self):
        if self.connected and self._context is not None:
            return self._context
        if self._browser is not None:
            await self._close_browser()
        await self._launch()
        return self._context

    async def reconnect(self):
        log("Reconnecting browser")
        await self._close_browser()
        await self._launch()
        return self._context

    async def new_page(self):
        context = await self.acquire()
        return await context.new_page()

    async def run(self, fn, *args, **kwargs):
        """
        Call fn(context, *args, **kwargs); on a browser disconnect,
        reconnect once and call it again.
        """
        context = await self.acquire()
        try:
            return await fn(context, *args, **kwargs)
        except PlaywrightError as e:
            if not is_disconnect_error(e):
                raise
            log(f"Browser connection lost ({e}), retrying once")
            context = await self.reconnect()
            return await fn(context, *args, **kwargs)

    async def _close_browser(self) -> None:
        context, browser = self._context, self._browser
        self._context = None
        self._browser = None
        if context is not None:
            try:
                await context.close()
            except PlaywrightError as e:
                log(f"WARNING: closing context failed: {e}")
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                log(f"WARNING: closing browser failed: {e}")

    async def release(self) -> None:
        await self._close_browser()
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()
