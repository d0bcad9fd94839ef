from __future__ import annotations

from typing import Optional

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright

from page_agent.config.config import Settings
from page_agent.core.errors import BackendUnavailable

_CLOSED_MARKERS = ("target closed", "page closed", "browser has been closed", "target page, context or browser has been closed")


def is_target_closed_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in _CLOSED_MARKERS)


class BrowserRuntime:
    """Persistent Chromium profile with one active tab the backend acts on."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._active: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._active is None or self._active.is_closed():
            raise BackendUnavailable("no active page")
        return self._active

    @property
    def tabs(self) -> list[Page]:
        return [p for p in self._context.pages if not p.is_closed()] if self._context else []

    def activate(self, page: Page) -> None:
        if not page.is_closed():
            self._active = page

    def _track(self, page: Page) -> None:
        page.on("close", lambda *_: self._on_close(page))

    def _on_close(self, page: Page) -> None:
        if page is not self._active:
            return
        tabs = self.tabs
        self._active = tabs[-1] if tabs else None
        print(f"[runtime] Active tab closed; now on {self._active.url if self._active else 'nothing'}")

    def _on_new_tab(self, page: Page) -> None:
        self._track(page)
        self.activate(page)
        print(f"[runtime] Switched to new tab: {page.url}")

    async def switch_to(
        self, *, index: Optional[int] = None, url_substr: Optional[str] = None, title_substr: Optional[str] = None
    ) -> Optional[Page]:
        """Activate the last tab matching any hint; None when nothing matches."""
        match: Optional[Page] = None
        for idx, tab in enumerate(self.tabs):
            if index is not None and idx == index:
                match = tab
            elif url_substr and url_substr.lower() in (tab.url or "").lower():
                match = tab
            elif title_substr and title_substr.lower() in (await tab.title()).lower():
                match = tab
        if match is None:
            return None
        self.activate(match)
        await match.bring_to_front()
        return match

    async def launch(self) -> Page:
        if self._context is not None:
            return self.page
        if self.settings.paths is None:
            raise BackendUnavailable("a profile directory is required to launch the browser")

        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir=str(self.settings.paths.profile_dir),
            headless=self.settings.headless,
            args=["--start-maximized"],
        )
        self._context.on("page", self._on_new_tab)
        first = self._context.pages[0] if self._context.pages else await self._context.new_page()
        self._track(first)
        self.activate(first)
        if self.settings.start_url:
            await first.goto(self.settings.start_url)
        return first

    async def close(self) -> None:
        context, self._context, self._active = self._context, None, None
        try:
            if context is not None:
                await context.close()
        except Exception as exc:  # noqa: BLE001
            # The window may already be gone.
            if not is_target_closed_error(exc):
                raise
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
