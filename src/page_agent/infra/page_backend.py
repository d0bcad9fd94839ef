from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator as PageLocator
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from page_agent.core.actions import Action, ActionType, Locator, ToolObservation
from page_agent.core.backend import FocusedElement, PageContext
from page_agent.core.errors import BackendUnavailable
from page_agent.infra.runtime import BrowserRuntime, is_target_closed_error

GENERIC_SELECTOR = "a, button, input, textarea, select, article, [role], [contenteditable=true]"
ROLE_ALIASES = {"input": "textbox", "searchbox": "textbox", "post": "article", "select": "combobox"}
FIND_LIMIT = 20
EXCERPT_LIMIT = 2000
CONSENT_BUTTON = re.compile(
    r"^\s*(accept all|accept|i agree|agree|allow all|got it|ok|accept cookies)\s*$", re.IGNORECASE
)

DESCRIBE_JS = """
(els, limit) => els.slice(0, limit).map((el, i) => {
  const implicit = {A: 'link', BUTTON: 'button', INPUT: 'textbox', TEXTAREA: 'textbox', SELECT: 'combobox', ARTICLE: 'article'};
  return {
    i,
    role: el.getAttribute('role') || implicit[el.tagName] || el.tagName.toLowerCase(),
    name: el.getAttribute('aria-label') || el.getAttribute('name') || el.getAttribute('placeholder') || el.getAttribute('title') || '',
    text: ((el.innerText || el.value || '') + '').trim().replace(/\\s+/g, ' ').slice(0, 200),
  };
})
"""

FOCUSED_JS = """
() => {
  const el = document.activeElement;
  if (!el || el === document.body) return null;
  const r = el.getBoundingClientRect();
  return {
    role: el.getAttribute('role') || el.tagName.toLowerCase(),
    name: el.getAttribute('aria-label') || el.getAttribute('name') || el.getAttribute('placeholder') || '',
    visible: r.width > 0 && r.height > 0,
  };
}
"""

ARTICLE_JS = """
() => {
  const node = document.querySelector('article') || document.querySelector('main') || document.body;
  return node ? node.innerText : '';
}
"""


class PlaywrightPageBackend:
    """Executes actions against the runtime's active page; also supplies page context."""

    def __init__(
        self,
        runtime: BrowserRuntime,
        *,
        auto_consent: bool = False,
        input_fn: Callable[[str], str] = input,
    ) -> None:
        self.runtime = runtime
        self.auto_consent = auto_consent
        self.input_fn = input_fn

    @property
    def page(self) -> Page:
        return self.runtime.page

    async def execute(self, action: Action) -> ToolObservation:
        handler = getattr(self, f"_do_{action.type.name.lower()}")
        try:
            return await handler(action)
        except PlaywrightTimeoutError as exc:
            return ToolObservation(ok=False, message=f"timeout: {str(exc).splitlines()[0]}")
        except PlaywrightError as exc:
            self._raise_if_closed(exc)
            return ToolObservation(ok=False, message=str(exc).splitlines()[0] if str(exc) else "playwright error")

    def _resolve(self, locator: Optional[Locator]) -> PageLocator:
        page = self.page
        if locator is None or locator.is_empty:
            return page.locator(GENERIC_SELECTOR)
        if locator.css:
            base = page.locator(locator.css)
        elif locator.xpath:
            base = page.locator(f"xpath={locator.xpath}")
        elif locator.role:
            role = ROLE_ALIASES.get(locator.role.lower(), locator.role.lower())
            base = page.get_by_role(role, name=locator.name) if locator.name else page.get_by_role(role)  # type: ignore[arg-type]
            if locator.text:
                base = base.filter(has_text=locator.text)
        elif locator.text:
            base = page.get_by_text(locator.text)
        elif locator.name:
            base = page.get_by_label(locator.name)
        else:
            base = page.locator(GENERIC_SELECTOR)
        if locator.near:
            base = base.filter(has_text=locator.near)
        return base

    def _target(self, locator: Optional[Locator]) -> PageLocator:
        base = self._resolve(locator)
        nth = locator.nth if locator and locator.nth is not None else 0
        return base.nth(nth)

    async def _do_navigate(self, action: Action) -> ToolObservation:
        if not action.url:
            return ToolObservation(ok=False, message="navigate requires a url")
        page = self.page
        if action.new_tab:
            page = await page.context.new_page()
            self.runtime.activate(page)
        await page.goto(action.url, timeout=action.timeout_ms or 30000)
        return ToolObservation(ok=True, data={"url": page.url})

    async def _do_find_elements(self, action: Action) -> ToolObservation:
        base = self._resolve(action.locator)
        count = await base.count()
        limit = action.amount_px or FIND_LIMIT
        elements = await base.evaluate_all(DESCRIBE_JS, limit)
        echo = {"role": action.locator.role} if action.locator and action.locator.role else {}
        return ToolObservation(ok=True, data={"count": count, "elements": elements, "locator": echo})

    async def _do_click(self, action: Action) -> ToolObservation:
        target = self._target(action.locator)
        await target.scroll_into_view_if_needed(timeout=action.timeout_ms or 5000)
        await target.click(timeout=action.timeout_ms or 5000)
        return ToolObservation(ok=True, message=None)

    async def _do_type_text(self, action: Action) -> ToolObservation:
        target = self._target(action.locator or Locator(role="textbox"))
        await target.fill(action.text or "", timeout=action.timeout_ms or 5000)
        if action.submit:
            await target.press("Enter")
        return ToolObservation(ok=True, message="submitted" if action.submit else None)

    async def _do_select(self, action: Action) -> ToolObservation:
        if action.value is None:
            return ToolObservation(ok=False, message="select requires a value")
        selected = await self._target(action.locator).select_option(action.value, timeout=action.timeout_ms or 5000)
        return ToolObservation(ok=bool(selected), data={"selected": selected})

    async def _do_scroll(self, action: Action) -> ToolObservation:
        if action.locator and not action.locator.is_empty:
            await self._target(action.locator).scroll_into_view_if_needed(timeout=action.timeout_ms or 5000)
            return ToolObservation(ok=True)
        amount = action.amount_px or 600
        delta = -amount if (action.direction or "down").lower() == "up" else amount
        await self.page.mouse.wheel(0, delta)
        return ToolObservation(ok=True)

    async def _do_wait_for(self, action: Action) -> ToolObservation:
        page = self.page
        timeout = action.timeout_ms or 10000
        if action.direction == "ready":
            await page.wait_for_load_state("domcontentloaded", timeout=timeout)
            return ToolObservation(ok=True, message="ready")
        if action.text:
            await page.wait_for_selector(action.text, state="attached", timeout=timeout)
            return ToolObservation(ok=True, message="selector present")
        if action.amount_px:
            await page.wait_for_timeout(action.amount_px)
            return ToolObservation(ok=True, message="delay")
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout)
        except PlaywrightTimeoutError:
            return ToolObservation(ok=True, message="network still busy")
        return ToolObservation(ok=True, message="idle")

    async def _do_extract(self, action: Action) -> ToolObservation:
        text = await self.extract(action.value or "article", action.text)
        return ToolObservation(ok=True, data={"text": text})

    async def _do_switch_tab(self, action: Action) -> ToolObservation:
        index = int(action.value) if action.value and action.value.strip().isdigit() else None
        page = await self.runtime.switch_to(index=index, url_substr=action.url, title_substr=action.text)
        if page is None:
            return ToolObservation(ok=False, message="no matching tab")
        return ToolObservation(ok=True, data={"url": page.url})

    async def _do_ask_user(self, action: Action) -> ToolObservation:
        choices = action.choices or []
        default = action.default_index if action.default_index is not None else 0
        print(f"[ask] {action.text or 'Continue?'}")
        for idx, choice in enumerate(choices):
            print(f"[ask]   {idx}) {choice}")
        if self.auto_consent:
            print("[ask] Auto-consent enabled; choosing 0.")
            return ToolObservation(ok=True, data={"choiceIndex": 0, "answer": choices[0] if choices else ""})
        timeout = (action.timeout_ms or 15000) / 1000
        try:
            reply = await asyncio.wait_for(asyncio.to_thread(self.input_fn, "[ask] Choice: "), timeout=timeout)
        except asyncio.TimeoutError:
            print(f"[ask] No answer within {timeout:.0f}s; using default {default}.")
            return ToolObservation(ok=True, data={"choiceIndex": default, "timedOut": True})
        reply = reply.strip()
        if not choices:
            return ToolObservation(ok=True, data={"answer": reply})
        index = int(reply) if reply.isdigit() and int(reply) < len(choices) else default
        return ToolObservation(ok=True, data={"choiceIndex": index, "answer": choices[index]})

    def _raise_if_closed(self, exc: PlaywrightError) -> None:
        if is_target_closed_error(exc):
            raise BackendUnavailable(str(exc)) from exc

    async def get_focused_element_summary(self) -> Optional[FocusedElement]:
        try:
            info: Optional[Dict[str, Any]] = await self.page.evaluate(FOCUSED_JS)
        except PlaywrightError as exc:
            self._raise_if_closed(exc)
            return None
        if not info:
            return None
        return FocusedElement(role=info.get("role"), name=info.get("name"), is_visible=bool(info.get("visible")))

    async def extract(self, mode: str, selector: Optional[str] = None) -> str:
        try:
            return await self._extract(mode, selector)
        except PlaywrightError as exc:
            self._raise_if_closed(exc)
            return ""

    async def _extract(self, mode: str, selector: Optional[str]) -> str:
        page = self.page
        if selector:
            target = page.locator(selector).first
            if await target.count() == 0:
                return ""
            return await target.inner_text()
        if mode == "selection":
            return await page.evaluate("() => String(window.getSelection() || '')")
        if mode == "all":
            return await page.inner_text("body")
        return await page.evaluate(ARTICLE_JS)

    async def dismiss_consent(self) -> bool:
        button = self.page.get_by_role("button", name=CONSENT_BUTTON)
        try:
            if await button.count() == 0 or not await button.first.is_visible():
                return False
            await button.first.click(timeout=2000)
        except PlaywrightError as exc:
            self._raise_if_closed(exc)
            return False
        print("[runtime] Dismissed a consent banner")
        return True

    async def current_context(self) -> Optional[PageContext]:
        page = self.page
        try:
            title = await page.title()
            excerpt = await page.inner_text("body", timeout=3000)
        except PlaywrightError as exc:
            self._raise_if_closed(exc)
            title, excerpt = "", ""
        return PageContext(url=page.url, title=title, text_excerpt=excerpt[:EXCERPT_LIMIT])
