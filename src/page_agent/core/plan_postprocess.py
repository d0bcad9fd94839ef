from __future__ import annotations

from typing import List, Optional, Sequence

from page_agent.core.actions import Action, ActionType, Locator, idle_wait, ready_wait


PRESENCE_SELECTORS = {
    "textbox": "input, textarea, [contenteditable=true], [role=textbox]",
    "input": "input, textarea, [contenteditable=true], [role=textbox]",
    "searchbox": "input, textarea, [contenteditable=true], [role=textbox]",
    "button": "button, [role=button]",
    "link": "a, [role=link]",
    "select": "select",
    "article": "article, [role=article]",
    "post": "article, [role=article]",
}
_INTERACTIVE = frozenset({ActionType.CLICK, ActionType.FIND_ELEMENTS, ActionType.TYPE_TEXT, ActionType.SELECT})


def presence_wait(locator: Optional[Locator], timeout_ms: int = 8000) -> Optional[Action]:
    if locator is None:
        return None
    if locator.css:
        return Action(type=ActionType.WAIT_FOR, text=locator.css, timeout_ms=timeout_ms)
    if locator.role:
        selector = PRESENCE_SELECTORS.get(locator.role.lower(), "[role]")
        return Action(type=ActionType.WAIT_FOR, text=selector, timeout_ms=timeout_ms)
    return None


def post_process_plan(plan: Sequence[Action]) -> List[Action]:
    """Insert readiness waits around navigation and interactive steps."""
    out: List[Action] = []
    for idx, step in enumerate(plan):
        if step.type == ActionType.NAVIGATE:
            out.append(step)
            nxt = plan[idx + 1] if idx + 1 < len(plan) else None
            if nxt is None or not nxt.is_ready_wait:
                out.append(ready_wait(10000))
            out.append(idle_wait(6000))
            continue
        if step.type in _INTERACTIVE:
            wait = presence_wait(step.locator)
            if wait is not None:
                out.append(wait)
            out.append(step)
            out.append(idle_wait(4000))
            continue
        out.append(step)
    return out
