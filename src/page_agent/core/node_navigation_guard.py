from __future__ import annotations

from typing import Any, Optional

from page_agent.core.actions import ready_wait
from page_agent.core.backend import PageBackend, normalize_host
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState
from page_agent.core.timeline import StepState
from page_agent.io.scratch import append_scratch


def make_navigation_guard_node(
    *,
    backend: PageBackend,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def navigation_guard_node(state: LoopState) -> LoopState:
        """Replace a navigation to the current page with a short ready wait."""
        skipped = state.get("skipped_duplicate_navigations", 0) + 1
        context = state.get("context")
        host = normalize_host(context.host if context else None)
        messages = [f"skip navigate: already on host={host}"]
        wait = ready_wait(6000)
        try:
            outcome = await backend.execute(wait)
        except BackendUnavailable as exc:
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}
        state["timeline"].append(wait, StepState.SUCCESS if outcome.ok else StepState.FAILURE, "debounce navigate")
        if skipped >= 2:
            messages.append("policy: navigation to current host disabled; choose findElements/click/typeText next")
        scratch = append_scratch(state, text_log, *messages)
        if trace:
            trace.write({"session_id": state["session_id"], "node": "navigation_guard", "skipped": skipped, "host": host})
        return {
            **state,
            "scratch": scratch,
            "skipped_duplicate_navigations": skipped,
            "intent_hint": None,
            "route": None,
        }

    return navigation_guard_node
