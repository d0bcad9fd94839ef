from __future__ import annotations

from typing import Any, Optional

from page_agent.core.actions import Action, ActionType, Locator, ready_wait
from page_agent.core.backend import ContextProvider, PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState, sample_line
from page_agent.core.heuristics import heuristic_plan
from page_agent.core.timeline import StepState
from page_agent.io.scratch import append_scratch

# (locator role, scratch prefix, preview label, timeline message)
BOOTSTRAP_SAMPLES = (
    (None, "auto-findElements", None, "auto-observe generic"),
    ("article", "auto-findElements(role=article)", "article", "auto-observe articles"),
    ("textbox", "auto-findElements(role=textbox)", "textbox", "auto-observe textboxes"),
)


def make_bootstrap_node(
    *,
    backend: PageBackend,
    context_provider: ContextProvider,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def bootstrap_node(state: LoopState) -> LoopState:
        timeline = state["timeline"]
        scratch = list(state.get("scratch") or [])
        intent_hint = state.get("intent_hint")
        try:
            for role, prefix, label, message in BOOTSTRAP_SAMPLES:
                action = Action(type=ActionType.FIND_ELEMENTS, locator=Locator(role=role) if role else None)
                sample = await backend.execute(action)
                line = sample_line(prefix, sample, label=label)
                if line:
                    scratch = append_scratch({**state, "scratch": scratch}, text_log, line)
                timeline.append(action, StepState.SUCCESS if sample.ok else StepState.FAILURE, message)

            await backend.dismiss_consent()

            plan = heuristic_plan(state["instruction"]) or []
            nav = next((step for step in plan if step.type == ActionType.NAVIGATE and step.url), None)
            if nav is not None:
                nav_action = Action(type=ActionType.NAVIGATE, url=nav.url, new_tab=bool(nav.new_tab))
                nav_obs = await backend.execute(nav_action)
                timeline.append(nav_action, StepState.SUCCESS if nav_obs.ok else StepState.FAILURE, "bootstrap")
                if nav_obs.ok:
                    wait = ready_wait(nav.timeout_ms or 10000)
                    wait_obs = await backend.execute(wait)
                    timeline.append(wait, StepState.SUCCESS if wait_obs.ok else StepState.FAILURE, "bootstrap")
                await backend.dismiss_consent()
                intent_hint = None
            context = await context_provider.current_context()
        except BackendUnavailable as exc:
            return {
                **state,
                "scratch": scratch,
                "stop_reason": "backend_unavailable",
                "stop_details": str(exc) or "no active page",
            }

        if trace:
            trace.write(
                {
                    "session_id": state["session_id"],
                    "node": "bootstrap",
                    "url": context.url if context else None,
                    "intent_hint": intent_hint,
                }
            )
        return {
            **state,
            "scratch": scratch,
            "context": context,
            "site_host": context.host if context else None,
            "intent_hint": intent_hint,
        }

    return bootstrap_node
