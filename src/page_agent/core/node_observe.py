from __future__ import annotations

import json
from typing import Any, Optional

from page_agent.config.config import Settings
from page_agent.core.backend import ContextProvider, PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState, context_block, state_json
from page_agent.io.scratch import append_scratch, recent


def iteration_budget(settings: Settings) -> int:
    return settings.max_steps + 4


def make_observe_node(
    *,
    settings: Settings,
    backend: PageBackend,
    context_provider: ContextProvider,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    budget = iteration_budget(settings)

    async def observe_node(state: LoopState) -> LoopState:
        iteration = state.get("iteration", 0)
        if iteration >= budget:
            return {
                **state,
                "stop_reason": "budget_exhausted",
                "stop_details": f"iterations={iteration}; max_steps={settings.max_steps}",
            }
        try:
            context = await context_provider.current_context()
            focused = await backend.get_focused_element_summary()
        except BackendUnavailable as exc:
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}

        scratch = state.get("scratch") or []
        if context and context.url:
            scratch = append_scratch(state, None, f"page: {context.url}")
        host = context.host if context else None
        blocks = [
            "Scratch:\n" + recent(scratch, settings.scratch_window),
            "Context:\n" + context_block(context, state.get("intent_hint")),
            "State:\n" + state_json(state, host, focused.to_dict() if focused else None),
        ]
        if state.get("last_find"):
            blocks.append("LastFind:\n" + json.dumps(state["last_find"], ensure_ascii=False))
        blocks.append("Instruction:\n" + state["instruction"])
        if state.get("site_host"):
            blocks.append("Host:\n" + str(state["site_host"]))

        return {
            **state,
            "iteration": iteration + 1,
            "scratch": scratch,
            "context": context,
            "observation_text": "\n".join(blocks),
            "tool_call": None,
            "action": None,
            "authorization": None,
            "result": None,
            "route": None,
        }

    return observe_node
