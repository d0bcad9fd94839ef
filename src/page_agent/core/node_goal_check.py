from __future__ import annotations

from typing import Any, Optional

from page_agent.core.actions import Action, ActionType
from page_agent.core.backend import PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState, outstanding_tasks, sample_line
from page_agent.io.scratch import append_scratch


def make_goal_check_node(
    *,
    backend: PageBackend,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def goal_check_node(state: LoopState) -> LoopState:
        call = state["tool_call"]
        summary = call.args.get_str("summary")
        missing = outstanding_tasks(state)
        if not missing:
            scratch = append_scratch(state, text_log, f"Done: {summary}")
            return {**state, "scratch": scratch, "summary": summary, "stop_reason": "done", "stop_details": summary or None}

        messages = ["cannot finish: outstanding tasks → " + ", ".join(missing)]
        try:
            sample = await backend.execute(Action(type=ActionType.FIND_ELEMENTS))
        except BackendUnavailable as exc:
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}
        line = sample_line("auto-sample", sample)
        if line:
            messages.append(line)
        if trace:
            trace.write({"session_id": state["session_id"], "node": "goal_check", "refused_done": missing})
        return {**state, "scratch": append_scratch(state, text_log, *messages), "route": None}

    return goal_check_node
