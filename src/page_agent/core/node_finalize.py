from __future__ import annotations

from typing import Any, Optional

from page_agent.core.graph_state import LoopState


def make_finalize_node(*, text_log: Any, trace: Optional[Any] = None) -> Any:
    async def finalize_node(state: LoopState) -> LoopState:
        reason = state.get("stop_reason") or "loop_error"
        timeline = state["timeline"]
        timeline.mark_all_failed(f"stopped: {reason}")
        timeline.run.finish()
        return {**state, "stop_reason": reason}

    return finalize_node
