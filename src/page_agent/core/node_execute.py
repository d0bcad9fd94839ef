from __future__ import annotations

from typing import Any, List, Optional

from page_agent.config.config import Settings
from page_agent.core.actions import ToolObservation
from page_agent.core.audit import AuditLog
from page_agent.core.backend import PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState, compact_last_find, sample_previews
from page_agent.core.timeline import StepState
from page_agent.core.tool_calls import ToolCall
from page_agent.infra.tracing import generate_step_id
from page_agent.io.scratch import append_scratch


def _status(ok: bool) -> str:
    return "ok" if ok else "fail"


def summarize_observation(call: ToolCall, result: ToolObservation, last_find: Optional[dict]) -> List[str]:
    """Scratch lines describing one executed tool."""
    status = _status(result.ok)
    if result.data is not None:
        fields = result.fields
        if call.is_find_like:
            count = fields.get_int("count", -1)
            lines = [f"{call.tool}: {status} count={count} sample={sample_previews(fields.elements())}"]
            if count and count > 0:
                role = (last_find or {}).get("role") or call.locator_role or ""
                if role:
                    lines.append(f"hint: choose an index and call click with locator.role={role} and locator.nth=<index> next")
                else:
                    lines.append("hint: choose an index and call click with locator.nth=<index> next")
            return lines
        if call.tool == "extract":
            return [f"extract: {status} len={len(fields.get_str('text'))}"]
        return [f"{call.tool}: {status} dataKeys={fields.keys()}"]
    message = result.message or ""
    loc = call.args.get_map("locator")
    if loc:
        role = loc.get("role") or ""
        name = loc.get("name") or loc.get("text") or ""
        selector = ":".join(str(p) for p in (role, name) if p)
        nth = loc.get("nth")
        nth_str = f" nth={nth}" if isinstance(nth, int) and not isinstance(nth, bool) else ""
        return [f"{call.tool}: {status} locator={selector}{nth_str} {message}".rstrip()]
    return [f"{call.tool}: {status} {message}".rstrip()]


def make_execute_node(
    *,
    settings: Settings,
    backend: PageBackend,
    audit: AuditLog,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def execute_node(state: LoopState) -> LoopState:
        call: ToolCall = state["tool_call"]
        action = state["action"]
        timeline = state["timeline"]
        step = timeline.append(action, StepState.RUNNING)
        try:
            result = await backend.execute(action)
        except BackendUnavailable as exc:
            timeline.transition(step.id, StepState.FAILURE, "no active page")
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}
        timeline.transition(step.id, StepState.SUCCESS if result.ok else StepState.FAILURE, result.message)

        auth = state.get("authorization")
        if auth is not None:
            audit.record_outcome(
                action,
                state.get("gate_host"),
                success=result.ok,
                message=result.message,
                consented=auth.consented,
            )

        last_find = state.get("last_find")
        if call.is_find_like and result.data is not None:
            last_find = compact_last_find(result, call.locator_role)
        scratch = append_scratch(state, text_log, *summarize_observation(call, result, last_find))

        failures = 0 if result.ok else state.get("consecutive_failures", 0) + 1
        executed = state.get("executed_steps", 0) + 1
        if trace:
            trace.write(
                {
                    "session_id": state["session_id"],
                    "step_id": generate_step_id(f"{state['session_id']}-step{executed}"),
                    "node": "execute",
                    "tool": call.tool,
                    "action": action.to_dict(),
                    "ok": result.ok,
                    "message": result.message,
                    "consecutive_failures": failures,
                }
            )
        update: LoopState = {
            **state,
            "result": result,
            "scratch": scratch,
            "last_find": last_find,
            "consecutive_failures": failures,
            "executed_steps": executed,
        }
        if failures >= settings.max_failures:
            update.update({"stop_reason": "max_failures", "stop_details": f"consecutive_failures={failures}"})
        return update

    return execute_node
