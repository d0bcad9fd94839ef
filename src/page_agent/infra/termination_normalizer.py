from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Type

from page_agent.core.errors import (
    AgentError,
    BackendUnavailable,
    ExecutionFailure,
    LoopExhausted,
    PlanningError,
    PolicyDenied,
)
from page_agent.core.graph_state import STOP_TO_TERMINAL, TERMINAL_TYPES
from page_agent.core.timeline import AgentSession


LOG_FIELDS = ("stop_reason", "terminal_type", "stop_details", "url", "steps", "failures", "skipped_navigations", "noop")
STOP_ERRORS: Dict[str, Type[AgentError]] = {
    "policy_denied": PolicyDenied,
    "max_failures": ExecutionFailure,
    "budget_exhausted": LoopExhausted,
    "backend_unavailable": BackendUnavailable,
    "planning_failed": PlanningError,
    "loop_error": AgentError,
}


class _Sink(Protocol):
    def write(self, record: Any) -> None: ...


def classify_stop(stop_reason: Optional[str]) -> tuple[str, str]:
    """Map a stop reason onto ``(terminal_reason, terminal_type)``."""
    terminal_reason = STOP_TO_TERMINAL.get(stop_reason or "", "goal_failed")
    return terminal_reason, TERMINAL_TYPES.get(terminal_reason, "failure")


def terminal_error(stop_reason: str, details: Optional[str]) -> Optional[AgentError]:
    error_cls = STOP_ERRORS.get(stop_reason)
    return error_cls(details or stop_reason) if error_cls else None


def _summary(result: Dict[str, Any], session_id: str) -> Dict[str, Any]:
    run = result.get("run")
    context = result.get("context")
    return {
        "summary": True,
        "session_id": session_id,
        "stop_reason": result.get("stop_reason"),
        "stop_details": result.get("stop_details"),
        "terminal_reason": result.get("terminal_reason"),
        "terminal_type": result.get("terminal_type"),
        "url": context.url if context else None,
        "run_id": run.id if run else None,
        "steps": len(run.steps) if run else 0,
        "finished_at": run.finished_at if run else None,
        "failures": result.get("consecutive_failures", 0),
        "skipped_navigations": result.get("skipped_duplicate_navigations", 0),
        "noop": result.get("stable_noop_count", 0),
    }


def normalize_terminal(
    result: Dict[str, Any],
    *,
    session_id: str,
    session: Optional[AgentSession],
    text_log: _Sink,
    trace: Optional[_Sink] = None,
) -> Dict[str, Any]:
    """Fill terminal fields and finalize the session's current run exactly once."""
    if not result.get("stop_reason"):
        result["stop_reason"] = "loop_error"
        result["stop_details"] = result.get("stop_details") or "no_stop_condition_reached"
    if result.get("terminal_reason"):
        result["terminal_type"] = TERMINAL_TYPES.get(result["terminal_reason"], "failure")
    else:
        result["terminal_reason"], result["terminal_type"] = classify_stop(result["stop_reason"])
    result["error"] = terminal_error(result["stop_reason"], result.get("stop_details"))

    if session is not None and session.current_run is not None:
        session.finish_run()
        result["run"] = session.current_run

    record = _summary(result, session_id)
    text_log.write(f"[{session_id}] finished " + " ".join(f"{key}={record[key]}" for key in LOG_FIELDS))
    if trace:
        trace.write(record)
    print(f"[agent] Finished reason={result['stop_reason']} terminal={result['terminal_type']}")
    return result
