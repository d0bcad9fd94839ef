from __future__ import annotations

from typing import Any, Optional

from page_agent.config.config import Settings
from page_agent.core.actions import Action
from page_agent.core.audit import AuditLog
from page_agent.core.backend import PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.gating import authorize, gate_host
from page_agent.core.graph_state import LoopState
from page_agent.core.security import PermissionGate
from page_agent.core.timeline import StepState
from page_agent.io.scratch import append_scratch


def make_safety_node(
    *,
    settings: Settings,
    gate: PermissionGate,
    audit: AuditLog,
    backend: PageBackend,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def safety_node(state: LoopState) -> LoopState:
        action: Action = state["action"]
        host = gate_host(action, state.get("context"))
        if not action.type.is_side_effecting:
            return {**state, "authorization": None, "gate_host": host}
        try:
            auth = await authorize(
                action,
                host,
                gate=gate,
                audit=audit,
                backend=backend,
                consent_timeout_ms=settings.consent_timeout_ms,
            )
        except BackendUnavailable as exc:
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}
        if trace:
            trace.write(
                {
                    "session_id": state["session_id"],
                    "node": "safety",
                    "intent": action.type.value,
                    "host": host,
                    "allowed": auth.allowed,
                    "reason": auth.decision.reason,
                    "consented": auth.consented,
                }
            )
        if auth.allowed:
            return {**state, "authorization": auth, "gate_host": host}
        scratch = append_scratch(state, text_log, f"Blocked by policy: {auth.decision.reason or ''}")
        state["timeline"].append(action, StepState.FAILURE, auth.reason)
        return {
            **state,
            "scratch": scratch,
            "authorization": auth,
            "gate_host": host,
            "stop_reason": "policy_denied",
            "stop_details": f"{action.type.value} on {host or 'site'}: {auth.reason}",
        }

    return safety_node
