from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from page_agent.core.actions import Action, ActionType
from page_agent.core.audit import AuditLog
from page_agent.core.backend import PageBackend, PageContext, url_host
from page_agent.core.security import PermissionDecision, PermissionGate, request_consent


@dataclass(frozen=True)
class Authorization:
    allowed: bool
    decision: PermissionDecision
    consented: Optional[bool] = None

    @property
    def reason(self) -> str:
        return self.decision.reason or "blocked"


async def authorize(
    action: Action,
    host: Optional[str],
    *,
    gate: PermissionGate,
    audit: AuditLog,
    backend: PageBackend,
    consent_timeout_ms: int = 15000,
) -> Authorization:
    """One policy evaluation and, on denial, at most one consent round."""
    decision = gate.evaluate(action.type, host)
    audit.record_decision(action, host, decision)
    if decision.allowed:
        return Authorization(True, decision)
    consented = await request_consent(backend, action.type, host, timeout_ms=consent_timeout_ms)
    audit.record_consent(action, host, decision, consented)
    return Authorization(consented, decision, consented)


def gate_host(action: Action, context: Optional[PageContext]) -> Optional[str]:
    """Destination host for a navigation, otherwise the host of the current page."""
    if action.type == ActionType.NAVIGATE and action.url:
        probe = action.url if "://" in action.url else f"https://{action.url}"
        return url_host(probe)
    return context.host if context else None
