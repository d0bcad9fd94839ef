from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from page_agent.core.actions import Action
from page_agent.core.security import PermissionDecision
from page_agent.infra.tracing import TraceLogger


@dataclass
class AuditEntry:
    host: Optional[str]
    action: str
    parameters: Dict[str, str]
    policy_allowed: bool
    policy_reason: Optional[str] = None
    requested_consent: bool = False
    user_consented: Optional[bool] = None
    outcome_success: Optional[bool] = None
    outcome_message: Optional[str] = None
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recorded_at": self.recorded_at,
            "host": self.host,
            "action": self.action,
            "parameters": self.parameters,
            "policy_allowed": self.policy_allowed,
            "policy_reason": self.policy_reason,
            "requested_consent": self.requested_consent,
            "user_consented": self.user_consented,
            "outcome_success": self.outcome_success,
            "outcome_message": self.outcome_message,
        }


class AuditLog:
    """Append-only record of gated decisions; readers live outside the core."""

    def __init__(self, trace: Optional[TraceLogger] = None) -> None:
        self.trace = trace
        self._entries: List[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        self._entries.append(entry)
        if self.trace:
            self.trace.write(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record_decision(self, action: Action, host: Optional[str], decision: PermissionDecision) -> None:
        self.append(
            AuditEntry(
                host=host,
                action=action.type.value,
                parameters=summarize_action(action),
                policy_allowed=decision.allowed,
                policy_reason=decision.reason,
                requested_consent=not decision.allowed,
            )
        )

    def record_consent(
        self, action: Action, host: Optional[str], decision: PermissionDecision, consented: bool
    ) -> None:
        self.append(
            AuditEntry(
                host=host,
                action=action.type.value,
                parameters=summarize_action(action),
                policy_allowed=False,
                policy_reason=decision.reason,
                requested_consent=True,
                user_consented=consented,
                outcome_message="user allowed" if consented else "user canceled",
            )
        )

    def record_outcome(
        self,
        action: Action,
        host: Optional[str],
        *,
        success: bool,
        message: Optional[str],
        consented: Optional[bool] = None,
    ) -> None:
        self.append(
            AuditEntry(
                host=host,
                action=action.type.value,
                parameters=summarize_action(action),
                policy_allowed=consented is None,
                requested_consent=consented is not None,
                user_consented=consented,
                outcome_success=success,
                outcome_message=message,
            )
        )


def summarize_action(action: Action) -> Dict[str, str]:
    summary: Dict[str, str] = {}
    if action.url:
        summary["url"] = action.url
    if action.text:
        summary["text"] = action.text[:80]
    if action.value:
        summary["value"] = action.value
    if action.direction:
        summary["direction"] = action.direction
    if action.amount_px is not None:
        summary["amountPx"] = str(action.amount_px)
    if action.submit is not None:
        summary["submit"] = "true" if action.submit else "false"
    if action.locator:
        loc = action.locator
        parts: List[str] = []
        if loc.role:
            parts.append(f"role={loc.role}")
        if loc.name:
            parts.append(f"name={loc.name}")
        if loc.text:
            parts.append(f"text={loc.text[:40]}")
        if loc.css:
            parts.append(f"css={loc.css[:40]}")
        if loc.nth is not None:
            parts.append(f"nth={loc.nth}")
        summary["locator"] = " ".join(parts)
    return summary
