from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern

from page_agent.config.config import Settings
from page_agent.core.actions import Action, ActionType, ToolObservation
from page_agent.core.backend import PageBackend, normalize_host


READ_ONLY_INTENTS = frozenset(
    {ActionType.FIND_ELEMENTS, ActionType.EXTRACT, ActionType.WAIT_FOR, ActionType.ASK_USER}
)
_RISK_SENSITIVE_INTENTS = frozenset({ActionType.NAVIGATE, ActionType.TYPE_TEXT, ActionType.SELECT, ActionType.CLICK})
CONSENT_CHOICES = ["Allow once", "Cancel"]


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: Optional[str] = None


def _pattern(tokens: Iterable[str]) -> Optional[Pattern[str]]:
    parts = [re.escape(t.strip()) for t in tokens if t and t.strip()]
    if not parts:
        return None
    return re.compile("|".join(parts), re.IGNORECASE)


@dataclass
class PermissionPolicy:
    agent_enabled: bool = True
    blocked_hosts: frozenset[str] = frozenset()
    consent_intents: frozenset[ActionType] = frozenset()
    risky_pattern: Optional[Pattern[str]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PermissionPolicy":
        consent_intents = set()
        for raw in settings.consent_intents:
            try:
                consent_intents.add(ActionType(raw))
            except ValueError:
                print(f"[policy] Ignoring unknown consent intent: {raw}")
        return cls(
            agent_enabled=settings.agent_enabled,
            blocked_hosts=frozenset(normalize_host(h) for h in settings.blocked_hosts),
            consent_intents=frozenset(consent_intents),
            risky_pattern=_pattern(list(settings.risky_domains) + list(settings.sensitive_paths)),
        )

    def host_blocked(self, host: Optional[str]) -> bool:
        bare = normalize_host(host)
        if not bare:
            return False
        return any(bare == blocked or bare.endswith("." + blocked) for blocked in self.blocked_hosts)


class PermissionGate:
    """Stateless policy check; every call re-reads the policy it was given."""

    def __init__(self, policy: PermissionPolicy) -> None:
        self.policy = policy

    def evaluate(self, intent: ActionType, host: Optional[str]) -> PermissionDecision:
        if intent in READ_ONLY_INTENTS:
            return PermissionDecision(True)
        if not self.policy.agent_enabled:
            return PermissionDecision(False, "agent actions disabled")
        if self.policy.host_blocked(host):
            return PermissionDecision(False, f"host {normalize_host(host)} blocked by policy")
        if intent in self.policy.consent_intents:
            return PermissionDecision(False, f"{intent.value} requires consent")
        if (
            intent in _RISK_SENSITIVE_INTENTS
            and host
            and self.policy.risky_pattern is not None
            and self.policy.risky_pattern.search(host)
        ):
            return PermissionDecision(False, "risky destination")
        return PermissionDecision(True)


def consent_action(intent: ActionType, host: Optional[str], *, timeout_ms: int = 15000) -> Action:
    return Action(
        type=ActionType.ASK_USER,
        text=f"Allow action: {intent.value} on {host or 'site'}?",
        choices=list(CONSENT_CHOICES),
        default_index=1,
        timeout_ms=timeout_ms,
    )


def consent_granted(observation: ToolObservation) -> bool:
    return observation.ok and observation.fields.get_int("choiceIndex") == 0


async def request_consent(
    backend: PageBackend,
    intent: ActionType,
    host: Optional[str],
    *,
    timeout_ms: int = 15000,
) -> bool:
    observation = await backend.execute(consent_action(intent, host, timeout_ms=timeout_ms))
    return consent_granted(observation)
