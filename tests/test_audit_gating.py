import pytest

from conftest import FakePage
from page_agent.config.config import Settings
from page_agent.core.actions import Action, ActionType, Locator
from page_agent.core.audit import AuditLog, summarize_action
from page_agent.core.backend import PageContext
from page_agent.core.gating import authorize, gate_host
from page_agent.core.security import PermissionGate, PermissionPolicy
from page_agent.infra.tracing import TraceLogger


def _gate(**overrides) -> PermissionGate:
    return PermissionGate(PermissionPolicy.from_settings(Settings(**overrides)))


@pytest.mark.asyncio
async def test_allowed_action_records_one_decision():
    audit = AuditLog()
    action = Action(type=ActionType.CLICK, locator=Locator(text="Next"))
    auth = await authorize(action, "a.com", gate=_gate(), audit=audit, backend=FakePage())
    assert auth.allowed and auth.consented is None
    assert len(audit) == 1
    assert audit.entries[0].policy_allowed
    assert not audit.entries[0].requested_consent


@pytest.mark.asyncio
async def test_denied_then_consented_records_decision_consent_and_outcome():
    audit = AuditLog()
    page = FakePage(consent_choice=0)
    action = Action(type=ActionType.TYPE_TEXT, text="hello", locator=Locator(role="textbox"))
    auth = await authorize(action, "a.com", gate=_gate(consent_intents=["typeText"]), audit=audit, backend=page)
    assert auth.allowed and auth.consented is True
    assert len(audit) == 2
    audit.record_outcome(action, "a.com", success=True, message=None, consented=auth.consented)
    assert len(audit) == 3
    decision, consent, outcome = audit.entries
    assert not decision.policy_allowed and decision.requested_consent
    assert consent.user_consented is True and consent.outcome_message == "user allowed"
    assert outcome.outcome_success is True and outcome.user_consented is True


@pytest.mark.asyncio
async def test_denied_and_canceled():
    audit = AuditLog()
    page = FakePage(consent_choice=1)
    action = Action(type=ActionType.CLICK)
    auth = await authorize(action, "a.com", gate=_gate(agent_enabled=False), audit=audit, backend=page)
    assert not auth.allowed
    assert auth.reason == "agent actions disabled"
    assert [e.user_consented for e in audit.entries] == [None, False]
    assert audit.entries[1].outcome_message == "user canceled"


def test_gate_host_prefers_navigation_destination():
    context = PageContext(url="https://current.example/x", title="t")
    assert gate_host(Action(type=ActionType.NAVIGATE, url="https://Dest.example/p"), context) == "dest.example"
    assert gate_host(Action(type=ActionType.NAVIGATE, url="bank.com"), context) == "bank.com"
    assert gate_host(Action(type=ActionType.CLICK), context) == "current.example"
    assert gate_host(Action(type=ActionType.CLICK), None) is None


def test_summarize_action_is_flat_strings():
    action = Action(
        type=ActionType.TYPE_TEXT,
        text="x" * 100,
        submit=False,
        locator=Locator(role="textbox", nth=2),
    )
    summary = summarize_action(action)
    assert summary == {"text": "x" * 80, "submit": "false", "locator": "role=textbox nth=2"}


def test_audit_entries_are_mirrored_to_trace(tmp_path):
    trace = TraceLogger(tmp_path / "audit.jsonl")
    audit = AuditLog(trace=trace)
    audit.record_outcome(Action(type=ActionType.SCROLL), "a.com", success=False, message="timeout")
    lines = (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert '"outcome_message": "timeout"' in lines[0]
