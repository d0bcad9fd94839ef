import pytest

from conftest import FakePage
from page_agent.config.config import Settings
from page_agent.core.actions import ActionType, ToolObservation
from page_agent.core.security import (
    PermissionGate,
    PermissionPolicy,
    consent_action,
    consent_granted,
    request_consent,
)


def _gate(**overrides) -> PermissionGate:
    return PermissionGate(PermissionPolicy.from_settings(Settings(**overrides)))


def test_read_only_intents_always_allowed():
    gate = _gate(agent_enabled=False, blocked_hosts=["example.com"])
    for intent in (ActionType.FIND_ELEMENTS, ActionType.EXTRACT, ActionType.WAIT_FOR, ActionType.ASK_USER):
        assert gate.evaluate(intent, "example.com").allowed


def test_disabled_agent_denies_side_effects():
    decision = _gate(agent_enabled=False).evaluate(ActionType.CLICK, "example.com")
    assert not decision.allowed
    assert decision.reason == "agent actions disabled"


def test_blocked_host_matches_subdomains_and_www():
    gate = _gate(blocked_hosts=["example.com"])
    assert not gate.evaluate(ActionType.CLICK, "www.example.com").allowed
    assert not gate.evaluate(ActionType.NAVIGATE, "shop.example.com").allowed
    assert gate.evaluate(ActionType.NAVIGATE, "notexample.com").allowed


def test_consent_intents_and_unknown_names():
    gate = _gate(consent_intents=["typeText", "bogus"])
    decision = gate.evaluate(ActionType.TYPE_TEXT, "a.com")
    assert not decision.allowed
    assert decision.reason == "typeText requires consent"
    assert gate.evaluate(ActionType.CLICK, "a.com").allowed


def test_risky_destination():
    gate = _gate()
    assert gate.evaluate(ActionType.NAVIGATE, "www.paypal.com").reason == "risky destination"
    assert gate.evaluate(ActionType.SCROLL, "www.paypal.com").allowed
    assert gate.evaluate(ActionType.NAVIGATE, None).allowed


def test_policy_is_reread_on_each_call():
    policy = PermissionPolicy()
    gate = PermissionGate(policy)
    assert gate.evaluate(ActionType.CLICK, "a.com").allowed
    policy.agent_enabled = False
    assert not gate.evaluate(ActionType.CLICK, "a.com").allowed


def test_consent_prompt_shape():
    action = consent_action(ActionType.CLICK, "a.com", timeout_ms=5000)
    assert action.type == ActionType.ASK_USER
    assert action.choices == ["Allow once", "Cancel"]
    assert action.default_index == 1
    assert action.text == "Allow action: click on a.com?"


def test_consent_granted_only_for_first_choice():
    assert consent_granted(ToolObservation(ok=True, data={"choiceIndex": 0}))
    assert not consent_granted(ToolObservation(ok=True, data={"choiceIndex": 1}))
    assert not consent_granted(ToolObservation(ok=False, data={"choiceIndex": 0}))


@pytest.mark.asyncio
async def test_request_consent_uses_backend():
    page = FakePage(consent_choice=0)
    assert await request_consent(page, ActionType.NAVIGATE, "a.com")
    assert len(page.consent_prompts) == 1
    assert page.executed == []
