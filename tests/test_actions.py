import pytest

from page_agent.core.actions import Action, ActionType, Locator, ToolData, ready_wait
from page_agent.core.errors import InvalidAction


def test_decode_rejects_unknown_type():
    with pytest.raises(InvalidAction):
        Action.from_dict({"type": "teleport"})


def test_decode_requires_type():
    with pytest.raises(InvalidAction):
        Action.from_dict({"url": "https://example.com"})


def test_decode_keeps_irrelevant_fields():
    action = Action.from_dict({"type": "click", "url": "https://ignored.example", "locator": {"role": "button", "nth": 2}})
    assert action.type == ActionType.CLICK
    assert action.url == "https://ignored.example"
    assert action.locator == Locator(role="button", nth=2)


def test_to_dict_uses_wire_names_and_drops_empty_fields():
    action = Action(type=ActionType.NAVIGATE, url="https://example.com", new_tab=False, timeout_ms=5000)
    assert action.to_dict() == {"type": "navigate", "url": "https://example.com", "newTab": False, "timeoutMs": 5000}


def test_locator_without_selectors():
    loc = Locator(role="link", css="a.x", xpath="//a", nth=1)
    assert loc.without_selectors().to_dict() == {"role": "link", "nth": 1}


def test_ready_wait_is_ready_wait():
    assert ready_wait().is_ready_wait
    assert ready_wait().timeout_ms == 10000
    assert not Action(type=ActionType.WAIT_FOR, timeout_ms=100).is_ready_wait


def test_side_effecting_types():
    assert ActionType.NAVIGATE.is_side_effecting
    assert ActionType.SWITCH_TAB.is_side_effecting
    assert not ActionType.FIND_ELEMENTS.is_side_effecting
    assert not ActionType.ASK_USER.is_side_effecting


def test_tool_data_accessors():
    data = ToolData(
        {
            "count": 2,
            "flag": True,
            "elements": [{"i": 0, "role": "link", "name": "A", "text": "a"}, "junk", {"i": 1, "role": "button"}],
        }
    )
    assert data.get_int("count") == 2
    assert data.get_int("flag") is None
    assert data.get_bool("flag") is True
    assert data.get_str("count", "x") == "x"
    assert [e.i for e in data.elements()] == [0, 1]
    assert data.elements()[1].role == "button"
    assert data.keys() == ["count", "elements", "flag"]
