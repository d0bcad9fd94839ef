import pytest

from conftest import ScriptedModel
from page_agent.core.actions import ActionType, ElementSummary
from page_agent.core.errors import PlanningError
from page_agent.core.planner import (
    Planner,
    build_plan_prompt,
    choose_element_index,
    decode_literal_plan,
    decode_plan,
)


def test_decode_plan_direct():
    plan = decode_plan('[{"type":"click","locator":{"text":"Next"}}]')
    assert plan is not None
    assert plan[0].type == ActionType.CLICK
    assert plan[0].locator.text == "Next"


def test_decode_plan_strips_fences():
    raw = '```json\n[{"type":"navigate","url":"https://a.com"}]\n```'
    plan = decode_plan(raw)
    assert plan is not None
    assert plan[0].url == "https://a.com"


def test_decode_plan_slices_prose():
    raw = 'Here is the plan: [{"type":"scroll","direction":"down","amountPx":400}] good luck'
    plan = decode_plan(raw)
    assert plan is not None
    assert plan[0].amount_px == 400


def test_decode_plan_rejects_schema_violations():
    assert decode_plan('[{"type":"teleport"}]') is None
    assert decode_plan('{"type":"click"}') is None
    assert decode_plan("no json here") is None


def test_decode_literal_plan_errors():
    with pytest.raises(PlanningError, match="Invalid /plan JSON format"):
        decode_literal_plan("[{")
    with pytest.raises(PlanningError, match="expected an array"):
        decode_literal_plan('{"type":"click"}')


def test_prompt_carries_instruction_and_schema():
    prompt = build_plan_prompt("buy milk")
    assert "buy milk" in prompt
    assert "Output ONLY JSON" in prompt


@pytest.mark.asyncio
async def test_model_plan_is_post_processed():
    llm = ScriptedModel(['[{"type":"navigate","url":"https://news.example"}]'])
    result = await Planner(llm).plan_detailed("read the news")
    assert result.source == "model"
    assert [a.type for a in result.actions] == [ActionType.NAVIGATE, ActionType.WAIT_FOR, ActionType.WAIT_FOR]
    assert result.actions[1].is_ready_wait
    assert result.actions[1].timeout_ms == 10000
    assert result.actions[2].timeout_ms == 6000


@pytest.mark.asyncio
async def test_garbage_falls_back_to_heuristics():
    llm = ScriptedModel(["I cannot help with that"])
    result = await Planner(llm).plan_detailed("enter reddit.com")
    assert result.source == "heuristic"
    assert "decode_failed" in result.notes
    assert result.actions[0].url == "https://reddit.com"
    assert [a.type for a in result.actions] == [ActionType.NAVIGATE, ActionType.WAIT_FOR, ActionType.WAIT_FOR]


@pytest.mark.asyncio
async def test_model_error_falls_back_to_heuristics():
    llm = ScriptedModel([RuntimeError("provider down")])
    result = await Planner(llm).plan_detailed("search for cats")
    assert result.source == "heuristic"
    assert any(note.startswith("model_error:") for note in result.notes)
    typed = next(a for a in result.actions if a.type == ActionType.TYPE_TEXT)
    assert typed.text == "cats"
    assert typed.submit is True


@pytest.mark.asyncio
async def test_empty_plan_without_heuristic_raises():
    llm = ScriptedModel(["[]"])
    with pytest.raises(PlanningError):
        await Planner(llm).plan("summarize this page")


@pytest.mark.asyncio
async def test_no_model_uses_heuristics_only():
    actions = await Planner(None).plan("go to github")
    assert actions[0].url == "https://github.com"
    with pytest.raises(PlanningError):
        await Planner(None).plan("summarize this page")


@pytest.mark.asyncio
async def test_choose_element_index():
    candidates = [ElementSummary(i=n, role="article", name=f"Post {n}") for n in range(3)]
    assert await choose_element_index(candidates, "funniest", ScriptedModel(["Index: 2"])) == 2
    assert await choose_element_index(candidates, "funniest", ScriptedModel(["7"])) is None
    assert await choose_element_index(candidates, "funniest", ScriptedModel(["none"])) is None
    assert await choose_element_index(candidates, "funniest", None) is None
    assert await choose_element_index([], "funniest", ScriptedModel(["0"])) is None
