from page_agent.core.actions import Action, ActionType, Locator, ready_wait
from page_agent.core.plan_postprocess import post_process_plan, presence_wait


def test_navigate_gets_ready_and_idle_waits():
    out = post_process_plan([Action(type=ActionType.NAVIGATE, url="https://a.com")])
    assert [a.type for a in out] == [ActionType.NAVIGATE, ActionType.WAIT_FOR, ActionType.WAIT_FOR]
    assert out[1].is_ready_wait
    assert not out[2].is_ready_wait
    assert out[2].timeout_ms == 6000


def test_navigate_followed_by_ready_wait_only_gets_idle_wait():
    plan = [Action(type=ActionType.NAVIGATE, url="https://a.com"), ready_wait(5000)]
    out = post_process_plan(plan)
    assert len(out) == 3
    assert out[1].timeout_ms == 6000 and not out[1].is_ready_wait
    assert out[2].is_ready_wait and out[2].timeout_ms == 5000


def test_interactive_step_is_wrapped():
    click = Action(type=ActionType.CLICK, locator=Locator(role="article"))
    out = post_process_plan([click])
    assert [a.type for a in out] == [ActionType.WAIT_FOR, ActionType.CLICK, ActionType.WAIT_FOR]
    assert out[0].text == "article, [role=article]"
    assert out[2].timeout_ms == 4000
    assert not out[2].is_ready_wait


def test_step_without_locator_only_gets_idle_wait():
    out = post_process_plan([Action(type=ActionType.FIND_ELEMENTS)])
    assert [a.type for a in out] == [ActionType.FIND_ELEMENTS, ActionType.WAIT_FOR]


def test_non_interactive_steps_pass_through():
    plan = [Action(type=ActionType.SCROLL, direction="down"), Action(type=ActionType.EXTRACT)]
    assert post_process_plan(plan) == plan


def test_presence_wait_prefers_css():
    wait = presence_wait(Locator(css="#q", role="textbox"))
    assert wait is not None and wait.text == "#q"
    assert presence_wait(Locator(role="widget")).text == "[role]"
    assert presence_wait(Locator(text="Go")) is None
    assert presence_wait(None) is None
