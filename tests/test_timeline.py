import pytest

from page_agent.core.actions import Action, ActionType
from page_agent.core.errors import IllegalTransition, SessionBusy
from page_agent.core.timeline import AgentSession, SessionState, StepState


def test_begin_run_seeds_instruction_step():
    session = AgentSession()
    timeline = session.begin_run("find cats")
    assert session.state == SessionState.RUNNING
    first = timeline.steps[0]
    assert first.action.type == ActionType.ASK_USER
    assert first.action.text == "find cats"
    assert first.state == StepState.SUCCESS


def test_transitions_only_move_forward():
    timeline = AgentSession().begin_run("x")
    step = timeline.append(Action(type=ActionType.CLICK))
    timeline.transition(step.id, StepState.RUNNING)
    with pytest.raises(IllegalTransition):
        timeline.transition(step.id, StepState.PLANNED)
    timeline.transition(step.id, StepState.FAILURE, "timeout")
    assert step.message == "timeout"
    with pytest.raises(IllegalTransition):
        timeline.transition(step.id, StepState.SUCCESS)


def test_planned_can_jump_to_terminal():
    timeline = AgentSession().begin_run("x", with_instruction=False)
    step = timeline.append(Action(type=ActionType.SCROLL))
    timeline.transition(step.id, StepState.SUCCESS)
    assert step.state == StepState.SUCCESS


def test_mark_all_failed_leaves_terminal_steps():
    timeline = AgentSession().begin_run("x")
    pending = timeline.append(Action(type=ActionType.CLICK))
    running = timeline.append(Action(type=ActionType.SCROLL), StepState.RUNNING)
    timeline.mark_all_failed("stopped: policy_denied")
    assert timeline.steps[0].state == StepState.SUCCESS
    assert pending.state == StepState.FAILURE and running.state == StepState.FAILURE
    assert pending.message == "stopped: policy_denied"


def test_duplicate_action_ids_get_fresh_step_ids():
    timeline = AgentSession().begin_run("x")
    action = Action(type=ActionType.CLICK)
    first = timeline.append(action)
    second = timeline.append(action)
    assert first.id == action.id
    assert second.id != first.id


def test_session_busy_and_finish_once():
    session = AgentSession()
    session.begin_run("first", planning=True)
    with pytest.raises(SessionBusy):
        session.begin_run("second")
    session.start_running()
    assert session.finish_run() is True
    assert session.finish_run() is False
    assert session.state == SessionState.FINISHED
    assert session.current_run.is_finished
    session.begin_run("second")
    assert len(session.runs) == 2


def test_finish_without_run_is_illegal():
    with pytest.raises(IllegalTransition):
        AgentSession().finish_run()
