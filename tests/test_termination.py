from page_agent.core.errors import ExecutionFailure, LoopExhausted, PolicyDenied
from page_agent.core.timeline import AgentSession
from page_agent.infra.termination_normalizer import classify_stop, normalize_terminal, terminal_error
from page_agent.infra.tracing import NullLog


class _Records:
    def __init__(self):
        self.items = []

    def write(self, record):
        self.items.append(record)


def test_classify_stop():
    assert classify_stop("done") == ("goal_satisfied", "success")
    assert classify_stop("plan_complete") == ("goal_satisfied", "success")
    assert classify_stop("max_failures") == ("loop_stuck", "failure")
    assert classify_stop("budget_exhausted") == ("budget_exhausted", "budget")
    assert classify_stop("mystery") == ("goal_failed", "failure")
    assert classify_stop(None) == ("goal_failed", "failure")


def test_missing_stop_reason_becomes_loop_error():
    session = AgentSession()
    session.begin_run("x")
    trace = _Records()
    result = normalize_terminal({}, session_id="s-1", session=session, text_log=NullLog(), trace=trace)
    assert result["stop_reason"] == "loop_error"
    assert result["stop_details"] == "no_stop_condition_reached"
    assert result["terminal_type"] == "failure"
    assert result["run"].is_finished
    assert trace.items[0]["summary"] is True
    assert trace.items[0]["steps"] == 1


def test_second_normalization_keeps_first_finish_time():
    session = AgentSession()
    session.begin_run("x")
    first = normalize_terminal({"stop_reason": "done"}, session_id="s", session=session, text_log=NullLog())
    finished_at = first["run"].finished_at
    normalize_terminal({"stop_reason": "loop_error"}, session_id="s", session=session, text_log=NullLog())
    assert session.current_run.finished_at == finished_at


def test_terminal_error_matches_stop_reason():
    session = AgentSession()
    session.begin_run("x")
    result = normalize_terminal(
        {"stop_reason": "policy_denied", "stop_details": "click on a.com: blocked"},
        session_id="s",
        session=session,
        text_log=NullLog(),
    )
    assert isinstance(result["error"], PolicyDenied)
    assert str(result["error"]) == "click on a.com: blocked"
    assert terminal_error("done", None) is None
    assert isinstance(terminal_error("max_failures", None), ExecutionFailure)
    assert isinstance(terminal_error("budget_exhausted", None), LoopExhausted)
    assert str(terminal_error("loop_error", None)) == "loop_error"
