from __future__ import annotations

from typing import Any, Optional

from langgraph.errors import GraphRecursionError

from page_agent.config.config import Settings
from page_agent.core.audit import AuditLog
from page_agent.core.backend import ContextProvider, PageBackend
from page_agent.core.graph_orchestrator import compile_graph
from page_agent.core.graph_state import LoopState, goal_requirements, intent_hint_for
from page_agent.core.llm import LanguageModel
from page_agent.core.node_bootstrap import make_bootstrap_node
from page_agent.core.node_decide import make_decide_node
from page_agent.core.node_execute import make_execute_node
from page_agent.core.node_finalize import make_finalize_node
from page_agent.core.node_goal_check import make_goal_check_node
from page_agent.core.node_navigation_guard import make_navigation_guard_node
from page_agent.core.node_observe import iteration_budget, make_observe_node
from page_agent.core.node_progress import make_progress_node
from page_agent.core.node_safety import make_safety_node
from page_agent.core.security import PermissionGate, PermissionPolicy
from page_agent.core.timeline import AgentSession, RunTimeline
from page_agent.infra.termination_normalizer import normalize_terminal
from page_agent.infra.tracing import NullLog, TextLogger, TraceLogger, generate_step_id

# Upper bound on graph hops per loop iteration (observe, decide, safety, execute, progress).
HOPS_PER_ITERATION = 6

RESULT_KEYS = (
    "instruction",
    "session_id",
    "stop_reason",
    "stop_details",
    "summary",
    "context",
    "scratch",
    "iteration",
    "executed_steps",
    "consecutive_failures",
    "skipped_duplicate_navigations",
    "stable_noop_count",
    "same_tool_streak",
    "last_tool_key",
    "last_find",
)


def _initial_state(instruction: str, session_id: str, timeline: RunTimeline) -> LoopState:
    return {
        "instruction": instruction,
        "session_id": session_id,
        "timeline": timeline,
        "iteration": 0,
        "executed_steps": 0,
        "scratch": [],
        "context": None,
        "site_host": None,
        "intent_hint": intent_hint_for(instruction),
        "last_tool_key": None,
        "same_tool_streak": 0,
        "last_find": None,
        "last_signature": None,
        "stable_noop_count": 0,
        "consecutive_failures": 0,
        "skipped_duplicate_navigations": 0,
        "did_attempt_comment": False,
        "did_open_post": False,
        **goal_requirements(instruction),
    }


def build_agent_loop(
    *,
    settings: Settings,
    llm: LanguageModel,
    backend: PageBackend,
    context_provider: ContextProvider,
    session: AgentSession,
    gate: Optional[PermissionGate] = None,
    audit: Optional[AuditLog] = None,
    text_log: Optional[TextLogger] = None,
    trace: Optional[TraceLogger] = None,
):
    """Build the observe-decide-act loop; the returned coroutine runs one instruction."""
    text_log = text_log or NullLog()  # type: ignore[assignment]
    gate = gate or PermissionGate(PermissionPolicy.from_settings(settings))
    audit = audit if audit is not None else AuditLog()
    nodes = {
        "bootstrap": make_bootstrap_node(backend=backend, context_provider=context_provider, text_log=text_log, trace=trace),
        "observe": make_observe_node(
            settings=settings, backend=backend, context_provider=context_provider, text_log=text_log, trace=trace
        ),
        "decide": make_decide_node(settings=settings, llm=llm, text_log=text_log, trace=trace),
        "navigation_guard": make_navigation_guard_node(backend=backend, text_log=text_log, trace=trace),
        "goal_check": make_goal_check_node(backend=backend, text_log=text_log, trace=trace),
        "safety": make_safety_node(settings=settings, gate=gate, audit=audit, backend=backend, text_log=text_log, trace=trace),
        "execute": make_execute_node(settings=settings, backend=backend, audit=audit, text_log=text_log, trace=trace),
        "progress": make_progress_node(
            settings=settings, backend=backend, context_provider=context_provider, text_log=text_log, trace=trace
        ),
        "finalize": make_finalize_node(text_log=text_log, trace=trace),
    }
    graph = compile_graph(nodes)
    graph_config = {"recursion_limit": (iteration_budget(settings) + 1) * HOPS_PER_ITERATION + 10}

    async def run(instruction: str) -> dict[str, Any]:
        session_id = generate_step_id("session")
        timeline = session.begin_run(instruction)
        initial_state = _initial_state(instruction, session_id, timeline)
        text_log.write(f"[{session_id}] start instruction={instruction!r} max_steps={settings.max_steps}")
        try:
            final_state = await graph.ainvoke(initial_state, config=graph_config)
        except GraphRecursionError as exc:
            text_log.write(f"[{session_id}] recursion limit reached; reason={exc}")
            timeline.mark_all_failed("stopped: budget_exhausted")
            final_state = {
                **initial_state,
                "stop_reason": "budget_exhausted",
                "stop_details": f"recursion_limit; {exc}",
            }
        except Exception:
            timeline.mark_all_failed("stopped: loop_error")
            normalize_terminal(
                {"stop_reason": "loop_error", "stop_details": "unhandled exception"},
                session_id=session_id,
                session=session,
                text_log=text_log,
                trace=trace,
            )
            raise
        result = {key: final_state.get(key) for key in RESULT_KEYS}
        result["audit_entries"] = len(audit)
        return normalize_terminal(result, session_id=session_id, session=session, text_log=text_log, trace=trace)

    return run
