from __future__ import annotations

from typing import Any, Callable, Dict

from langgraph.graph import END, START, StateGraph

from page_agent.core.graph_state import LoopState


Node = Callable[[LoopState], Any]


def _stop_or(target: str) -> Callable[[LoopState], str]:
    return lambda state: "finalize" if state.get("stop_reason") else target


def _after_decide(state: LoopState) -> str:
    if state.get("stop_reason"):
        return "finalize"
    route = state.get("route")
    if route in {"navigation_guard", "goal_check", "safety"}:
        return route
    return "observe"


def compile_graph(nodes: Dict[str, Node]) -> Any:
    workflow = StateGraph(LoopState)

    for name in ("bootstrap", "observe", "decide", "navigation_guard", "goal_check", "safety", "execute", "progress", "finalize"):
        workflow.add_node(name, nodes[name])

    workflow.add_edge(START, "bootstrap")
    workflow.add_conditional_edges("bootstrap", _stop_or("observe"), {"observe": "observe", "finalize": "finalize"})
    workflow.add_conditional_edges("observe", _stop_or("decide"), {"decide": "decide", "finalize": "finalize"})
    workflow.add_conditional_edges(
        "decide",
        _after_decide,
        {
            "observe": "observe",
            "navigation_guard": "navigation_guard",
            "goal_check": "goal_check",
            "safety": "safety",
            "finalize": "finalize",
        },
    )
    workflow.add_conditional_edges("navigation_guard", _stop_or("observe"), {"observe": "observe", "finalize": "finalize"})
    workflow.add_conditional_edges("goal_check", _stop_or("observe"), {"observe": "observe", "finalize": "finalize"})
    workflow.add_conditional_edges("safety", _stop_or("execute"), {"execute": "execute", "finalize": "finalize"})
    workflow.add_conditional_edges("execute", _stop_or("progress"), {"progress": "progress", "finalize": "finalize"})
    workflow.add_conditional_edges("progress", _stop_or("observe"), {"observe": "observe", "finalize": "finalize"})
    workflow.add_edge("finalize", END)

    return workflow.compile()
