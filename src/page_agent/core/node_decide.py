from __future__ import annotations

from typing import Any, Optional

from page_agent.config.config import Settings
from page_agent.core.backend import PageContext, normalize_host, url_host
from page_agent.core.errors import InvalidAction
from page_agent.core.graph_state import LoopState
from page_agent.core.llm import LanguageModel
from page_agent.core.tool_calls import DONE_TOOL, TOOL_SCHEMA, ToolCall, decode_tool_call, sanitize_arguments, tool_to_action
from page_agent.io.scratch import append_scratch

NAVIGATION_HINT = "\nHint: Do not navigate again; proceed with on-page actions (findElements/click/typeText)."


def build_decide_prompt(observation_text: str, *, skipped_navigations: int = 0) -> str:
    prompt = (
        "You are a careful browser agent. Decide the next action to achieve the goal on an arbitrary webpage. "
        "Prefer safe and deterministic steps. If a selector is needed, use accessible roles/names when possible "
        "and add waits appropriately.\n\n"
        f"{TOOL_SCHEMA}\n\n"
        f"Observation:\n{observation_text}"
    )
    return prompt + (NAVIGATION_HINT if skipped_navigations > 0 else "")


def is_duplicate_navigation(target: Optional[str], context: Optional[PageContext]) -> bool:
    if not target or context is None:
        return False
    if target == context.url:
        return True
    probe = target if "://" in target else f"https://{target}"
    target_host = normalize_host(url_host(probe))
    return bool(target_host) and target_host == normalize_host(context.host)


def make_decide_node(
    *,
    settings: Settings,
    llm: LanguageModel,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def decide_node(state: LoopState) -> LoopState:
        prompt = build_decide_prompt(
            state.get("observation_text") or "",
            skipped_navigations=state.get("skipped_duplicate_navigations", 0),
        )
        try:
            raw = await llm.generate(prompt)
        except Exception as exc:  # noqa: BLE001 - any provider failure ends the run
            scratch = append_scratch(state, text_log, f"Loop error: {exc}")
            return {**state, "scratch": scratch, "stop_reason": "loop_error", "stop_details": f"model: {exc}"}

        try:
            decoded = decode_tool_call(raw)
            call = ToolCall(tool=decoded.tool, arguments=sanitize_arguments(decoded.arguments))
            action = None if call.tool == DONE_TOOL else tool_to_action(call)
        except InvalidAction as exc:
            failures = state.get("consecutive_failures", 0) + 1
            scratch = append_scratch(state, text_log, f"Model returned {exc}; retrying")
            if trace:
                trace.write({"session_id": state["session_id"], "node": "decide", "malformed": str(exc), "raw": raw[:500]})
            update: LoopState = {**state, "scratch": scratch, "consecutive_failures": failures, "route": "retry"}
            if failures >= settings.max_failures:
                update.update({"stop_reason": "max_failures", "stop_details": f"consecutive_failures={failures}"})
            return update

        if trace:
            trace.write(
                {
                    "session_id": state["session_id"],
                    "node": "decide",
                    "iteration": state.get("iteration", 0),
                    "tool_call": call.to_dict(),
                }
            )
        if call.tool == DONE_TOOL:
            route = "goal_check"
        elif call.tool == "navigate" and is_duplicate_navigation(action.url if action else None, state.get("context")):
            route = "navigation_guard"
        else:
            route = "safety"
        return {**state, "tool_call": call, "action": action, "route": route}

    return decide_node
