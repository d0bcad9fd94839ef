from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from page_agent.core.actions import ActionType, ElementSummary, ToolObservation
from page_agent.core.backend import PageContext
from page_agent.core.heuristics import heuristic_plan

TERMINAL_TYPES = {
    "goal_satisfied": "success",
    "goal_failed": "failure",
    "loop_stuck": "failure",
    "budget_exhausted": "budget",
}
STOP_TO_TERMINAL = {
    "done": "goal_satisfied",
    "policy_denied": "goal_failed",
    "max_failures": "loop_stuck",
    "backend_unavailable": "goal_failed",
    "loop_error": "goal_failed",
    "planning_failed": "goal_failed",
    "plan_complete": "goal_satisfied",
    "budget_exhausted": "budget_exhausted",
}

SAMPLE_PREVIEWS = 5
LAST_FIND_ITEMS = 8
SIGNATURE_TEXT_LIMIT = 1200
SNIPPET_LIMIT = 400


class LoopState(TypedDict, total=False):
    instruction: str
    session_id: str
    timeline: Any
    iteration: int
    executed_steps: int
    scratch: List[str]
    context: Optional[PageContext]
    site_host: Optional[str]
    intent_hint: Optional[str]
    observation_text: Optional[str]
    tool_call: Any
    action: Any
    authorization: Any
    gate_host: Optional[str]
    result: Optional[ToolObservation]
    last_tool_key: Optional[str]
    same_tool_streak: int
    last_find: Optional[Dict[str, Any]]
    last_signature: Optional[str]
    stable_noop_count: int
    consecutive_failures: int
    skipped_duplicate_navigations: int
    needs_comment: bool
    needs_open_post: bool
    did_attempt_comment: bool
    did_open_post: bool
    route: Optional[str]
    summary: Optional[str]
    stop_reason: Optional[str]
    stop_details: Optional[str]
    terminal_reason: Optional[str]
    terminal_type: Optional[str]


def goal_requirements(instruction: str) -> Dict[str, bool]:
    low = instruction.lower()
    return {
        "needs_comment": "comment" in low,
        "needs_open_post": "post" in low or "enter it" in low or "open" in low,
    }


def outstanding_tasks(state: LoopState) -> List[str]:
    missing: List[str] = []
    if state.get("needs_open_post") and not state.get("did_open_post"):
        missing.append("open a post")
    if state.get("needs_comment") and not state.get("did_attempt_comment"):
        missing.append("type a comment")
    return missing


def intent_hint_for(instruction: str) -> Optional[str]:
    plan = heuristic_plan(instruction)
    if not plan:
        return None
    for step in plan:
        if step.type == ActionType.NAVIGATE and step.url:
            return f"suggest:navigate url={step.url}"
    for step in plan:
        if step.type == ActionType.TYPE_TEXT:
            submit = "true" if step.submit else "false"
            return f"suggest:typeText submit={submit} text={(step.text or '')[:100]}"
    return None


def sample_previews(elements: Sequence[ElementSummary], *, label: Optional[str] = None, limit: int = SAMPLE_PREVIEWS) -> str:
    parts = []
    for item in elements[:limit]:
        if label:
            parts.append(f"#{item.i} {label} name={item.name} text={item.text[:60]}")
        else:
            parts.append(item.preview())
    return "; ".join(parts)


def sample_line(prefix: str, observation: ToolObservation, *, label: Optional[str] = None) -> Optional[str]:
    if observation.data is None:
        return None
    fields = observation.fields
    count = fields.get_int("count", -1)
    return f"{prefix}: count={count} sample={sample_previews(fields.elements(), label=label)}"


def compact_last_find(observation: ToolObservation, requested_role: Optional[str]) -> Dict[str, Any]:
    fields = observation.fields
    role = requested_role or ""
    echoed = fields.get_map("locator").get("role")
    if isinstance(echoed, str) and echoed:
        role = echoed
    return {
        "role": role,
        "count": fields.get_int("count", -1),
        "elements": [{"i": e.i, "role": e.role, "name": e.name} for e in fields.elements()[:LAST_FIND_ITEMS]],
    }


def page_signature(context: Optional[PageContext], article_text: str) -> str:
    url = context.url if context else ""
    title = context.title if context else ""
    return f"{url}\n{title}\n{article_text[:SIGNATURE_TEXT_LIMIT]}"


def signature_digest(signature: Optional[str]) -> Optional[str]:
    if signature is None:
        return None
    return hashlib.sha1(signature.encode("utf-8")).hexdigest()[:12]


def state_json(state: LoopState, host: Optional[str], focused: Optional[Dict[str, Any]]) -> str:
    payload: Dict[str, Any] = {}
    if state.get("last_tool_key"):
        payload["last_tool_key"] = state["last_tool_key"]
    payload["same_tool_streak"] = state.get("same_tool_streak", 0)
    if host:
        payload["host"] = host
    if focused is not None:
        payload["focused"] = focused
    return json.dumps(payload, ensure_ascii=False)


def context_block(context: Optional[PageContext], intent_hint: Optional[str]) -> str:
    lines = [f"URL: {context.url if context else ''}", f"Title: {context.title if context else ''}"]
    if context and context.text_excerpt:
        lines.append("Snippet: " + context.text_excerpt[:SNIPPET_LIMIT].replace("\n", " "))
    if intent_hint:
        lines.append(f"Intent-hint: {intent_hint}")
    return "\n".join(lines)
