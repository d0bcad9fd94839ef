from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator

from page_agent.core.actions import Action, ActionType, Locator, ToolData
from page_agent.core.errors import InvalidAction


DONE_TOOL = "done"
FIND_LIKE_TOOLS = frozenset({"findElements", "observe"})
MUTATING_TOOLS = frozenset({"navigate", "click", "typeText", "select"})

TOOL_TO_ACTION = {
    "navigate": ActionType.NAVIGATE,
    "findElements": ActionType.FIND_ELEMENTS,
    "observe": ActionType.FIND_ELEMENTS,
    "click": ActionType.CLICK,
    "typeText": ActionType.TYPE_TEXT,
    "select": ActionType.SELECT,
    "scroll": ActionType.SCROLL,
    "waitFor": ActionType.WAIT_FOR,
    "extract": ActionType.EXTRACT,
    "askUser": ActionType.ASK_USER,
    "switchTab": ActionType.SWITCH_TAB,
}
TOOL_NAMES = frozenset(TOOL_TO_ACTION) | {DONE_TOOL}

OBSERVE_KIND_ROLES = {"articles": "article", "textboxes": "textbox", "interactive": None}

TOOL_CALL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "tool": {"type": "string", "minLength": 1},
        "arguments": {"type": ["object", "null"]},
    },
    "required": ["tool"],
}
_VALIDATOR = Draft7Validator(TOOL_CALL_SCHEMA)
_FENCE = re.compile(r"```(?:json|JSON)?")

TOOL_SCHEMA = """Output ONLY JSON for one tool per turn: {"tool":"<name>", "arguments":{...}}
Return exactly one tool per turn. Do not bundle or chain multiple actions in a single response.
Tools:
- navigate(url: string, newTab?: boolean)
- waitFor(readyState?: "complete" | "ready", selector?: string, delayMs?: number, timeoutMs?: number)
- findElements(locator?: {role?: string, name?: string, text?: string, near?: string, nth?: number})
- observe(kinds?: ("interactive"|"articles"|"textboxes")[], limit?: number)  // curated lists for deterministic selection
- click(locator: Locator)  // when selecting from a prior list, use locator.nth
- typeText(locator: Locator, text: string, submit?: boolean)  // set submit:true for searches
- select(locator: Locator, value: string)
- scroll(locator?: Locator, direction?: "down"|"up", amountPx?: number)
- extract(readMode?: "selection"|"article"|"all", selector?: string)
- switchTab(index?: number, url?: string, title?: string)
- askUser(prompt: string, choices?: string[], default?: number, timeoutMs?: number)
Constraints:
- Never craft CSS/XPath selectors; locator.css and locator.xpath are removed before execution.
- Prefer role/name/text and indices (locator.nth) when selecting from a sample returned by findElements.
- Prefer observe() or findElements() to request the exact candidates you need (e.g., articles or textboxes) and then choose by nth.
- When searching or typing into inputs, first call findElements with role="textbox" (or "input"), then typeText with locator.nth and submit:true if appropriate.
- Insert waitFor after navigation or form submission before proceeding.
- Avoid site-specific attributes (e.g., data-click-id, brand-specific classnames). Be page-agnostic.
- Observations include a State JSON (last_tool_key, same_tool_streak, host, focused element) and optionally LastFind with role, count, and candidate elements. Use these to choose locator.role and locator.nth deterministically.
- If the instruction includes phrases like "enter", "open", or "go to" followed by a site-like token, prefer navigate over typing into a search box.
Finish with: {"tool":"done", "arguments":{"summary":"..."}}. No prose."""


@dataclass
class ToolCall:
    tool: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @property
    def args(self) -> ToolData:
        return ToolData(self.arguments)

    @property
    def locator_role(self) -> Optional[str]:
        loc = self.arguments.get("locator")
        if isinstance(loc, Mapping) and isinstance(loc.get("role"), str):
            return loc["role"].lower()
        return None

    @property
    def is_find_like(self) -> bool:
        return self.tool in FIND_LIKE_TOOLS

    @property
    def streak_key(self) -> str:
        return f"{self.tool}|{self.locator_role or ''}"

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "arguments": self.arguments}


def decode_tool_call(raw: str) -> ToolCall:
    """Decode exactly one ``{tool, arguments}`` object from a model reply.

    Arrays and replies carrying more than one object are rejected; the loop
    never executes a batch.
    """
    text = _FENCE.sub("", raw or "").strip()
    start = text.find("{")
    if start < 0:
        raise InvalidAction("non-JSON")
    if "[" in text[:start]:
        raise InvalidAction("a batch of tools")
    try:
        payload, end = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError:
        raise InvalidAction("invalid tool object") from None
    if "{" in text[end:]:
        raise InvalidAction("multiple tool objects")
    if not isinstance(payload, dict) or not _VALIDATOR.is_valid(payload):
        raise InvalidAction("invalid tool object")
    tool = payload["tool"].strip()
    if "arguments" in payload:
        arguments = dict(payload.get("arguments") or {})
    else:
        arguments = {k: v for k, v in payload.items() if k != "tool"}
    if tool not in TOOL_NAMES:
        raise InvalidAction(f"unknown tool {tool!r}")
    return ToolCall(tool=tool, arguments=arguments)


def sanitize_arguments(arguments: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop raw selectors from a model-sourced locator."""
    cleaned = dict(arguments)
    loc = cleaned.get("locator")
    if isinstance(loc, Mapping):
        cleaned["locator"] = {k: v for k, v in loc.items() if k not in {"css", "xpath"}}
    return cleaned


def _locator(args: ToolData) -> Optional[Locator]:
    raw = args.get_map("locator")
    if not raw:
        return None
    return Locator.from_dict(raw).without_selectors()


def _observe_role(args: ToolData) -> Optional[str]:
    for kind in args.get_list("kinds"):
        role = OBSERVE_KIND_ROLES.get(str(kind).lower())
        if role:
            return role
    return None


def tool_to_action(call: ToolCall) -> Action:
    if call.tool == DONE_TOOL:
        raise InvalidAction("done is not an executable tool")
    action_type = TOOL_TO_ACTION.get(call.tool)
    if action_type is None:
        raise InvalidAction(f"unknown tool {call.tool!r}")
    args = call.args
    if call.tool == "observe":
        role = _observe_role(args)
        return Action(type=action_type, locator=Locator(role=role) if role else None, amount_px=args.get_int("limit"))
    if action_type == ActionType.NAVIGATE:
        url = args.get_str("url")
        if not url:
            raise InvalidAction("navigate requires a url")
        return Action(type=action_type, url=url, new_tab=args.get_bool("newTab"))
    if action_type == ActionType.WAIT_FOR:
        ready = args.get_str("readyState") or args.get_str("direction")
        return Action(
            type=action_type,
            direction="ready" if ready in {"ready", "complete"} else None,
            text=args.get_str("selector") or None,
            amount_px=args.get_int("delayMs"),
            timeout_ms=args.get_int("timeoutMs"),
        )
    if action_type == ActionType.EXTRACT:
        return Action(
            type=action_type,
            value=args.get_str("readMode") or None,
            text=args.get_str("selector") or None,
        )
    if action_type == ActionType.ASK_USER:
        choices: Optional[List[str]] = [str(c) for c in args.get_list("choices")] or None
        return Action(
            type=action_type,
            text=args.get_str("prompt") or args.get_str("text"),
            choices=choices,
            default_index=args.get_int("default"),
            timeout_ms=args.get_int("timeoutMs"),
        )
    if action_type == ActionType.SWITCH_TAB:
        index = args.get_int("index")
        return Action(
            type=action_type,
            value=str(index) if index is not None else None,
            url=args.get_str("url") or None,
            text=args.get_str("title") or None,
        )
    submit = args.raw.get("submit")
    return Action(
        type=action_type,
        locator=_locator(args),
        text=args.get_str("text") or None,
        value=args.get_str("value") or None,
        direction=args.get_str("direction") or None,
        amount_px=args.get_int("amountPx"),
        submit=submit if isinstance(submit, bool) else None,
    )
