from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from jsonschema import Draft7Validator

from page_agent.core.actions import Action, ActionType, ElementSummary
from page_agent.core.errors import InvalidAction, PlanningError
from page_agent.core.heuristics import heuristic_plan
from page_agent.core.llm import LanguageModel
from page_agent.core.plan_postprocess import post_process_plan


_LOCATOR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "role": {"type": ["string", "null"]},
        "name": {"type": ["string", "null"]},
        "text": {"type": ["string", "null"]},
        "css": {"type": ["string", "null"]},
        "xpath": {"type": ["string", "null"]},
        "near": {"type": ["string", "null"]},
        "nth": {"type": ["integer", "null"]},
    },
}

PAGE_ACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": [t.value for t in ActionType]},
        "locator": {"anyOf": [_LOCATOR_SCHEMA, {"type": "null"}]},
        "url": {"type": ["string", "null"]},
        "newTab": {"type": ["boolean", "null"]},
        "text": {"type": ["string", "null"]},
        "value": {"type": ["string", "null"]},
        "direction": {"type": ["string", "null"]},
        "amountPx": {"type": ["number", "null"]},
        "submit": {"type": ["boolean", "null"]},
        "timeoutMs": {"type": ["number", "null"]},
    },
    "required": ["type"],
}

PLAN_SCHEMA: Dict[str, Any] = {"type": "array", "items": PAGE_ACTION_SCHEMA}

_VALIDATOR = Draft7Validator(PLAN_SCHEMA)

SCHEMA_SNIPPET = """Output ONLY JSON: an array of objects where each object is a PageAction with keys:
- type: one of ["navigate","findElements","click","typeText","scroll","select","waitFor","extract"]
- locator: optional object with keys [role,name,text,css,xpath,near,nth]
- url: string (for navigate)
- newTab: boolean (for navigate)
- text: string (for typeText or waitFor.selector)
- value: string (for select)
- direction: string (for scroll; "down"|"up" or "ready" for waitFor.readyState)
- amountPx: number (for scroll) or delayMs when using waitFor
- submit: boolean (for typeText)
- timeoutMs: number (for waitFor)
Keep actions safe and deterministic. Prefer semantic locators (text/name/role) before css. Do not include prose.
Example:
[
  {"type":"navigate","url":"https://www.zara.com","newTab":false},
  {"type":"waitFor","direction":"ready","timeoutMs":8000},
  {"type":"typeText","locator":{"role":"textbox","name":"Search"},"text":"sweater","submit":true},
  {"type":"waitFor","direction":"ready","timeoutMs":8000},
  {"type":"click","locator":{"text":"Add to cart","nth":0}}
]"""

_FENCE = re.compile(r"```(?:json|JSON)?")
_INDEX = re.compile(r"-?\d{1,3}")


def build_plan_prompt(instruction: str) -> str:
    return (
        "You are a planning assistant for a browser automation agent. Given the user request, output JSON ONLY "
        "containing a PageAction array that is safe and minimal to accomplish the intent on the CURRENT page "
        "context. Avoid destructive actions. Prefer steps like waitFor ready-state between navigations and clicks.\n\n"
        f"User request:\n{instruction}\n\n"
        f"{SCHEMA_SNIPPET}"
    )


def _decode_array(text: str) -> Optional[List[Action]]:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(payload, list) or not _VALIDATOR.is_valid(payload):
        return None
    try:
        return [Action.from_dict(item) for item in payload]
    except InvalidAction:
        return None


def decode_plan(raw: str) -> Optional[List[Action]]:
    """Direct decode, then fence-stripped, then the outermost ``[...]`` slice."""
    plan = _decode_array(raw.strip())
    if plan is not None:
        return plan
    plan = _decode_array(_FENCE.sub("", raw).strip())
    if plan is not None:
        return plan
    start = raw.find("[")
    end = raw.rfind("]")
    if start >= 0 and end > start:
        return _decode_array(raw[start : end + 1])
    return None


def decode_literal_plan(raw: str) -> List[Action]:
    """Strict decode for caller-supplied plans (``/plan <json>``)."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PlanningError(f"Invalid /plan JSON format: {exc}") from exc
    if not isinstance(payload, list):
        raise PlanningError("Invalid /plan JSON format: expected an array")
    try:
        return [Action.from_dict(item) for item in payload]
    except InvalidAction as exc:
        raise PlanningError(f"Invalid /plan JSON format: {exc}") from exc


@dataclass
class PlannerResult:
    actions: List[Action]
    source: str
    raw_response: Optional[str] = None
    notes: List[str] = field(default_factory=list)


class Planner:
    def __init__(self, llm: Optional[LanguageModel], *, text_log: Optional[Any] = None) -> None:
        self.llm = llm
        self.text_log = text_log

    def _log(self, message: str) -> None:
        print(f"[plan] {message}")
        if self.text_log:
            self.text_log.write(f"[plan] {message}")

    async def plan(self, instruction: str) -> List[Action]:
        return (await self.plan_detailed(instruction)).actions

    async def plan_detailed(self, instruction: str) -> PlannerResult:
        notes: List[str] = []
        raw: Optional[str] = None
        actions: Optional[List[Action]] = None
        if self.llm is not None:
            try:
                raw = await self.llm.generate(build_plan_prompt(instruction))
            except Exception as exc:  # noqa: BLE001 - provider failures fall back to heuristics
                notes.append(f"model_error:{exc}")
                self._log(f"Model call failed ({exc}); trying heuristic plan")
            if raw is not None:
                actions = decode_plan(raw)
                if actions is None:
                    notes.append("decode_failed")
        else:
            notes.append("no_model")
        source = "model"
        if not actions:
            fallback = heuristic_plan(instruction)
            if not fallback:
                raise PlanningError(f"No valid action list for: {instruction[:120]!r} ({', '.join(notes) or 'empty plan'})")
            self._log(f"Using heuristic fallback plan ({len(fallback)} steps)")
            actions = fallback
            source = "heuristic"
        processed = post_process_plan(actions)
        self._log(f"Plan decoded with {len(processed)} steps (source={source})")
        return PlannerResult(actions=processed, source=source, raw_response=raw, notes=notes)


def build_choice_prompt(candidates: Sequence[ElementSummary], instruction: str, *, max_items: int = 15) -> str:
    lines = []
    for idx, item in enumerate(candidates[:max_items]):
        snippet = f"{item.name} {item.text}".replace("\n", " ")[:220]
        lines.append(f"{idx} | role={item.role} | {snippet}")
    return (
        "You are helping select the best candidate element for a user request. Choose exactly one index from the list.\n"
        "- Return ONLY the index as an integer (0-based). No prose, no JSON.\n"
        f"- Consider the user intent: {instruction}\n"
        "Candidates (index | role | snippet):\n" + "\n".join(lines) + "\nAnswer with a single integer index only."
    )


async def choose_element_index(
    candidates: Sequence[ElementSummary],
    instruction: str,
    llm: Optional[LanguageModel],
    *,
    max_items: int = 15,
) -> Optional[int]:
    if llm is None or not candidates:
        return None
    limit = min(max_items, len(candidates))
    try:
        out = (await llm.generate(build_choice_prompt(candidates, instruction, max_items=limit))).strip()
    except Exception:  # noqa: BLE001 - selection is best-effort
        return None
    match = _INDEX.search(out)
    if not match:
        return None
    idx = int(match.group(0))
    return idx if 0 <= idx < limit else None
