from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from page_agent.core.errors import InvalidAction


class ActionType(str, Enum):
    NAVIGATE = "navigate"
    FIND_ELEMENTS = "findElements"
    CLICK = "click"
    TYPE_TEXT = "typeText"
    SELECT = "select"
    SCROLL = "scroll"
    WAIT_FOR = "waitFor"
    EXTRACT = "extract"
    SWITCH_TAB = "switchTab"
    ASK_USER = "askUser"

    @property
    def is_side_effecting(self) -> bool:
        return self in SIDE_EFFECTING_TYPES

    @classmethod
    def parse(cls, raw: Any) -> "ActionType":
        try:
            return cls(raw)
        except ValueError:
            raise InvalidAction(f"Unknown action type: {raw!r}") from None


SIDE_EFFECTING_TYPES = frozenset(
    {
        ActionType.NAVIGATE,
        ActionType.CLICK,
        ActionType.TYPE_TEXT,
        ActionType.SELECT,
        ActionType.SCROLL,
        ActionType.SWITCH_TAB,
    }
)

_LOCATOR_KEYS = ("role", "name", "text", "css", "xpath", "near", "nth")


def _opt_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise InvalidAction(f"Field {key!r} must be a scalar, got {type(value).__name__}")
    return str(value)


def _opt_int(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidAction(f"Field {key!r} must be a number")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidAction(f"Field {key!r} must be a number, got {value!r}")


def _opt_bool(data: Mapping[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class Locator:
    role: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    css: Optional[str] = None
    xpath: Optional[str] = None
    near: Optional[str] = None
    nth: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Locator":
        if not isinstance(data, Mapping):
            raise InvalidAction(f"Locator must be an object, got {type(data).__name__}")
        return cls(
            role=_opt_str(data, "role"),
            name=_opt_str(data, "name"),
            text=_opt_str(data, "text"),
            css=_opt_str(data, "css"),
            xpath=_opt_str(data, "xpath"),
            near=_opt_str(data, "near"),
            nth=_opt_int(data, "nth"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in _LOCATOR_KEYS if getattr(self, key) is not None}

    def without_selectors(self) -> "Locator":
        return replace(self, css=None, xpath=None)

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass
class Action:
    """One requested page operation.

    Fields that do not apply to ``type`` are carried along untouched; the
    executor ignores them.
    """

    type: ActionType
    locator: Optional[Locator] = None
    url: Optional[str] = None
    new_tab: Optional[bool] = None
    text: Optional[str] = None
    value: Optional[str] = None
    direction: Optional[str] = None
    amount_px: Optional[int] = None
    submit: Optional[bool] = None
    timeout_ms: Optional[int] = None
    choices: Optional[List[str]] = None
    default_index: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_dict(cls, data: Any) -> "Action":
        if not isinstance(data, Mapping):
            raise InvalidAction(f"Action must be an object, got {type(data).__name__}")
        if "type" not in data:
            raise InvalidAction("Action is missing 'type'")
        action_type = ActionType.parse(data.get("type"))
        locator_raw = data.get("locator")
        locator = Locator.from_dict(locator_raw) if locator_raw is not None else None
        choices_raw = data.get("choices")
        if choices_raw is not None and not isinstance(choices_raw, list):
            raise InvalidAction("Field 'choices' must be a list")
        return cls(
            type=action_type,
            locator=locator,
            url=_opt_str(data, "url"),
            new_tab=_opt_bool(data, "newTab"),
            text=_opt_str(data, "text"),
            value=_opt_str(data, "value"),
            direction=_opt_str(data, "direction"),
            amount_px=_opt_int(data, "amountPx"),
            submit=_opt_bool(data, "submit"),
            timeout_ms=_opt_int(data, "timeoutMs"),
            choices=[str(c) for c in choices_raw] if choices_raw is not None else None,
            default_index=_opt_int(data, "default"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type.value,
            "locator": self.locator.to_dict() if self.locator else None,
            "url": self.url,
            "newTab": self.new_tab,
            "text": self.text,
            "value": self.value,
            "direction": self.direction,
            "amountPx": self.amount_px,
            "submit": self.submit,
            "timeoutMs": self.timeout_ms,
            "choices": self.choices,
            "default": self.default_index,
        }
        return {k: v for k, v in payload.items() if v is not None}

    @property
    def is_ready_wait(self) -> bool:
        return self.type == ActionType.WAIT_FOR and (self.direction == "ready" or bool(self.text))


def ready_wait(timeout_ms: int = 10000) -> Action:
    return Action(type=ActionType.WAIT_FOR, direction="ready", timeout_ms=timeout_ms)


def idle_wait(timeout_ms: int = 6000) -> Action:
    return Action(type=ActionType.WAIT_FOR, timeout_ms=timeout_ms)


@dataclass(frozen=True)
class ElementSummary:
    i: int
    role: str = ""
    name: str = ""
    text: str = ""

    def preview(self, *, with_role: bool = True, text_limit: int = 60) -> str:
        role = f"role={self.role} " if with_role else ""
        return f"#{self.i} {role}name={self.name} text={self.text[:text_limit]}"


class ToolData:
    """Typed accessors over the JSON-shaped payload a tool returns."""

    def __init__(self, raw: Optional[Mapping[str, Any]] = None) -> None:
        self.raw: Dict[str, Any] = dict(raw or {})

    def __contains__(self, key: str) -> bool:
        return key in self.raw

    def __bool__(self) -> bool:
        return bool(self.raw)

    def keys(self) -> List[str]:
        return sorted(self.raw.keys())

    def get_str(self, key: str, default: str = "") -> str:
        value = self.raw.get(key)
        return value if isinstance(value, str) else default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.raw.get(key)
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.raw.get(key)
        return value if isinstance(value, bool) else default

    def get_list(self, key: str) -> List[Any]:
        value = self.raw.get(key)
        return list(value) if isinstance(value, list) else []

    def get_map(self, key: str) -> Dict[str, Any]:
        value = self.raw.get(key)
        return dict(value) if isinstance(value, Mapping) else {}

    def elements(self) -> List[ElementSummary]:
        items: List[ElementSummary] = []
        for item in self.get_list("elements"):
            if not isinstance(item, Mapping):
                continue
            entry = ToolData(item)
            items.append(
                ElementSummary(
                    i=entry.get_int("i", 0) or 0,
                    role=entry.get_str("role"),
                    name=entry.get_str("name"),
                    text=entry.get_str("text"),
                )
            )
        return items


@dataclass
class ToolObservation:
    ok: bool
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @property
    def fields(self) -> ToolData:
        return ToolData(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "data": self.data, "message": self.message}
