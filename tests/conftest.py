"""Shared fakes: a scripted language model and an in-memory page."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

import pytest

from page_agent.config.config import Settings
from page_agent.core.actions import Action, ActionType, ToolObservation
from page_agent.core.audit import AuditLog
from page_agent.core.backend import FocusedElement, PageContext
from page_agent.core.errors import BackendUnavailable
from page_agent.core.security import PermissionGate, PermissionPolicy
from page_agent.core.timeline import AgentSession


class ScriptedModel:
    """Returns queued replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None, *, default: Optional[str] = None) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.prompts: List[str] = []

    def queue(self, *replies: Union[str, Exception, Dict[str, Any]]) -> "ScriptedModel":
        for reply in replies:
            self.replies.append(json.dumps(reply) if isinstance(reply, dict) else reply)
        return self

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise RuntimeError("scripted model exhausted")
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_streaming(self, prompt: str):
        text = await self.generate(prompt)
        for idx in range(0, len(text), 8):
            yield text[idx : idx + 8]


def tool(name: str, **arguments: Any) -> Dict[str, Any]:
    return {"tool": name, "arguments": arguments}


class FakePage:
    """Page backend and context provider over a dict-shaped page."""

    def __init__(
        self,
        url: str = "https://example.com/",
        title: str = "Example",
        article: str = "Example article body",
        elements: Optional[Dict[Optional[str], List[Dict[str, Any]]]] = None,
        consent_choice: int = 1,
    ) -> None:
        self.url = url
        self.title = title
        self.article = article
        self.elements = elements if elements is not None else {
            None: [{"i": 0, "role": "link", "name": "Home", "text": "Home"}],
            "article": [
                {"i": 0, "role": "article", "name": "First", "text": "First post"},
                {"i": 1, "role": "article", "name": "Second", "text": "Second post"},
            ],
            "textbox": [{"i": 0, "role": "textbox", "name": "Search", "text": ""}],
        }
        self.consent_choice = consent_choice
        self.available = True
        self.executed: List[Action] = []
        self.scripted: Dict[ActionType, List[ToolObservation]] = {}
        self.consent_prompts: List[Action] = []
        self.dismiss_calls = 0
        self.focused: Optional[FocusedElement] = None

    def script(self, action_type: ActionType, *observations: ToolObservation) -> "FakePage":
        self.scripted.setdefault(action_type, []).extend(observations)
        return self

    def _check(self) -> None:
        if not self.available:
            raise BackendUnavailable("no active page")

    def executed_types(self) -> List[ActionType]:
        return [a.type for a in self.executed]

    async def execute(self, action: Action) -> ToolObservation:
        self._check()
        if action.type == ActionType.ASK_USER and action.choices:
            self.consent_prompts.append(action)
            return ToolObservation(ok=True, data={"choiceIndex": self.consent_choice})
        self.executed.append(action)
        queued = self.scripted.get(action.type)
        if queued:
            return queued.pop(0)
        if action.type == ActionType.NAVIGATE:
            self.url = action.url or self.url
            return ToolObservation(ok=True, data={"url": self.url})
        if action.type == ActionType.FIND_ELEMENTS:
            role = action.locator.role if action.locator else None
            items = self.elements.get(role, [])
            return ToolObservation(
                ok=True,
                data={"count": len(items), "elements": items, "locator": {"role": role} if role else {}},
            )
        if action.type == ActionType.EXTRACT:
            return ToolObservation(ok=True, data={"text": self.article})
        return ToolObservation(ok=True)

    async def get_focused_element_summary(self) -> Optional[FocusedElement]:
        self._check()
        return self.focused

    async def extract(self, mode: str, selector: Optional[str] = None) -> str:
        self._check()
        return self.article

    async def dismiss_consent(self) -> bool:
        self._check()
        self.dismiss_calls += 1
        return False

    async def current_context(self) -> Optional[PageContext]:
        self._check()
        return PageContext(url=self.url, title=self.title, text_excerpt=self.article)


@pytest.fixture
def settings() -> Settings:
    return Settings(max_steps=12)


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def session() -> AgentSession:
    return AgentSession()


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog()


@pytest.fixture
def gate(settings: Settings) -> PermissionGate:
    return PermissionGate(PermissionPolicy.from_settings(settings))
