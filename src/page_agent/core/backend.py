from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

from page_agent.core.actions import Action, ToolObservation


@dataclass(frozen=True)
class FocusedElement:
    role: Optional[str]
    name: Optional[str]
    is_visible: bool

    def to_dict(self) -> dict[str, object]:
        return {"role": self.role or "", "name": self.name or "", "visible": self.is_visible}


@dataclass(frozen=True)
class PageContext:
    url: str
    title: str
    text_excerpt: str = ""

    @property
    def host(self) -> Optional[str]:
        return url_host(self.url)


def url_host(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    host = urlparse(url).hostname
    return host.lower() if host else None


def normalize_host(host: Optional[str]) -> str:
    host = (host or "").lower()
    return host[4:] if host.startswith("www.") else host


class PageBackend(Protocol):
    async def execute(self, action: Action) -> ToolObservation: ...

    async def get_focused_element_summary(self) -> Optional[FocusedElement]: ...

    async def extract(self, mode: str, selector: Optional[str] = None) -> str: ...

    async def dismiss_consent(self) -> bool: ...


class ContextProvider(Protocol):
    async def current_context(self) -> Optional[PageContext]: ...
