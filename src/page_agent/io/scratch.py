from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from page_agent.core.graph_state import LoopState


class _Log(Protocol):
    def write(self, message: str) -> None: ...


def append_scratch(state: LoopState, text_log: Optional[_Log], *messages: str, keep_last: int = 60) -> List[str]:
    """Return the scratch transcript with ``messages`` appended, mirrored to the text log."""
    lines = list(state.get("scratch") or [])
    for message in messages:
        if not message:
            continue
        lines.append(message)
        if text_log is not None:
            text_log.write(f"[{state.get('session_id', '-')}] {message}")
    return lines[-keep_last:]


def recent(lines: Iterable[str], window: int) -> str:
    items = list(lines)
    return "\n".join(items[-window:]) if window > 0 else ""
