from __future__ import annotations

import json
import uuid
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping


def generate_step_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def to_record(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return dict(to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return {"value": str(value)}


class _LineFile:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _append(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


class TraceLogger(_LineFile):
    """JSON-lines sink for node decisions, audit entries and run summaries."""

    def write(self, record: Any) -> None:
        payload = to_record(record)
        payload.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._append(json.dumps(payload, ensure_ascii=False, default=str))


class TextLogger(_LineFile):
    def write(self, message: str) -> None:
        self._append(message.rstrip())


class NullLog:
    def write(self, *_: Any, **__: Any) -> None:
        return None
