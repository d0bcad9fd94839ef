from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _env_dir(env: Mapping[str, str], name: str, default: Path) -> Path:
    raw = env.get(name)
    return (Path(raw).expanduser() if raw else default).resolve()


@dataclass(frozen=True)
class Paths:
    """Browser profile and log locations, overridable per variable."""

    root: Path
    profile_dir: Path
    logs_dir: Path

    @classmethod
    def from_env(cls, root: Path, env: Optional[Mapping[str, str]] = None) -> "Paths":
        env = os.environ if env is None else env
        root = root.resolve()
        return cls(
            root=root,
            profile_dir=_env_dir(env, "USER_DATA_DIR", root / "data" / "user_data"),
            logs_dir=_env_dir(env, "LOGS_DIR", root / "logs"),
        )

    @property
    def agent_log(self) -> Path:
        return self.logs_dir / "agent.log"

    @property
    def trace_log(self) -> Path:
        return self.logs_dir / "trace.jsonl"

    @property
    def audit_log(self) -> Path:
        return self.logs_dir / "audit.jsonl"

    def ensure(self) -> "Paths":
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return self
