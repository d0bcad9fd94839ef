from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from page_agent.infra.paths import Paths


_TRUTHY = {"1", "true", "yes", "on"}


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def clamp_int(raw: Optional[str], *, default: int, min_value: int = 1) -> int:
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(min_value, value)


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    start_url: str = "about:blank"
    headless: bool = False
    max_steps: int = 12
    max_failures: int = 3
    max_noop: int = 2
    scratch_window: int = 10
    planner_max_retries: int = 2
    consent_timeout_ms: int = 15000
    auto_consent: bool = False
    agent_enabled: bool = True
    blocked_hosts: list[str] = field(default_factory=list)
    consent_intents: list[str] = field(default_factory=list)
    risky_domains: list[str] = field(default_factory=lambda: ["paypal", "stripe", "bank", "billing", "secure"])
    sensitive_paths: list[str] = field(
        default_factory=lambda: ["payment", "checkout", "billing", "account/close", "delete", "unsubscribe"]
    )
    paths: Optional[Paths] = None

    @classmethod
    def load(cls) -> "Settings":
        # Project root (…/src/page_agent/config) so .env at repo root is loaded before env vars.
        root = Path(__file__).resolve().parents[3]
        load_dotenv(root / ".env", override=True)
        paths = Paths.from_env(root).ensure()

        max_steps = clamp_int(os.getenv("MAX_STEPS"), default=12)
        max_failures = clamp_int(os.getenv("MAX_CONSECUTIVE_FAILURES"), default=3)
        max_noop = clamp_int(os.getenv("MAX_NOOP"), default=2)
        scratch_window = clamp_int(os.getenv("SCRATCH_WINDOW"), default=10)
        planner_max_retries = clamp_int(os.getenv("PLANNER_MAX_RETRIES"), default=2, min_value=0)
        consent_timeout_ms = clamp_int(os.getenv("CONSENT_TIMEOUT_MS"), default=15000, min_value=1000)

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL"),
            start_url=os.getenv("START_URL", "about:blank"),
            headless=os.getenv("HEADLESS", "false").lower() in _TRUTHY,
            max_steps=max_steps,
            max_failures=max_failures,
            max_noop=max_noop,
            scratch_window=scratch_window,
            planner_max_retries=planner_max_retries,
            consent_timeout_ms=consent_timeout_ms,
            auto_consent=os.getenv("AUTO_CONSENT", "false").lower() in _TRUTHY,
            agent_enabled=os.getenv("AGENT_ENABLED", "true").lower() in _TRUTHY,
            blocked_hosts=[h.lower() for h in _split_csv(os.getenv("AGENT_BLOCKED_HOSTS", ""))],
            consent_intents=_split_csv(os.getenv("AGENT_CONSENT_INTENTS", "")),
            risky_domains=_split_csv(os.getenv("RISKY_DOMAINS", "paypal,stripe,bank,billing,secure")),
            sensitive_paths=_split_csv(
                os.getenv("SENSITIVE_PATHS", "payment,checkout,billing,account/close,delete,unsubscribe")
            ),
            paths=paths,
        )
