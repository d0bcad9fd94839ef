from __future__ import annotations

from typing import Any, List, Optional

from page_agent.config.config import Settings
from page_agent.core.actions import Action, ActionType
from page_agent.core.backend import ContextProvider, PageBackend
from page_agent.core.errors import BackendUnavailable
from page_agent.core.graph_state import LoopState, page_signature, sample_line, signature_digest
from page_agent.core.tool_calls import MUTATING_TOOLS, ToolCall
from page_agent.io.scratch import append_scratch


def make_progress_node(
    *,
    settings: Settings,
    backend: PageBackend,
    context_provider: ContextProvider,
    text_log: Any,
    trace: Optional[Any] = None,
) -> Any:
    async def progress_node(state: LoopState) -> LoopState:
        call: ToolCall = state["tool_call"]
        result = state["result"]
        messages: List[str] = []

        key = call.streak_key
        if state.get("last_tool_key") == key:
            streak = state.get("same_tool_streak", 0) + 1
        else:
            streak = 1
        if call.is_find_like and streak >= 2:
            role = call.locator_role or (state.get("last_find") or {}).get("role") or ""
            if role:
                messages.append(
                    f"policy: repeated {call.tool} detected; select one candidate and call click with "
                    f"locator.role={role} and locator.nth=<index>"
                )
            else:
                messages.append(
                    f"policy: repeated {call.tool} detected; select one candidate and call click with locator.nth=<index>"
                )

        did_comment = state.get("did_attempt_comment", False)
        did_open = state.get("did_open_post", False)
        if result.ok:
            if call.tool == "typeText":
                if state.get("needs_comment") and not call.args.get_bool("submit"):
                    did_comment = True
            elif call.tool == "click":
                did_open = True

        last_signature = state.get("last_signature")
        noop = state.get("stable_noop_count", 0)
        try:
            if call.tool in MUTATING_TOOLS:
                context = await context_provider.current_context()
                article = await backend.extract("article")
                signature = page_signature(context, article)
                if last_signature is not None and last_signature == signature:
                    noop += 1
                    messages.append(f"no-op: page signature unchanged ({noop})")
                    if noop >= settings.max_noop:
                        messages.append(
                            "hint: signature unchanged twice; prefer scroll or findElements(role=article) before repeating."
                        )
                        sample = await backend.execute(Action(type=ActionType.FIND_ELEMENTS))
                        line = sample_line("auto-sample", sample)
                        if line:
                            messages.append(line)
                else:
                    noop = 0
                    last_signature = signature
        except BackendUnavailable as exc:
            return {**state, "stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"}

        if trace:
            trace.write(
                {
                    "session_id": state["session_id"],
                    "node": "progress",
                    "tool_key": key,
                    "same_tool_streak": streak,
                    "stable_noop_count": noop,
                    "signature": signature_digest(last_signature),
                }
            )
        return {
            **state,
            "scratch": append_scratch(state, text_log, *messages),
            "last_tool_key": key,
            "same_tool_streak": streak,
            "did_attempt_comment": did_comment,
            "did_open_post": did_open,
            "last_signature": last_signature,
            "stable_noop_count": noop,
        }

    return progress_node
