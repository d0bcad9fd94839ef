"""One-shot plan execution with a live run timeline.

The planner produces the whole action list up front; each step is then gated,
executed and recorded in order. Clicks that require picking one item and all
text entry are resolved against a fresh element sample first.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Sequence

from page_agent.config.config import Settings
from page_agent.core.actions import Action, ActionType, ElementSummary, Locator, ToolObservation, idle_wait
from page_agent.core.audit import AuditLog
from page_agent.core.backend import ContextProvider, PageBackend
from page_agent.core.errors import BackendUnavailable, PlanningError
from page_agent.core.gating import authorize, gate_host
from page_agent.core.heuristics import heuristic_plan, query_implies_choice
from page_agent.core.llm import LanguageModel
from page_agent.core.plan_postprocess import post_process_plan
from page_agent.core.planner import Planner, choose_element_index, decode_literal_plan
from page_agent.core.security import PermissionGate
from page_agent.core.timeline import AgentSession, RunTimeline, StepState
from page_agent.infra.termination_normalizer import normalize_terminal
from page_agent.infra.tracing import NullLog, generate_step_id

PLAN_PREFIX = "/plan "

FallbackCheck = Callable[[Action, ToolObservation, Action], Awaitable[bool]]


async def _elements(backend: PageBackend, role: str) -> List[ElementSummary]:
    observation = await backend.execute(Action(type=ActionType.FIND_ELEMENTS, locator=Locator(role=role)))
    return observation.fields.elements() if observation.ok else []


async def _choice_click(
    step: Action,
    instruction: str,
    backend: PageBackend,
    llm: Optional[LanguageModel],
    allow_fallback: Optional[FallbackCheck] = None,
) -> Optional[ToolObservation]:
    """Click the candidate the model picks; None when no choice could be made.

    When the first click fails a link is tried instead; that click runs only
    when `allow_fallback` approves it.
    """
    preferred = (step.locator.role or "").lower() if step.locator else ""
    role = preferred or "article"
    candidates = await _elements(backend, role)
    if not candidates:
        role = "link"
        candidates = await _elements(backend, role)
    pick = await choose_element_index(candidates, instruction, llm) if candidates else None
    if pick is None:
        return None
    first = Action(type=ActionType.CLICK, locator=Locator(role=role, nth=pick))
    result = await backend.execute(first)
    if not result.ok and role != "link":
        links = await _elements(backend, "link")
        link_pick = await choose_element_index(links, instruction, llm) if links else None
        if link_pick is not None:
            fallback = Action(type=ActionType.CLICK, locator=Locator(role="link", nth=link_pick))
            if allow_fallback is not None and not await allow_fallback(first, result, fallback):
                return ToolObservation(ok=False, message="click failed; link fallback refused")
            pick = link_pick
            result = await backend.execute(fallback)
    if not result.ok:
        return ToolObservation(ok=False, message="click failed")
    await backend.execute(idle_wait(3000))
    content = await backend.extract("article")
    note = "" if content else " (no article text)"
    return ToolObservation(ok=True, data=result.data, message=f"clicked choice #{pick}{note}")


async def _choice_type(
    step: Action, instruction: str, backend: PageBackend, llm: Optional[LanguageModel]
) -> Optional[ToolObservation]:
    role = (step.locator.role or "").lower() if step.locator and step.locator.role else "textbox"
    inputs = await _elements(backend, role)
    if not inputs:
        role = "input"
        inputs = await _elements(backend, role)
    pick = await choose_element_index(inputs, instruction, llm) if inputs else None
    if pick is None:
        return None
    action = Action(
        type=ActionType.TYPE_TEXT,
        locator=Locator(role=role, nth=pick),
        text=step.text or "",
        submit=bool(step.submit),
    )
    result = await backend.execute(action)
    return ToolObservation(
        ok=result.ok,
        data=result.data,
        message=f"typed into choice #{pick}" if result.ok else "type failed",
    )


async def _execute_step(
    step: Action,
    instruction: str,
    *,
    backend: PageBackend,
    llm: Optional[LanguageModel],
    requires_choice: bool,
    allow_fallback: Optional[FallbackCheck] = None,
) -> ToolObservation:
    outcome: Optional[ToolObservation] = None
    if requires_choice and step.type == ActionType.CLICK and step.locator is not None and step.locator.nth is None:
        outcome = await _choice_click(step, instruction, backend, llm, allow_fallback)
    elif step.type == ActionType.TYPE_TEXT:
        outcome = await _choice_type(step, instruction, backend, llm)
    if outcome is None:
        outcome = await backend.execute(step)
    return outcome


async def run_plan(
    plan: Sequence[Action],
    *,
    backend: PageBackend,
    context_provider: ContextProvider,
    gate: PermissionGate,
    audit: AuditLog,
    consent_timeout_ms: int = 15000,
) -> List[ToolObservation]:
    """Gate and execute an already built plan; stops at the first refused step."""
    outcomes: List[ToolObservation] = []
    for step in plan:
        context = await context_provider.current_context()
        host = gate_host(step, context)
        consented = None
        if step.type.is_side_effecting:
            auth = await authorize(
                step, host, gate=gate, audit=audit, backend=backend, consent_timeout_ms=consent_timeout_ms
            )
            if not auth.allowed:
                outcomes.append(ToolObservation(ok=False, message=auth.reason))
                return outcomes
            consented = auth.consented
        result = await backend.execute(step)
        if step.type.is_side_effecting:
            audit.record_outcome(step, host, success=result.ok, message=result.message, consented=consented)
        outcomes.append(result)
    return outcomes


async def _resolve_plan(instruction: str, planner: Planner) -> List[Action]:
    if instruction.startswith(PLAN_PREFIX):
        plan = decode_literal_plan(instruction[len(PLAN_PREFIX):])
        if not plan:
            plan = heuristic_plan(instruction) or []
        if not plan:
            raise PlanningError("empty /plan")
        return post_process_plan(plan)
    return await planner.plan(instruction)


async def plan_and_run(
    instruction: str,
    *,
    settings: Settings,
    session: AgentSession,
    planner: Planner,
    backend: PageBackend,
    context_provider: ContextProvider,
    gate: PermissionGate,
    audit: AuditLog,
    llm: Optional[LanguageModel] = None,
    text_log: Optional[Any] = None,
    trace: Optional[Any] = None,
) -> dict[str, Any]:
    text_log = text_log or NullLog()
    session_id = generate_step_id("plan")
    query = instruction.strip()
    timeline: RunTimeline = session.begin_run(query, planning=True, with_instruction=False)
    result: dict[str, Any] = {"instruction": query, "session_id": session_id, "outcomes": []}

    try:
        plan = await _resolve_plan(query, planner)
    except PlanningError as exc:
        print(f"[plan] Planning failed: {exc}")
        timeline.append(Action(type=ActionType.ASK_USER, text=query), StepState.FAILURE, "planning failed")
        result.update({"stop_reason": "planning_failed", "stop_details": str(exc)})
        return normalize_terminal(result, session_id=session_id, session=session, text_log=text_log, trace=trace)
    except Exception:
        timeline.append(Action(type=ActionType.ASK_USER, text=query), StepState.FAILURE, "planning failed")
        normalize_terminal(
            {**result, "stop_reason": "loop_error", "stop_details": "unhandled exception"},
            session_id=session_id,
            session=session,
            text_log=text_log,
            trace=trace,
        )
        raise

    timeline.append(Action(type=ActionType.ASK_USER, text=query), StepState.SUCCESS)
    steps = [timeline.append(action) for action in plan]
    session.start_running()
    result["plan"] = [a.to_dict() for a in plan]
    requires_choice = query_implies_choice(query)
    outcomes: List[ToolObservation] = result["outcomes"]

    try:
        for idx, step in enumerate(steps):
            action = step.action
            context = await context_provider.current_context()
            if context is None:
                raise BackendUnavailable("no active page")
            result["context"] = context
            host = gate_host(action, context)
            consented = None
            if action.type.is_side_effecting:
                auth = await authorize(
                    action,
                    host,
                    gate=gate,
                    audit=audit,
                    backend=backend,
                    consent_timeout_ms=settings.consent_timeout_ms,
                )
                if not auth.allowed:
                    timeline.transition(step.id, StepState.FAILURE, auth.reason)
                    timeline.mark_all_failed("not run: blocked by policy")
                    result.update(
                        {"stop_reason": "policy_denied", "stop_details": f"{action.type.value} on {host or 'site'}: {auth.reason}"}
                    )
                    break
                consented = auth.consented

            async def allow_fallback(
                failed: Action, failed_result: ToolObservation, fallback: Action, host=host, consented=consented
            ) -> bool:
                audit.record_outcome(
                    failed, host, success=False, message=failed_result.message or "click failed", consented=consented
                )
                auth = await authorize(
                    fallback,
                    host,
                    gate=gate,
                    audit=audit,
                    backend=backend,
                    consent_timeout_ms=settings.consent_timeout_ms,
                )
                return auth.allowed

            timeline.transition(step.id, StepState.RUNNING)
            print(f"[plan] Running step {idx + 1}/{len(steps)}: {action.type.value}")
            outcome = await _execute_step(
                action, query, backend=backend, llm=llm, requires_choice=requires_choice, allow_fallback=allow_fallback
            )
            outcomes.append(outcome)
            timeline.transition(step.id, StepState.SUCCESS if outcome.ok else StepState.FAILURE, outcome.message)
            if action.type.is_side_effecting:
                audit.record_outcome(action, host, success=outcome.ok, message=outcome.message, consented=consented)
            if trace:
                trace.write(
                    {
                        "session_id": session_id,
                        "step": idx + 1,
                        "action": action.to_dict(),
                        "ok": outcome.ok,
                        "message": outcome.message,
                    }
                )
        else:
            failed = sum(1 for o in outcomes if not o.ok)
            result.update({"stop_reason": "plan_complete", "stop_details": f"steps={len(steps)} failed={failed}"})
    except BackendUnavailable as exc:
        timeline.mark_all_failed("no active page")
        result.update({"stop_reason": "backend_unavailable", "stop_details": str(exc) or "no active page"})
    except Exception:
        timeline.mark_all_failed("stopped: loop_error")
        normalize_terminal(
            {**result, "stop_reason": "loop_error", "stop_details": "unhandled exception"},
            session_id=session_id,
            session=session,
            text_log=text_log,
            trace=trace,
        )
        raise

    return normalize_terminal(result, session_id=session_id, session=session, text_log=text_log, trace=trace)
