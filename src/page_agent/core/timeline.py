from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from page_agent.core.actions import Action, ActionType
from page_agent.core.errors import IllegalTransition, SessionBusy


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StepState(str, Enum):
    PLANNED = "planned"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def rank(self) -> int:
        return _STEP_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in {StepState.SUCCESS, StepState.FAILURE}


_STEP_RANK = {StepState.PLANNED: 0, StepState.RUNNING: 1, StepState.SUCCESS: 2, StepState.FAILURE: 2}


@dataclass
class AgentStep:
    action: Action
    state: StepState = StepState.PLANNED
    message: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "action": self.action.to_dict(), "state": self.state.value, "message": self.message}


@dataclass
class AgentRun:
    title: str
    steps: List[AgentStep] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def finish(self) -> bool:
        if self.finished_at is not None:
            return False
        self.finished_at = _now()
        return True

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "steps": [s.to_dict() for s in self.steps],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class RunTimeline:
    """Append/transition-only view of a run shared with the caller."""

    def __init__(self, run: AgentRun) -> None:
        self.run = run

    @property
    def steps(self) -> List[AgentStep]:
        return self.run.steps

    def append(self, action: Action, state: StepState = StepState.PLANNED, message: Optional[str] = None) -> AgentStep:
        step_id = uuid.uuid4().hex if self._has_id(action.id) else action.id
        step = AgentStep(id=step_id, action=action, state=state, message=message)
        self.run.steps.append(step)
        return step

    def _has_id(self, step_id: str) -> bool:
        return any(s.id == step_id for s in self.run.steps)

    def get(self, step_id: str) -> AgentStep:
        for step in self.run.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def transition(self, step_id: str, state: StepState, message: Optional[str] = None) -> AgentStep:
        step = self.get(step_id)
        if step.state.is_terminal or state.rank <= step.state.rank:
            raise IllegalTransition(f"step {step_id}: {step.state.value} -> {state.value}")
        step.state = state
        if message is not None:
            step.message = message
        return step

    def mark_all_failed(self, message: str) -> None:
        for step in self.run.steps:
            if step.state.is_terminal:
                continue
            step.state = StepState.FAILURE
            step.message = message


def instruction_step(instruction: str) -> AgentStep:
    return AgentStep(action=Action(type=ActionType.ASK_USER, text=instruction), state=StepState.SUCCESS)


class SessionState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    RUNNING = "running"
    FINISHED = "finished"


_SESSION_TRANSITIONS = {
    SessionState.IDLE: {SessionState.PLANNING, SessionState.RUNNING},
    SessionState.PLANNING: {SessionState.RUNNING, SessionState.FINISHED},
    SessionState.RUNNING: {SessionState.FINISHED},
    SessionState.FINISHED: {SessionState.PLANNING, SessionState.RUNNING},
}


class AgentSession:
    """Owns the current run pointer and run history for one caller."""

    def __init__(self) -> None:
        self.state = SessionState.IDLE
        self.runs: List[AgentRun] = []
        self.current_run: Optional[AgentRun] = None

    @property
    def is_active(self) -> bool:
        return self.state in {SessionState.PLANNING, SessionState.RUNNING}

    def _move(self, target: SessionState) -> None:
        if target not in _SESSION_TRANSITIONS[self.state]:
            raise IllegalTransition(f"session: {self.state.value} -> {target.value}")
        self.state = target

    def begin_run(self, title: str, *, planning: bool = False, with_instruction: bool = True) -> RunTimeline:
        if self.is_active:
            raise SessionBusy(f"a run is already {self.state.value}")
        self._move(SessionState.PLANNING if planning else SessionState.RUNNING)
        run = AgentRun(title=title, steps=[instruction_step(title)] if with_instruction else [])
        self.runs.append(run)
        self.current_run = run
        return RunTimeline(run)

    def start_running(self) -> None:
        self._move(SessionState.RUNNING)

    def finish_run(self) -> bool:
        """Finalize the current run; returns False when it was already finalized."""
        if self.current_run is None:
            raise IllegalTransition("session has no run to finish")
        finished = self.current_run.finish()
        if self.state != SessionState.FINISHED:
            self._move(SessionState.FINISHED)
        return finished
