from __future__ import annotations


class AgentError(Exception):
    """Base class for failures raised by the agent core."""


class InvalidAction(AgentError, ValueError):
    pass


class PlanningError(AgentError):
    pass


class PolicyDenied(AgentError):
    pass


class ExecutionFailure(AgentError):
    pass


class LoopExhausted(AgentError):
    pass


class BackendUnavailable(AgentError):
    pass


class SessionBusy(AgentError):
    pass


class IllegalTransition(AgentError, ValueError):
    pass
