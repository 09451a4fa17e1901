"""Base level types for Telos."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, NewType, Protocol
from uuid import UUID

GoalName = NewType("GoalName", str)
SolverId = NewType("SolverId", str)
ProposalId = NewType("ProposalId", str)
InvocationId = NewType("InvocationId", str)
RunId = NewType("RunId", str)
InputKey = NewType("InputKey", str)
RuntimeId = NewType("RuntimeId", str)
IdGenerator = Callable[[], UUID]

AI_FALLBACK_ID = SolverId("ai-fallback")


@dataclass
class WorkValidationResult:
    """Validation of work done by a solver."""

    valid: bool
    feedback: str


class WorkValidator(Protocol):
    """A validator of solver output, either a human or a separate agent."""

    @property
    def name(self) -> str:
        """Name of the validator."""
        raise NotImplementedError

    @property
    def id(self) -> RuntimeId:
        """Runtime id of the validator."""
        raise NotImplementedError

    def validate(self, context: str) -> WorkValidationResult:
        """Validate some piece of work described in `context`."""
        raise NotImplementedError


class SolverKind(Enum):
    """Kinds of solvers that can appear in a chain."""

    AI_FALLBACK = "ai-fallback"
    COMPILED = "compiled"
    AGENTIC = "agentic"

    def __str__(self) -> str:
        return self.value


class Strategy(Enum):
    """How a proposal intends to solve its goal."""

    COMPILED = "compiled"
    AGENTIC = "agentic"

    def __str__(self) -> str:
        return self.value


class ProposalStatus(Enum):
    """Final status of a proposal after its synthesis run."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


class FailureClass(Enum):
    """Class of failure observed when testing a candidate."""

    STRUCTURAL = "structural"
    """The candidate could not be loaded or raised while running."""
    LOGICAL = "logical"
    """The candidate ran but produced wrong outputs."""
    TIMEOUT = "timeout"
    """The candidate did not finish in time."""

    def __str__(self) -> str:
        return self.value


class GroundTruthSource(Enum):
    """Where a ground truth entry came from."""

    HUMAN = "human"
    AGENT = "agent"
    VALIDATED_LOG = "validated-log"

    def __str__(self) -> str:
        return self.value
