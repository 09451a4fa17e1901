"""Errors raised by Telos."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from telos.schema import GoalName, SolverId

if TYPE_CHECKING:
    from telos.proposal import Proposal


class TelosError(Exception):
    """Base class for Telos errors."""

    @property
    def message(self) -> str:
        """Human-readable error message."""
        raise NotImplementedError

    def __str__(self) -> str:
        return self.message


@dataclass
class SchemaError(TelosError):
    """Value does not match a declared type."""

    path: str
    problem: str

    @property
    def message(self) -> str:
        return f"Schema mismatch at `{self.path}`: {self.problem}"


@dataclass
class SolverExecutionError(TelosError):
    """A specific solver failed to produce a valid output."""

    solver_id: SolverId
    reason: str

    @property
    def message(self) -> str:
        return f"Solver `{self.solver_id}` failed: {self.reason}"


@dataclass
class SolverTimeoutError(SolverExecutionError):
    """A solver did not return within its timeout."""

    timeout: float = 0.0

    @property
    def message(self) -> str:
        return f"Solver `{self.solver_id}` timed out after {self.timeout:g}s."


@dataclass
class ExhaustedSolversError(TelosError):
    """Every solver in a goal's chain failed, including the AI fallback."""

    goal_name: GoalName
    failures: Sequence[SolverExecutionError] = field(default_factory=list)

    @property
    def message(self) -> str:
        attempts = "\n".join(f"- {failure.message}" for failure in self.failures)
        return f"All solvers failed for `{self.goal_name}`:\n{attempts}"


@dataclass
class IterationBudgetExhausted(TelosError):
    """A proposal never reached the accuracy threshold within its iteration budget."""

    iterations: int
    best_accuracy: float

    @property
    def message(self) -> str:
        return f"Iteration budget of {self.iterations} exhausted; best accuracy was {self.best_accuracy:.0%}."


@dataclass
class ThresholdNotMetError(TelosError):
    """An agentic proposal, which is evaluated only once, fell short of the accuracy threshold."""

    accuracy: float
    threshold: float

    @property
    def message(self) -> str:
        return f"Agentic instructions reached {self.accuracy:.0%}, below the accuracy threshold of {self.threshold:.0%}."


@dataclass
class SynthesisTimeoutError(TelosError):
    """A proposal's test-fix loop ran past its time limit."""

    timeout: float

    @property
    def message(self) -> str:
        return f"Proposal did not converge within {self.timeout:g}s."


@dataclass
class ConcurrentSynthesisError(TelosError):
    """A synthesis run was requested while another is in flight for the same goal."""

    goal_name: GoalName

    @property
    def message(self) -> str:
        return f"A synthesis run is already in progress for `{self.goal_name}`."


@dataclass
class SynthesisFailedError(TelosError):
    """A synthesis run ended without any accepted proposal."""

    goal_name: GoalName
    reason: str
    proposals: Sequence["Proposal"] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Synthesis failed for `{self.goal_name}`: {self.reason}"
