"""Scoring, benchmarking and ranking of proposals."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import math
import statistics
import time
from typing import Any, Sequence

from telos.errors import SchemaError, SolverTimeoutError
from telos.goal import Goal
from telos.ground_truth import GroundTruthEntry
from telos.proposal import Observation, Proposal
from telos.schema import FailureClass
from telos.solver import Solver
from telos.toolkit.text import truncate
from telos.toolkit.timeouts import CallTimeoutError, run_with_timeout

MAX_REPORTED_FAILURES = 3


@dataclass
class Score:
    """Result of running a solver over a set of examples."""

    total: int
    correct: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    costs: list[float] = field(default_factory=list)
    passed: list[GroundTruthEntry] = field(default_factory=list)
    errors: int = 0
    timeouts: int = 0

    @property
    def accuracy(self) -> float:
        """Fraction of examples answered correctly."""
        return self.correct / self.total if self.total else 0.0

    @property
    def mean_cost(self) -> float | None:
        """Mean observed cost per call, if the solver reported costs."""
        return statistics.fmean(self.costs) if self.costs else None

    @property
    def failure_class(self) -> FailureClass | None:
        """Most severe class of failure seen."""
        if self.timeouts:
            return FailureClass.TIMEOUT
        if self.errors:
            return FailureClass.STRUCTURAL
        if self.failures:
            return FailureClass.LOGICAL
        return None

    @property
    def first_error(self) -> str | None:
        """First error message seen, if any."""
        return next(
            (failure["error"] for failure in self.failures if "error" in failure), None
        )

    def observation(self) -> Observation:
        """Structured description of the failures, for the generator to act on."""
        assert (failure_class := self.failure_class), "No failures to observe."
        return Observation(
            failure_class=failure_class,
            accuracy=self.accuracy,
            error=self.first_error,
            failing_examples=tuple(self.failures[:MAX_REPORTED_FAILURES]),
        )


def ranking_key(proposal: Proposal) -> tuple[float, float, float]:
    """Ranking key: accuracy descending, then latency ascending, then cost ascending."""
    return (
        -proposal.accuracy,
        proposal.latency if proposal.latency is not None else math.inf,
        proposal.cost if proposal.cost is not None else math.inf,
    )


@dataclass
class ProposalEvaluator:
    """Scores candidate solvers against examples, benchmarks them, and ranks accepted proposals."""

    max_workers: int = 16
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="telos-eval"
        )

    def score(
        self,
        goal: Goal,
        solver: Solver,
        examples: Sequence[GroundTruthEntry],
        timeout: float,
    ) -> Score:
        """Run a solver over every example and compare its outputs with the expected ones."""
        score = Score(total=len(examples))
        for example in examples:
            try:
                result = run_with_timeout(
                    self._executor, lambda example=example: solver(example.inputs), timeout
                )
                output = goal.validate_output(result.output)
            except CallTimeoutError as error:
                score.timeouts += 1
                score.failures.append({"inputs": example.inputs, "error": str(error)})
                continue
            except SchemaError as error:
                score.errors += 1
                score.failures.append(
                    {"inputs": example.inputs, "error": f"invalid output: {error}"}
                )
                continue
            except Exception as error:  # pylint:disable=broad-except
                score.errors += 1
                score.failures.append(
                    {
                        "inputs": example.inputs,
                        "error": truncate(f"{type(error).__name__}: {error}", 300),
                    }
                )
                continue
            if result.cost is not None:
                score.costs.append(result.cost)
            if goal.output.matches(example.expected_output, output):
                score.correct += 1
                score.passed.append(example)
            else:
                score.failures.append(
                    {
                        "inputs": example.inputs,
                        "expected": example.expected_output,
                        "actual": output,
                    }
                )
        return score

    def benchmark(
        self,
        solver: Solver,
        examples: Sequence[GroundTruthEntry],
        trials: int,
        timeout: float,
    ) -> float:
        """
        Median wall-clock latency in seconds of a single call, over repeated calls on every example.

        Every call is bounded by `timeout`; a call that exceeds it raises `SolverTimeoutError`.
        """
        latencies: list[float] = []
        for _ in range(max(trials, 1)):
            for example in examples:
                start = time.perf_counter()
                try:
                    run_with_timeout(
                        self._executor, lambda example=example: solver(example.inputs), timeout
                    )
                except CallTimeoutError as error:
                    raise SolverTimeoutError(
                        solver.id, "timed out while benchmarking", timeout=timeout
                    ) from error
                latencies.append(time.perf_counter() - start)
        return statistics.median(latencies)

    @staticmethod
    def rank(proposals: Sequence[Proposal]) -> list[Proposal]:
        """Accepted proposals in rank order. Ties on the full key keep creation order."""
        accepted = [proposal for proposal in proposals if proposal.accepted]
        return sorted(
            accepted, key=lambda proposal: (ranking_key(proposal), proposal.created_at)
        )

    @staticmethod
    def outranks(candidate: Proposal, incumbent: Proposal | None) -> bool:
        """Whether a candidate strictly improves on the incumbent's ranking key."""
        if incumbent is None:
            return True
        return ranking_key(candidate) < ranking_key(incumbent)

    def shutdown(self) -> None:
        """Release worker threads that are not stuck in a call."""
        self._executor.shutdown(wait=False, cancel_futures=True)
