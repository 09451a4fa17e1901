"""Routing of calls through a goal's ranked solvers."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import time
from typing import Any, Callable, Mapping
from uuid import uuid4

from colorama import Fore

from telos.config import FAILURE_COLOR, VERBOSE, TelosConfig
from telos.errors import (
    ExhaustedSolversError,
    SchemaError,
    SolverExecutionError,
    SolverTimeoutError,
)
from telos.execution_log import ExecutionLog, InvocationRecord
from telos.goal import Goal
from telos.registry import SolverRegistry
from telos.schema import IdGenerator, InputKey, InvocationId, SolverKind
from telos.solver import Solver, SolverResult
from telos.toolkit.text import truncate
from telos.toolkit.timeouts import CallTimeoutError, run_with_timeout

SynthesisTrigger = Callable[[Goal], Any]


@dataclass
class Router:
    """
    Serves calls to goals by trying each solver in the goal's chain, best first, until one returns a valid output.

    The AI fallback is always last in the chain, so a call only fails when every solver, including the fallback, has failed.
    """

    registry: SolverRegistry
    log: ExecutionLog
    config: TelosConfig = field(default_factory=TelosConfig)
    trigger: SynthesisTrigger | None = None
    """Notified after every logged call, so that automatic synthesis can be started."""
    id_generator: IdGenerator = uuid4
    printout: bool = VERBOSE
    max_workers: int = 32
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="telos-router"
        )

    def timeout_for(self, solver: Solver) -> float:
        """Time limit for a single call to a solver."""
        if solver.kind == SolverKind.COMPILED:
            return self.config.solver_timeout
        return self.config.ai_timeout

    def call_solver(
        self, goal: Goal, solver: Solver, arguments: Mapping[str, Any]
    ) -> SolverResult:
        """Call a solver with a time limit and validate its output."""
        timeout = self.timeout_for(solver)
        try:
            result = run_with_timeout(
                self._executor, lambda: solver(arguments), timeout
            )
        except CallTimeoutError as error:
            raise SolverTimeoutError(solver.id, "timed out", timeout=timeout) from error
        except SolverExecutionError:
            raise
        except Exception as error:  # pylint:disable=broad-except
            raise SolverExecutionError(
                solver.id, truncate(f"{type(error).__name__}: {error}", 300)
            ) from error
        try:
            output = goal.validate_output(result.output)
        except SchemaError as error:
            raise SolverExecutionError(solver.id, f"invalid output: {error.message}") from error
        return SolverResult(output=output, cost=result.cost, confidence=result.confidence)

    def invoke(self, goal: Goal, arguments: Mapping[str, Any]) -> Any:
        """Produce an output for a goal. Invalid arguments raise a `SchemaError` before any solver runs."""
        arguments = goal.validate_inputs(arguments)
        input_key = goal.input_key(arguments)
        chain = self.registry.get_chain(goal)
        invocation_id = InvocationId(str(self.id_generator()))
        failures: list[SolverExecutionError] = []
        try:
            for attempt, solver in enumerate(chain):
                start = time.perf_counter()
                try:
                    result = self.call_solver(goal, solver, arguments)
                except SolverExecutionError as error:
                    self._log_attempt(
                        goal,
                        invocation_id,
                        attempt,
                        input_key,
                        arguments,
                        solver,
                        time.perf_counter() - start,
                        error=error,
                    )
                    failures.append(error)
                    if self.printout:
                        print(f"{FAILURE_COLOR}{error.message}{Fore.RESET}")
                    continue
                self._log_attempt(
                    goal,
                    invocation_id,
                    attempt,
                    input_key,
                    arguments,
                    solver,
                    time.perf_counter() - start,
                    result=result,
                )
                return result.output
            raise ExhaustedSolversError(goal.name, failures)
        finally:
            if self.trigger is not None:
                self.trigger(goal)

    def _log_attempt(
        self,
        goal: Goal,
        invocation_id: InvocationId,
        attempt: int,
        input_key: InputKey,
        arguments: Mapping[str, Any],
        solver: Solver,
        latency: float,
        result: SolverResult | None = None,
        error: SolverExecutionError | None = None,
    ) -> None:
        self.log.append(
            InvocationRecord(
                goal_name=goal.name,
                goal_fingerprint=goal.fingerprint,
                invocation_id=invocation_id,
                attempt=attempt,
                input_key=input_key,
                inputs=dict(arguments),
                output=result.output if result else None,
                solver_id=solver.id,
                solver_kind=solver.kind,
                latency=latency,
                cost=result.cost if result else None,
                success=result is not None,
                timestamp=time.time(),
                error=error.message if error else None,
                confidence=result.confidence if result else None,
            )
        )

    def shutdown(self) -> None:
        """Release worker threads that are not stuck in a call."""
        self._executor.shutdown(wait=False, cancel_futures=True)
