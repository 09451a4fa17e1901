"""Synthesis runs: turning ground truth into ranked, promoted solvers."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import threading
import time
from typing import Protocol, Sequence
from uuid import uuid4

from colorama import Fore
from langchain_core.language_models.chat_models import BaseChatModel

from telos.config import (
    FAILURE_COLOR,
    PROPOSAL_COLOR,
    TELOS_COLOR,
    VERBOSE,
    TelosConfig,
)
from telos.errors import (
    ConcurrentSynthesisError,
    IterationBudgetExhausted,
    SynthesisFailedError,
    SynthesisTimeoutError,
    TelosError,
    ThresholdNotMetError,
)
from telos.evaluation import ProposalEvaluator, Score
from telos.execution_log import ExecutionLog
from telos.generation import ProposalGenerator
from telos.goal import Goal
from telos.ground_truth import GroundTruthEntry, GroundTruthStore
from telos.proposal import Attempt, Draft, Observation, Proposal, ProposalArchive
from telos.registry import SolverChain, SolverRegistry
from telos.sandbox import CandidateLoadError, CodeSandbox
from telos.schema import (
    FailureClass,
    GoalName,
    IdGenerator,
    ProposalId,
    ProposalStatus,
    RunId,
    SolverId,
)
from telos.solver import AgenticSolver, CompiledSolver, Solver
from telos.toolkit.text import ExtractionError, truncate


class SynthesisReporter(Protocol):
    """Receives progress updates from synthesis runs."""

    def run_started(self, goal: Goal, run_id: RunId, example_count: int) -> None:
        """A synthesis run has started."""
        raise NotImplementedError

    def draft_received(self, goal: Goal, proposal_id: ProposalId, draft: Draft) -> None:
        """A new draft has come back from the generator."""
        raise NotImplementedError

    def iteration_finished(
        self, goal: Goal, proposal_id: ProposalId, attempt: Attempt
    ) -> None:
        """One test-fix iteration of a proposal has been scored."""
        raise NotImplementedError

    def proposal_finished(self, goal: Goal, proposal: Proposal) -> None:
        """A proposal has been accepted or rejected."""
        raise NotImplementedError

    def winner_promoted(
        self, goal: Goal, proposal: Proposal, previous_latency: float | None
    ) -> None:
        """A proposal has been promoted to the top of the goal's chain."""
        raise NotImplementedError

    def incumbent_kept(self, goal: Goal, best: Proposal, incumbent: Proposal) -> None:
        """The best new proposal did not outrank the current top solver."""
        raise NotImplementedError

    def round_skipped(self, goal: Goal, reason: str) -> None:
        """A generation round produced no usable drafts; the run goes on with the next round."""
        raise NotImplementedError

    def run_failed(self, goal: Goal, reason: str) -> None:
        """A synthesis run ended without any accepted proposal."""
        raise NotImplementedError


@dataclass
class ConsoleReporter:
    """Prints synthesis progress to the console."""

    printout: bool = VERBOSE

    def _print(self, message: str, color: str = TELOS_COLOR) -> None:
        if self.printout:
            print(f"{color}{message}{Fore.RESET}")

    def run_started(self, goal: Goal, run_id: RunId, example_count: int) -> None:
        """A synthesis run has started."""
        self._print(
            f"Starting synthesis run {run_id} for `{goal.name}` with {example_count} example(s)."
        )

    def draft_received(self, goal: Goal, proposal_id: ProposalId, draft: Draft) -> None:
        """A new draft has come back from the generator."""
        self._print(
            f"Proposal {proposal_id} ({draft.strategy.value}, confidence {draft.confidence:.2f}): {draft.rationale}",
            PROPOSAL_COLOR,
        )

    def iteration_finished(
        self, goal: Goal, proposal_id: ProposalId, attempt: Attempt
    ) -> None:
        """One test-fix iteration of a proposal has been scored."""
        message = f"  {proposal_id} iteration {attempt.iteration}: accuracy {attempt.accuracy:.0%}"
        if attempt.error:
            message += f" ({attempt.failure_class}) {truncate(attempt.error, 120)}"
        self._print(message, PROPOSAL_COLOR if attempt.passed else FAILURE_COLOR)

    def proposal_finished(self, goal: Goal, proposal: Proposal) -> None:
        """A proposal has been accepted or rejected."""
        if proposal.accepted:
            self._print(f"Accepted: {proposal.summary}", PROPOSAL_COLOR)
            return
        self._print(
            f"Rejected {proposal.id}: {proposal.rejection_reason}", FAILURE_COLOR
        )

    def winner_promoted(
        self, goal: Goal, proposal: Proposal, previous_latency: float | None
    ) -> None:
        """A proposal has been promoted to the top of the goal's chain."""
        message = f"Winner for `{goal.name}`: {proposal.summary}"
        if previous_latency and proposal.latency:
            message += f"\nSpeedup over previous best solver: {previous_latency / proposal.latency:.1f}x"
        self._print(message)

    def incumbent_kept(self, goal: Goal, best: Proposal, incumbent: Proposal) -> None:
        """The best new proposal did not outrank the current top solver."""
        self._print(
            f"Best new proposal {best.id} does not outrank {incumbent.id}; chain for `{goal.name}` unchanged."
        )

    def round_skipped(self, goal: Goal, reason: str) -> None:
        """A generation round produced no usable drafts; the run goes on with the next round."""
        self._print(f"Skipping proposal round for `{goal.name}`: {reason}", FAILURE_COLOR)

    def run_failed(self, goal: Goal, reason: str) -> None:
        """A synthesis run ended without any accepted proposal."""
        self._print(f"Synthesis failed for `{goal.name}`: {reason}", FAILURE_COLOR)


@dataclass
class Development:
    """Progress of a single draft through its test-fix loop."""

    proposal_id: ProposalId
    original: Draft
    current: Draft
    attempts: list[Attempt] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        """Seconds since the loop started."""
        return time.monotonic() - self.started

    @property
    def best_accuracy(self) -> float:
        """Best accuracy reached by any attempt."""
        return max((attempt.accuracy for attempt in self.attempts), default=0.0)


def load_failure_score(error: CandidateLoadError, total: int) -> Score:
    """Score of a candidate whose code could not even be loaded."""
    return Score(total=total, errors=1, failures=[{"error": str(error)}])


@dataclass
class Orchestrator:
    """
    Runs synthesis for goals: gathers examples, asks the generator for drafts, drives each draft through its test-fix loop, and promotes the winner.

    At most one run per goal is in flight at a time; runs for different goals may proceed in parallel.
    """

    generator: ProposalGenerator
    ground_truth: GroundTruthStore
    log: ExecutionLog
    archive: ProposalArchive
    registry: SolverRegistry
    evaluator: ProposalEvaluator
    sandbox: CodeSandbox
    model: BaseChatModel
    """Model used by agentic candidates."""
    config: TelosConfig = field(default_factory=TelosConfig)
    reporter: SynthesisReporter = field(default_factory=ConsoleReporter)
    id_generator: IdGenerator = uuid4
    _goal_locks: dict[GoalName, threading.Lock] = field(
        default_factory=dict, init=False, repr=False
    )
    _last_runs: dict[GoalName, float] = field(default_factory=dict, init=False, repr=False)
    _pending_calls: dict[GoalName, int] = field(
        default_factory=dict, init=False, repr=False
    )
    _background_runs: dict[GoalName, threading.Thread] = field(
        default_factory=dict, init=False, repr=False
    )
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_parallel_proposals,
            thread_name_prefix="telos-synthesis",
        )

    def goal_lock(self, goal: Goal) -> threading.Lock:
        """Lock guarding synthesis runs for a goal."""
        with self._guard:
            return self._goal_locks.setdefault(goal.name, threading.Lock())

    def is_running(self, goal: Goal) -> bool:
        """Whether a synthesis run for the goal is in flight."""
        return self.goal_lock(goal).locked()

    def examples(self, goal: Goal) -> list[GroundTruthEntry]:
        """Examples a synthesis run is scored against."""
        examples = self.ground_truth.entries(goal)
        if self.config.use_logged_examples:
            examples.extend(
                self.ground_truth.logged_examples(
                    goal, self.log, self.config.logged_confidence_threshold
                )
            )
        return examples

    def synthesize(self, goal: Goal) -> list[Proposal]:
        """Run synthesis for a goal. Returns accepted proposals in rank order, followed by rejected ones."""
        lock = self.goal_lock(goal)
        if not lock.acquire(blocking=False):
            raise ConcurrentSynthesisError(goal.name)
        try:
            with self._guard:
                self._last_runs[goal.name] = time.time()
                self._pending_calls[goal.name] = 0
            return self._run(goal)
        finally:
            lock.release()

    def _run(self, goal: Goal) -> list[Proposal]:
        run_id = RunId(str(self.id_generator()))
        if not (examples := self.examples(goal)):
            self.reporter.run_failed(goal, "no examples")
            raise SynthesisFailedError(goal.name, "there are no ground truth examples to synthesize from")
        prior_proposals = self.archive.for_goal(goal)
        self.reporter.run_started(goal, run_id, len(examples))
        produced: list[Proposal] = []
        for _ in range(self.config.generation_rounds):
            try:
                drafts = self.generator.propose(
                    goal,
                    examples,
                    [*prior_proposals, *produced],
                    self.config.proposals_per_round,
                )
            except ExtractionError as error:
                self.reporter.round_skipped(goal, f"unreadable proposals: {error.problem}")
                continue
            futures = [
                self._executor.submit(self.develop, goal, draft, examples, run_id)
                for draft in drafts
            ]
            round_proposals = [future.result() for future in futures]
            self.archive.add(*round_proposals)
            produced.extend(round_proposals)
            if any(proposal.accepted for proposal in round_proposals):
                break
        ranked = self.evaluator.rank(produced)
        rejected = [proposal for proposal in produced if not proposal.accepted]
        if not ranked:
            reason = f"none of {len(produced)} proposal(s) reached the accuracy threshold"
            self.reporter.run_failed(goal, reason)
            raise SynthesisFailedError(goal.name, reason, proposals=rejected)
        self._promote_if_better(goal, ranked[0])
        return [*ranked, *rejected]

    def _promote_if_better(self, goal: Goal, best: Proposal) -> None:
        chain = self.registry.get_chain(goal)
        incumbent = chain.top_proposal
        if not self.evaluator.outranks(best, incumbent):
            assert incumbent is not None
            self.reporter.incumbent_kept(goal, best, incumbent)
            return
        previous_latency = self.previous_latency(goal, chain)
        self.registry.promote(goal, best)
        self.reporter.winner_promoted(goal, best, previous_latency)

    def previous_latency(self, goal: Goal, chain: SolverChain) -> float | None:
        """Logged median latency of the current best solver in a chain."""
        top_solver = chain.solvers[0]
        if (latency := self.log.median_latency(goal, top_solver.id)) is not None:
            return latency
        return chain.top_proposal.latency if chain.top_proposal else None

    def candidate_solver(
        self, goal: Goal, proposal_id: ProposalId, draft: Draft, iteration: int
    ) -> Solver:
        """Solver for testing a draft."""
        if draft.agentic:
            return AgenticSolver(
                goal=goal,
                model=self.model,
                config=self.config,
                proposal_id=SolverId(proposal_id),
                agentic_instructions=draft.source,
            )
        return CompiledSolver(
            solver_id=SolverId(f"{proposal_id}-{iteration}"),
            source=draft.source,
            sandbox=self.sandbox,
        )

    def score_draft(
        self,
        goal: Goal,
        solver: Solver,
        examples: Sequence[GroundTruthEntry],
    ) -> Score:
        """Score a candidate solver over the examples."""
        if isinstance(solver, CompiledSolver):
            try:
                solver.function  # pylint:disable=pointless-statement
            except CandidateLoadError as error:
                return load_failure_score(error, len(examples))
            return self.evaluator.score(
                goal, solver, examples, self.config.candidate_call_timeout
            )
        return self.evaluator.score(goal, solver, examples, self.config.ai_timeout)

    def develop(
        self,
        goal: Goal,
        draft: Draft,
        examples: Sequence[GroundTruthEntry],
        run_id: RunId,
    ) -> Proposal:
        """Drive a draft through its test-fix loop, producing an accepted or rejected proposal."""
        development = Development(
            proposal_id=ProposalId(str(self.id_generator())), original=draft, current=draft
        )
        self.reporter.draft_received(goal, development.proposal_id, draft)
        try:
            solver, score = self.test_fix_loop(goal, development, examples)
            agentic = development.current.agentic
            latency = self.evaluator.benchmark(
                solver,
                score.passed,
                1 if agentic else self.config.benchmark_trials,
                self.config.ai_timeout if agentic else self.config.candidate_call_timeout,
            )
        except TelosError as error:
            return self._conclude(goal, run_id, development, rejection_reason=error.message)
        except Exception as error:  # pylint:disable=broad-except
            return self._conclude(
                goal,
                run_id,
                development,
                rejection_reason=truncate(f"{type(error).__name__}: {error}", 300),
            )
        cost = score.mean_cost if agentic else 0.0
        return self._conclude(goal, run_id, development, latency=latency, cost=cost)

    def test_fix_loop(
        self,
        goal: Goal,
        development: Development,
        examples: Sequence[GroundTruthEntry],
    ) -> tuple[Solver, Score]:
        """Score and revise a draft until it reaches the accuracy threshold. Returns the passing solver and its score."""
        observation: Observation | None = None
        for iteration in range(1, self.config.iteration_budget + 1):
            if development.elapsed > self.config.proposal_timeout:
                raise SynthesisTimeoutError(self.config.proposal_timeout)
            if observation is not None:
                try:
                    development.current = self.generator.revise(
                        goal, development.current, observation, examples
                    )
                except ExtractionError as error:
                    self._record(
                        goal,
                        development,
                        Attempt(
                            iteration=iteration,
                            source=development.current.source,
                            accuracy=0.0,
                            passed=False,
                            error=f"unreadable revision: {error.problem}",
                            failure_class=FailureClass.STRUCTURAL,
                        ),
                    )
                    continue
            solver = self.candidate_solver(
                goal, development.proposal_id, development.current, iteration
            )
            score = self.score_draft(goal, solver, examples)
            passed = score.accuracy >= self.config.accuracy_threshold
            self._record(
                goal,
                development,
                Attempt(
                    iteration=iteration,
                    source=development.current.source,
                    accuracy=score.accuracy,
                    passed=passed,
                    error=score.first_error,
                    failure_class=score.failure_class,
                    note=development.current.note,
                ),
            )
            if passed:
                return solver, score
            if development.current.agentic:
                raise ThresholdNotMetError(score.accuracy, self.config.accuracy_threshold)
            observation = score.observation()
        raise IterationBudgetExhausted(
            self.config.iteration_budget, development.best_accuracy
        )

    def _record(self, goal: Goal, development: Development, attempt: Attempt) -> None:
        development.attempts.append(attempt)
        self.reporter.iteration_finished(goal, development.proposal_id, attempt)

    def _conclude(
        self,
        goal: Goal,
        run_id: RunId,
        development: Development,
        rejection_reason: str | None = None,
        latency: float | None = None,
        cost: float | None = None,
    ) -> Proposal:
        accepted = rejection_reason is None
        proposal = Proposal(
            id=development.proposal_id,
            goal_name=goal.name,
            goal_fingerprint=goal.fingerprint,
            run_id=run_id,
            rationale=development.original.rationale,
            confidence=development.original.confidence,
            strategy=development.current.strategy,
            source=development.current.source,
            status=ProposalStatus.ACCEPTED if accepted else ProposalStatus.REJECTED,
            attempts=tuple(development.attempts),
            accuracy=(
                development.attempts[-1].accuracy
                if accepted
                else development.best_accuracy
            ),
            latency=latency,
            cost=cost,
            rejection_reason=rejection_reason,
        )
        self.reporter.proposal_finished(goal, proposal)
        return proposal

    def calls_since_last_run(self, goal: Goal) -> int:
        """Number of distinct calls logged for a goal since its last synthesis run, or since its newest archived proposal."""
        since = self._last_runs.get(goal.name)
        if since is None and (proposals := self.archive.for_goal(goal)):
            since = max(proposal.created_at for proposal in proposals)
        return len({record.invocation_id for record in self.log.query(goal, since=since)})

    def maybe_trigger(self, goal: Goal) -> bool:
        """
        Count a newly logged call, and start a background synthesis run if enough calls have been logged since the goal's last run.

        Meant to be called once after each call is logged. The log is only read the first time a goal is seen; after that the count is kept in memory.
        Returns whether a run was started. Nothing happens if automatic synthesis is disabled or a run is already in flight.
        """
        if (threshold := self.config.auto_synthesis_threshold) <= 0:
            return False
        with self._guard:
            if goal.name in self._pending_calls:
                self._pending_calls[goal.name] += 1
            else:
                self._pending_calls[goal.name] = self.calls_since_last_run(goal)
            if self._pending_calls[goal.name] < threshold:
                return False
            if goal.name in self._goal_locks and self._goal_locks[goal.name].locked():
                return False
            if (thread := self._background_runs.get(goal.name)) and thread.is_alive():
                return False
            self._last_runs[goal.name] = time.time()
            self._pending_calls[goal.name] = 0
            thread = threading.Thread(
                target=self._background_synthesis,
                args=(goal,),
                name=f"telos-auto-{goal.slug}",
                daemon=True,
            )
            self._background_runs[goal.name] = thread
        thread.start()
        return True

    def _background_synthesis(self, goal: Goal) -> None:
        try:
            self.synthesize(goal)
        except (ConcurrentSynthesisError, SynthesisFailedError) as error:
            if VERBOSE:
                print(f"{FAILURE_COLOR}Automatic synthesis skipped: {error.message}{Fore.RESET}")

    def wait_for_background_runs(self, timeout: float | None = None) -> None:
        """Wait for automatically triggered runs to finish."""
        with self._guard:
            threads = list(self._background_runs.values())
        for thread in threads:
            thread.join(timeout)

    def shutdown(self) -> None:
        """Release worker threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
