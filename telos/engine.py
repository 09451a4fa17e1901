"""Main interfacing classes for Telos."""

from dataclasses import InitVar, dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from langchain_core.language_models.chat_models import BaseChatModel

from telos.config import DATA_DIR, VERBOSE, TelosConfig, configure_langchain_cache
from telos.evaluation import ProposalEvaluator
from telos.execution_log import ExecutionLog, InvocationRecord
from telos.generation import LLMProposalGenerator, ProposalGenerator
from telos.goal import Goal, load_goals
from telos.ground_truth import GroundTruthEntry, GroundTruthStore
from telos.human import Human
from telos.proposal import Proposal, ProposalArchive
from telos.registry import SolverRegistry
from telos.router import Router
from telos.sandbox import CodeSandbox, LocalSandbox
from telos.schema import GoalName, GroundTruthSource, IdGenerator, WorkValidator
from telos.solver import AISolver, Solver, solver_for_proposal
from telos.synthesis import ConsoleReporter, Orchestrator, SynthesisReporter
from telos.toolkit.files import make_if_not_exist
from telos.toolkit.models import precise_model, variant_model


@dataclass(frozen=True)
class TelosEngine:
    """Wires together routing, logging, ground truth and synthesis for a set of goals sharing a data directory."""

    files_dir: Path = DATA_DIR
    """Directory for everything Telos persists."""
    config: TelosConfig = field(default_factory=TelosConfig.from_env)
    model: BaseChatModel | None = None
    """Model acting as the AI fallback and running agentic solvers. Defaults to the precise model."""
    generator: ProposalGenerator | None = None
    """Source of candidate implementations. Defaults to an LLM generator using the variant model."""
    validator: WorkValidator = field(
        default_factory=lambda: Human(name="Human Validator")
    )
    """Agent that approves or rejects logged outputs before they become ground truth."""
    reporter: SynthesisReporter = field(default_factory=ConsoleReporter)
    id_generator: IdGenerator = uuid4
    printout: bool = VERBOSE
    llm_cache_enabled: InitVar[bool] = field(default=False)
    """Whether to enable the LLM cache for identical calls to models."""

    def __post_init__(self, llm_cache_enabled: bool) -> None:
        if llm_cache_enabled:
            configure_langchain_cache(self.files_dir / ".cache" / ".langchain.db")

    @cached_property
    def chat_model(self) -> BaseChatModel:
        """Model used by AI solvers."""
        return self.model if self.model is not None else precise_model()

    @cached_property
    def proposal_generator(self) -> ProposalGenerator:
        """Generator of candidate implementations."""
        if self.generator is not None:
            return self.generator
        return LLMProposalGenerator(model=variant_model(), printout=self.printout)

    @cached_property
    def goals(self) -> dict[GoalName, Goal]:
        """Goals declared on this engine, by name."""
        return {}

    @cached_property
    def log(self) -> ExecutionLog:
        """Log of every solver attempt."""
        return ExecutionLog(logs_dir=self.files_dir / "logs")

    @cached_property
    def ground_truth(self) -> GroundTruthStore:
        """Store of trusted examples."""
        return GroundTruthStore(ground_truth_dir=self.files_dir / "ground_truth")

    @cached_property
    def archive(self) -> ProposalArchive:
        """Archive of every proposal produced."""
        return ProposalArchive(proposals_dir=self.files_dir / "proposals")

    @cached_property
    def sandbox(self) -> CodeSandbox:
        """Loader for synthesized code."""
        return LocalSandbox(code_dir=make_if_not_exist(self.files_dir / "candidates"))

    @cached_property
    def evaluator(self) -> ProposalEvaluator:
        """Scorer and ranker of proposals."""
        return ProposalEvaluator()

    @cached_property
    def registry(self) -> SolverRegistry:
        """Ranked solver chains for every goal."""
        return SolverRegistry(
            solver_factory=self.solver_for,
            archive=self.archive,
            registry_dir=self.files_dir / "registry",
            max_chain_length=self.config.max_chain_length,
        )

    @cached_property
    def orchestrator(self) -> Orchestrator:
        """Runner of synthesis."""
        return Orchestrator(
            generator=self.proposal_generator,
            ground_truth=self.ground_truth,
            log=self.log,
            archive=self.archive,
            registry=self.registry,
            evaluator=self.evaluator,
            sandbox=self.sandbox,
            model=self.chat_model,
            config=self.config,
            reporter=self.reporter,
            id_generator=self.id_generator,
        )

    @cached_property
    def router(self) -> Router:
        """Router for calls to goals."""
        return Router(
            registry=self.registry,
            log=self.log,
            config=self.config,
            trigger=self.orchestrator.maybe_trigger,
            id_generator=self.id_generator,
            printout=self.printout,
        )

    def solver_for(self, goal: Goal, proposal: Proposal) -> Solver:
        """Runtime solver for an accepted proposal."""
        return solver_for_proposal(
            proposal,
            goal,
            model=self.chat_model,
            sandbox=self.sandbox,
            config=self.config,
            printout=self.printout,
        )

    def register(self, goal: Goal) -> "TelosFunction":
        """Register a goal, restoring its persisted solver chain if its schema hasn't changed."""
        existing = self.goals.get(goal.name)
        if existing is None or existing.fingerprint != goal.fingerprint:
            self.registry.register(
                goal,
                AISolver(
                    goal=goal,
                    model=self.chat_model,
                    config=self.config,
                    printout=self.printout,
                ),
            )
        self.goals[goal.name] = goal
        return TelosFunction(engine=self, goal=goal)

    def declare(
        self,
        name: str,
        description: str,
        inputs: Mapping[str, Any],
        output: Any,
        examples_hint: str | None = None,
    ) -> "TelosFunction":
        """Declare a goal and get a callable for it."""
        return self.register(
            Goal.declare(
                name=name,
                description=description,
                inputs=inputs,
                output=output,
                examples_hint=examples_hint,
            )
        )

    def load_goals(self, goals_path: Path) -> dict[GoalName, "TelosFunction"]:
        """Declare every goal in a YAML goal file."""
        functions = (self.register(goal) for goal in load_goals(goals_path))
        return {function.goal.name: function for function in functions}

    def shutdown(self) -> None:
        """Release worker threads."""
        for component in ("router", "orchestrator", "evaluator"):
            if component in self.__dict__:
                getattr(self, component).shutdown()


@dataclass(frozen=True)
class TelosFunction:
    """A declared goal, callable like a regular function."""

    engine: TelosEngine
    goal: Goal

    @property
    def name(self) -> GoalName:
        """Name of the goal."""
        return self.goal.name

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        """Produce an output. Positional arguments bind in signature order."""
        return self.engine.router.invoke(self.goal, self.goal.bind(*args, **kwargs))

    def add_ground_truth(self, expected: Any, **inputs: Any) -> GroundTruthEntry:
        """Record the expected output for a set of inputs."""
        return self.engine.ground_truth.put(
            self.goal, inputs, expected, source=GroundTruthSource.HUMAN
        )

    def review(self, limit: int | None = None) -> list[GroundTruthEntry]:
        """Have the engine's validator approve logged AI outputs as ground truth."""
        return self.engine.ground_truth.review_logged_outputs(
            self.goal,
            self.engine.log,
            self.engine.validator,
            limit=limit,
            printout=self.engine.printout,
        )

    def synthesize(self) -> list[Proposal]:
        """Run synthesis. Returns accepted proposals in rank order, followed by rejected ones."""
        return self.engine.orchestrator.synthesize(self.goal)

    @property
    def solvers(self) -> tuple[Solver, ...]:
        """Current solver chain, best first. The AI fallback is always last."""
        return self.engine.registry.get_chain(self.goal).solvers

    @property
    def proposals(self) -> list[Proposal]:
        """Every proposal made for the goal's current schema, oldest first."""
        return self.engine.archive.for_goal(self.goal)

    @property
    def ground_truth(self) -> list[GroundTruthEntry]:
        """Trusted examples for the goal, oldest first."""
        return self.engine.ground_truth.entries(self.goal)

    def records(self, **filters: Any) -> list[InvocationRecord]:
        """Logged solver attempts, filtered as in `ExecutionLog.query`."""
        return list(self.engine.log.query(self.goal, **filters))

    def __repr__(self) -> str:
        return f"TelosFunction({self.goal.signature_printout})"
