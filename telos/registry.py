"""Registry of ranked solvers per goal."""

from dataclasses import dataclass, field
from pathlib import Path
import threading
from typing import Callable, Sequence

from telos.goal import Goal
from telos.proposal import Proposal, ProposalArchive
from telos.schema import GoalName, ProposalId, SolverKind
from telos.solver import Solver
from telos.toolkit.files import make_if_not_exist
from telos.toolkit.yaml_tools import load_yaml, save_yaml

SolverFactory = Callable[[Goal, Proposal], Solver]


@dataclass(frozen=True)
class SolverChain:
    """An immutable, versioned ranking of solvers for a goal. The AI fallback is always last."""

    goal_name: GoalName
    version: int
    proposals: tuple[Proposal, ...]
    """Accepted proposals backing the non-fallback solvers, best first."""
    solvers: tuple[Solver, ...]

    def __post_init__(self) -> None:
        assert self.solvers, "A solver chain must contain the AI fallback."
        assert (
            self.solvers[-1].kind == SolverKind.AI_FALLBACK
        ), "The AI fallback must be the last solver in a chain."
        assert len(self.proposals) == len(self.solvers) - 1

    @property
    def fallback(self) -> Solver:
        """The AI fallback solver."""
        return self.solvers[-1]

    @property
    def top_proposal(self) -> Proposal | None:
        """Best accepted proposal currently in the chain."""
        return self.proposals[0] if self.proposals else None

    def __iter__(self):
        return iter(self.solvers)

    def __len__(self) -> int:
        return len(self.solvers)


@dataclass
class SolverRegistry:
    """
    Holds the current solver chain for every registered goal.

    Chains are replaced by atomic swaps, so a caller that has read a chain keeps a consistent view for the rest of its call.
    """

    solver_factory: SolverFactory
    archive: ProposalArchive
    registry_dir: Path | None = None
    """Directory for persisted chains. If `None`, chains live only in memory."""
    max_chain_length: int = 3
    _chains: dict[GoalName, SolverChain] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def location(self, goal: Goal) -> Path:
        """Location of a goal's persisted chain."""
        assert self.registry_dir is not None
        return make_if_not_exist(self.registry_dir) / f"{goal.slug}.yaml"

    def register(self, goal: Goal, fallback: Solver) -> SolverChain:
        """Register a goal with its AI fallback, restoring a persisted chain for the same schema if one exists."""
        assert fallback.kind == SolverKind.AI_FALLBACK, "Fallback must be an AI fallback solver."
        proposals: tuple[Proposal, ...] = ()
        version = 0
        if self.registry_dir is not None and self.location(goal).exists():
            data = load_yaml(self.location(goal))
            if data.get("goal_fingerprint") == goal.fingerprint:
                version = data["version"]
                proposals = tuple(
                    self.archive.get(ProposalId(proposal_id))
                    for proposal_id in data["proposal_ids"]
                )
        chain = self._build_chain(goal, proposals, fallback, version)
        with self._lock:
            self._chains[goal.name] = chain
        return chain

    def _build_chain(
        self,
        goal: Goal,
        proposals: Sequence[Proposal],
        fallback: Solver,
        version: int,
    ) -> SolverChain:
        return SolverChain(
            goal_name=goal.name,
            version=version,
            proposals=tuple(proposals),
            solvers=(
                *(self.solver_factory(goal, proposal) for proposal in proposals),
                fallback,
            ),
        )

    def get_chain(self, goal: Goal) -> SolverChain:
        """Current solver chain for a goal, best solver first and the AI fallback last."""
        with self._lock:
            return self._chains[goal.name]

    def version(self, goal: Goal) -> int:
        """Number of promotions the goal's chain has gone through."""
        return self.get_chain(goal).version

    def promote(self, goal: Goal, proposal: Proposal) -> SolverChain:
        """Put an accepted proposal at the top of a goal's chain. Only the part before the AI fallback ever changes."""
        assert proposal.accepted, "Only accepted proposals can be promoted."
        assert proposal.goal_fingerprint == goal.fingerprint, "Proposal was made for a different schema."
        new_solver = self.solver_factory(goal, proposal)
        with self._lock:
            current = self._chains[goal.name]
            kept = [
                (existing, solver)
                for existing, solver in zip(current.proposals, current.solvers)
                if existing.id != proposal.id
            ][: self.max_chain_length - 1]
            chain = SolverChain(
                goal_name=goal.name,
                version=current.version + 1,
                proposals=(proposal, *(existing for existing, _ in kept)),
                solvers=(new_solver, *(solver for _, solver in kept), current.fallback),
            )
            if self.registry_dir is not None:
                save_yaml(
                    {
                        "goal_name": goal.name,
                        "goal_fingerprint": goal.fingerprint,
                        "version": chain.version,
                        "proposal_ids": [existing.id for existing in chain.proposals],
                    },
                    self.location(goal),
                )
            self._chains[goal.name] = chain
        return chain
