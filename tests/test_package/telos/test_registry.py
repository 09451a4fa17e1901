"""Test the solver registry."""

# pylint:disable=redefined-outer-name

from pathlib import Path

import pytest

from telos.goal import Goal
from telos.proposal import Proposal, ProposalArchive
from telos.registry import SolverRegistry
from telos.schema import AI_FALLBACK_ID, ProposalStatus, SolverId, SolverKind
from telos.solver import Solver
from tests.helpers.doubles import FunctionSolver, fallback_solver, make_proposal
from tests.helpers.sentiment import sentiment_goal


def stub_factory(goal: Goal, proposal: Proposal) -> Solver:
    """Solver factory that doesn't load code."""
    return FunctionSolver(solver_id=SolverId(proposal.id), function=lambda text: None)


@pytest.fixture
def goal() -> Goal:
    """Return the sentiment goal."""
    return sentiment_goal()


@pytest.fixture
def fallback() -> Solver:
    """Return an AI fallback stand-in."""
    return fallback_solver(lambda text: None)


def test_new_chain_has_only_fallback(goal: Goal, fallback: Solver):
    """Test that a freshly registered goal routes straight to the AI fallback."""
    registry = SolverRegistry(solver_factory=stub_factory, archive=ProposalArchive())
    chain = registry.register(goal, fallback)
    assert [solver.id for solver in chain] == [AI_FALLBACK_ID]
    assert chain.top_proposal is None
    assert registry.version(goal) == 0


def test_promote_keeps_fallback_last(goal: Goal, fallback: Solver):
    """Test that promotions only change the part of the chain before the fallback."""
    registry = SolverRegistry(
        solver_factory=stub_factory, archive=ProposalArchive(), max_chain_length=2
    )
    registry.register(goal, fallback)
    for proposal_id in ("p1", "p2", "p3"):
        registry.promote(goal, make_proposal(goal, proposal_id))
    chain = registry.get_chain(goal)
    assert [solver.id for solver in chain] == ["p3", "p2", AI_FALLBACK_ID]
    assert chain.fallback is fallback
    assert chain.solvers[-1].kind == SolverKind.AI_FALLBACK
    assert registry.version(goal) == 3


def test_promote_same_proposal_twice(goal: Goal, fallback: Solver):
    """Test that re-promoting a proposal doesn't duplicate it."""
    registry = SolverRegistry(solver_factory=stub_factory, archive=ProposalArchive())
    registry.register(goal, fallback)
    proposal = make_proposal(goal, "p1")
    registry.promote(goal, proposal)
    registry.promote(goal, proposal)
    assert [solver.id for solver in registry.get_chain(goal)] == ["p1", AI_FALLBACK_ID]


def test_rejected_proposals_cannot_be_promoted(goal: Goal, fallback: Solver):
    """Test that only accepted proposals enter the chain."""
    registry = SolverRegistry(solver_factory=stub_factory, archive=ProposalArchive())
    registry.register(goal, fallback)
    with pytest.raises(AssertionError):
        registry.promote(goal, make_proposal(goal, "p1", status=ProposalStatus.REJECTED))
    assert [solver.id for solver in registry.get_chain(goal)] == [AI_FALLBACK_ID]


def test_readers_keep_their_chain(goal: Goal, fallback: Solver):
    """Test that a chain read before a promotion is unaffected by it."""
    registry = SolverRegistry(solver_factory=stub_factory, archive=ProposalArchive())
    registry.register(goal, fallback)
    before = registry.get_chain(goal)
    registry.promote(goal, make_proposal(goal, "p1"))
    assert [solver.id for solver in before] == [AI_FALLBACK_ID]
    assert registry.get_chain(goal) is not before


def test_chain_restored_after_restart(tmp_path: Path, goal: Goal, fallback: Solver):
    """Test that a persisted chain is restored for the same schema only."""
    archive = ProposalArchive(proposals_dir=tmp_path / "proposals")
    proposal = make_proposal(goal, "p1")
    archive.add(proposal)
    registry = SolverRegistry(
        solver_factory=stub_factory, archive=archive, registry_dir=tmp_path / "registry"
    )
    registry.register(goal, fallback)
    registry.promote(goal, proposal)

    restarted = SolverRegistry(
        solver_factory=stub_factory,
        archive=ProposalArchive(proposals_dir=tmp_path / "proposals"),
        registry_dir=tmp_path / "registry",
    )
    chain = restarted.register(goal, fallback)
    assert [solver.id for solver in chain] == ["p1", AI_FALLBACK_ID]
    assert chain.version == 1

    changed = Goal.declare(
        name=goal.name, description=goal.description, inputs={"text": "str"}, output="str"
    )
    changed_chain = restarted.register(changed, fallback_solver(lambda text: ""))
    assert [solver.id for solver in changed_chain] == [AI_FALLBACK_ID]
