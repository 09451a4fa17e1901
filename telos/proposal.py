"""Proposals: candidate implementations produced during synthesis runs."""

from dataclasses import asdict, dataclass, field
from pathlib import Path
import threading
import time
from typing import Any, Mapping, Self, Sequence

from telos.goal import Goal
from telos.schema import (
    FailureClass,
    GoalName,
    ProposalId,
    ProposalStatus,
    RunId,
    Strategy,
)
from telos.toolkit.files import make_if_not_exist
from telos.toolkit.text import dedent_and_strip, truncate
from telos.toolkit.yaml_tools import load_yaml, save_yaml


@dataclass(frozen=True)
class Draft:
    """A candidate as produced by a proposal generator, before it is tested."""

    rationale: str
    strategy: Strategy
    source: str
    """Python source defining `solve(...)`, or runtime instructions for an agentic draft."""
    confidence: float = 0.5
    note: str | None = None
    """The generator's own observation on what it changed, when revising."""

    @property
    def agentic(self) -> bool:
        """Whether the draft delegates to the AI model at runtime."""
        return self.strategy == Strategy.AGENTIC


@dataclass(frozen=True)
class Observation:
    """Structured description of how a candidate failed, fed back to the generator."""

    failure_class: FailureClass
    accuracy: float
    error: str | None = None
    failing_examples: tuple[dict[str, Any], ...] = ()
    """Up to a few examples with `inputs`, `expected` and `actual` (or `error`)."""

    def __str__(self) -> str:
        lines = [
            f"Failure class: {self.failure_class.value}",
            f"Accuracy: {self.accuracy:.0%}",
        ]
        if self.error:
            lines.append(f"Error: {self.error}")
        for example in self.failing_examples:
            lines.append(f"- {example}")
        return "\n".join(lines)


@dataclass(frozen=True)
class Attempt:
    """One iteration of a proposal's test-fix loop."""

    iteration: int
    source: str
    accuracy: float
    passed: bool
    error: str | None = None
    failure_class: FailureClass | None = None
    note: str | None = None

    def serialize(self) -> dict[str, Any]:
        """Serialize the attempt to a YAML-compatible dictionary."""
        data = asdict(self)
        data["failure_class"] = self.failure_class.value if self.failure_class else None
        return data

    @classmethod
    def from_serialized_data(cls, data: Mapping[str, Any]) -> Self:
        """Deserialize the attempt from a YAML-compatible dictionary."""
        data = dict(data)
        data["failure_class"] = (
            FailureClass(data["failure_class"]) if data["failure_class"] else None
        )
        return cls(**data)


@dataclass(frozen=True)
class Proposal:
    """A candidate implementation for a goal, with its full test-fix history. Immutable once its synthesis run concludes."""

    id: ProposalId
    goal_name: GoalName
    goal_fingerprint: str
    run_id: RunId
    rationale: str
    confidence: float
    strategy: Strategy
    source: str
    status: ProposalStatus
    attempts: tuple[Attempt, ...]
    accuracy: float
    latency: float | None = None
    """Benchmarked median latency in seconds; only set for accepted proposals."""
    cost: float | None = None
    """Estimated cost per call in USD; only set for accepted proposals."""
    rejection_reason: str | None = None
    created_at: float = field(default_factory=time.time)

    @property
    def accepted(self) -> bool:
        """Whether the proposal passed the accuracy threshold."""
        return self.status == ProposalStatus.ACCEPTED

    @property
    def agentic(self) -> bool:
        """Whether the proposal delegates to the AI model at runtime."""
        return self.strategy == Strategy.AGENTIC

    @property
    def summary(self) -> str:
        """One-line summary of the proposal."""
        latency = f"{self.latency * 1000:.2f}ms" if self.latency is not None else "n/a"
        return (
            f"{self.id} [{self.status.value}, {self.strategy.value}] "
            f"accuracy={self.accuracy:.0%} latency={latency} :: {truncate(self.rationale, 80)}"
        )

    def __str__(self) -> str:
        template = """
        Proposal {id} ({status}, {strategy})
        Rationale: {rationale}
        Accuracy: {accuracy:.0%} after {iterations} iteration(s)
        Rejection reason: {rejection_reason}
        """
        return dedent_and_strip(template).format(
            id=self.id,
            status=self.status.value,
            strategy=self.strategy.value,
            rationale=self.rationale,
            accuracy=self.accuracy,
            iterations=len(self.attempts),
            rejection_reason=self.rejection_reason or "None",
        )

    def serialize(self) -> dict[str, Any]:
        """Serialize the proposal to a YAML-compatible dictionary."""
        data = asdict(self)
        data["strategy"] = self.strategy.value
        data["status"] = self.status.value
        data["attempts"] = [attempt.serialize() for attempt in self.attempts]
        return data

    @classmethod
    def from_serialized_data(cls, data: Mapping[str, Any]) -> Self:
        """Deserialize the proposal from a YAML-compatible dictionary."""
        data = dict(data)
        data["id"] = ProposalId(data["id"])
        data["goal_name"] = GoalName(data["goal_name"])
        data["run_id"] = RunId(data["run_id"])
        data["strategy"] = Strategy(data["strategy"])
        data["status"] = ProposalStatus(data["status"])
        data["attempts"] = tuple(
            Attempt.from_serialized_data(attempt) for attempt in data["attempts"]
        )
        return cls(**data)


@dataclass
class ProposalArchive:
    """Every proposal ever produced, accepted or not. Proposals are never deleted."""

    proposals_dir: Path | None = None
    """Directory for persisted proposals. If `None`, proposals live only in memory."""
    _proposals: dict[ProposalId, Proposal] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.proposals_dir is None:
            return
        make_if_not_exist(self.proposals_dir)
        for proposal_file in self.proposals_dir.glob("*/*/proposal.yaml"):
            proposal = Proposal.from_serialized_data(load_yaml(proposal_file))
            self._proposals[proposal.id] = proposal

    def proposal_dir(self, proposal: Proposal) -> Path:
        """Directory for a proposal's files."""
        assert self.proposals_dir is not None
        return make_if_not_exist(
            self.proposals_dir / Goal.slug_for(proposal.goal_name) / proposal.id
        )

    def add(self, *proposals: Proposal) -> None:
        """Archive proposals."""
        with self._lock:
            for proposal in proposals:
                assert proposal.id not in self._proposals, f"Proposal {proposal.id} already archived."
                if self.proposals_dir is not None:
                    save_yaml(proposal.serialize(), self.proposal_dir(proposal) / "proposal.yaml")
                self._proposals[proposal.id] = proposal

    def get(self, proposal_id: ProposalId) -> Proposal:
        """Get an archived proposal."""
        with self._lock:
            return self._proposals[proposal_id]

    def for_goal(self, goal: Goal) -> list[Proposal]:
        """Proposals for a goal's current schema, oldest first."""
        with self._lock:
            proposals = list(self._proposals.values())
        return sorted(
            (
                proposal
                for proposal in proposals
                if proposal.goal_name == goal.name
                and proposal.goal_fingerprint == goal.fingerprint
            ),
            key=lambda proposal: proposal.created_at,
        )


def proposal_history_printout(proposals: Sequence[Proposal]) -> str:
    """Printout of prior proposals, given to generators so they avoid repeating failed strategies."""
    if not proposals:
        return "None"
    entries = []
    for proposal in proposals:
        last_error = next(
            (attempt.error for attempt in reversed(proposal.attempts) if attempt.error),
            None,
        )
        entry = f"- [{proposal.status.value}, {proposal.strategy.value}, accuracy {proposal.accuracy:.0%}] {proposal.rationale}"
        if proposal.rejection_reason:
            entry += f"\n  rejection reason: {proposal.rejection_reason}"
        if last_error:
            entry += f"\n  last error: {truncate(last_error, 160)}"
        entries.append(entry)
    return "\n".join(entries)
