"""Append-only log of every solver attempt made for a goal."""

from dataclasses import asdict, dataclass, field
from pathlib import Path
import statistics
import threading
from typing import Any, Iterator, Self

from telos.goal import Goal
from telos.schema import GoalName, InputKey, InvocationId, SolverId, SolverKind
from telos.toolkit.files import make_if_not_exist
from telos.toolkit.text import truncate
from telos.toolkit.yaml_tools import append_yaml_document, load_yaml_documents


@dataclass(frozen=True)
class InvocationRecord:
    """One solver attempt within a call to a goal."""

    goal_name: GoalName
    goal_fingerprint: str
    invocation_id: InvocationId
    attempt: int
    """Position in the solver chain that was tried, starting at 0."""
    input_key: InputKey
    inputs: dict[str, Any]
    output: Any
    solver_id: SolverId
    solver_kind: SolverKind
    latency: float
    """Wall-clock seconds spent in the solver."""
    cost: float | None
    """Monetary cost of the attempt; `None` for solvers that don't call a model."""
    success: bool
    timestamp: float
    error: str | None = None
    confidence: float | None = None
    """Confidence self-reported by the solver, if any."""

    def serialize(self) -> dict[str, Any]:
        """Serialize the record to a YAML-compatible dictionary."""
        data = asdict(self)
        data["solver_kind"] = self.solver_kind.value
        return data

    @classmethod
    def from_serialized_data(cls, data: dict[str, Any]) -> Self:
        """Deserialize the record from a YAML-compatible dictionary."""
        data = data.copy()
        data["goal_name"] = GoalName(data["goal_name"])
        data["invocation_id"] = InvocationId(data["invocation_id"])
        data["input_key"] = InputKey(data["input_key"])
        data["solver_id"] = SolverId(data["solver_id"])
        data["solver_kind"] = SolverKind(data["solver_kind"])
        return cls(**data)

    def __str__(self) -> str:
        outcome = (
            f"-> {truncate(repr(self.output), 80)}"
            if self.success
            else f"FAILED: {truncate(str(self.error), 80)}"
        )
        return f"[{self.solver_id} #{self.attempt}] {self.latency * 1000:.1f}ms {outcome}"


@dataclass
class ExecutionLog:
    """Append-only log of invocation records, persisted as one YAML document per record."""

    logs_dir: Path | None = None
    """Directory for persisted logs. If `None`, the log lives only in memory."""
    _records: dict[GoalName, list[InvocationRecord]] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.logs_dir is None:
            return
        make_if_not_exist(self.logs_dir)
        for log_file in sorted(self.logs_dir.glob("*.yaml")):
            for data in load_yaml_documents(log_file):
                record = InvocationRecord.from_serialized_data(data)
                self._records.setdefault(record.goal_name, []).append(record)

    def log_location(self, goal_name: GoalName) -> Path:
        """Location of the persisted log for a goal."""
        assert self.logs_dir is not None
        return self.logs_dir / f"{Goal.slug_for(goal_name)}.yaml"

    def append(self, record: InvocationRecord) -> None:
        """Append a record. Records are never updated or removed."""
        with self._lock:
            if self.logs_dir is not None:
                append_yaml_document(record.serialize(), self.log_location(record.goal_name))
            self._records.setdefault(record.goal_name, []).append(record)

    def query(
        self,
        goal: Goal,
        since: float | None = None,
        solver_id: SolverId | None = None,
        success: bool | None = None,
    ) -> Iterator[InvocationRecord]:
        """Lazily iterate over the records for a goal's current schema, oldest first."""
        with self._lock:
            records = tuple(self._records.get(goal.name, ()))
        for record in records:
            if record.goal_fingerprint != goal.fingerprint:
                continue
            if since is not None and record.timestamp < since:
                continue
            if solver_id is not None and record.solver_id != solver_id:
                continue
            if success is not None and record.success != success:
                continue
            yield record

    def count(self, goal: Goal, since: float | None = None) -> int:
        """Number of records for a goal since a point in time."""
        return sum(1 for _ in self.query(goal, since=since))

    def invocations(self, goal: Goal) -> dict[InvocationId, list[InvocationRecord]]:
        """Records grouped by the call they belong to."""
        grouped: dict[InvocationId, list[InvocationRecord]] = {}
        for record in self.query(goal):
            grouped.setdefault(record.invocation_id, []).append(record)
        return grouped

    def latencies(self, goal: Goal, solver_id: SolverId) -> list[float]:
        """Latencies of successful calls to a solver."""
        return [
            record.latency
            for record in self.query(goal, solver_id=solver_id, success=True)
        ]

    def median_latency(self, goal: Goal, solver_id: SolverId) -> float | None:
        """Median latency of successful calls to a solver, if any were logged."""
        latencies = self.latencies(goal, solver_id)
        return statistics.median(latencies) if latencies else None
