"""Ground truth: trusted examples of expected outputs for a goal's inputs."""

from dataclasses import dataclass, field
from pathlib import Path
import threading
import time
from typing import Any, Iterator, Mapping, Self

from colorama import Fore

from telos.config import TELOS_COLOR
from telos.execution_log import ExecutionLog, InvocationRecord
from telos.goal import Goal
from telos.schema import (
    AI_FALLBACK_ID,
    GoalName,
    GroundTruthSource,
    InputKey,
    SolverKind,
    WorkValidator,
)
from telos.toolkit.files import make_if_not_exist
from telos.toolkit.text import dedent_and_strip
from telos.toolkit.yaml_tools import format_as_yaml_str, load_yaml, save_yaml


@dataclass(frozen=True)
class GroundTruthEntry:
    """An expected output for a particular set of inputs."""

    input_key: InputKey
    inputs: dict[str, Any]
    expected_output: Any
    source: GroundTruthSource = GroundTruthSource.HUMAN
    timestamp: float = field(default_factory=time.time)

    def serialize(self) -> dict[str, Any]:
        """Serialize the entry to a YAML-compatible dictionary."""
        return {
            "input_key": self.input_key,
            "inputs": self.inputs,
            "expected_output": self.expected_output,
            "source": self.source.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_serialized_data(cls, data: Mapping[str, Any]) -> Self:
        """Deserialize the entry from a YAML-compatible dictionary."""
        return cls(
            input_key=InputKey(data["input_key"]),
            inputs=dict(data["inputs"]),
            expected_output=data["expected_output"],
            source=GroundTruthSource(data["source"]),
            timestamp=data["timestamp"],
        )


@dataclass
class GroundTruthStore:
    """
    Upsert-only store of ground truth entries, keyed by goal and canonical input key.

    Each entry is persisted in its own file, so that a re-submitted key simply overwrites its file.
    """

    ground_truth_dir: Path | None = None
    """Directory for persisted entries. If `None`, entries live only in memory."""
    _entries: dict[tuple[GoalName, str], dict[InputKey, GroundTruthEntry]] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def goal_dir(self, goal: Goal) -> Path:
        """Directory holding the entries for a goal's current schema."""
        assert self.ground_truth_dir is not None
        return make_if_not_exist(self.ground_truth_dir / goal.slug / goal.fingerprint)

    def _loaded(self, goal: Goal) -> dict[InputKey, GroundTruthEntry]:
        """Entries for a goal, loading them from disk the first time. Must be called with the lock held."""
        if (key := (goal.name, goal.fingerprint)) in self._entries:
            return self._entries[key]
        entries: dict[InputKey, GroundTruthEntry] = {}
        if self.ground_truth_dir is not None:
            for entry_file in self.goal_dir(goal).glob("*.yaml"):
                entry = GroundTruthEntry.from_serialized_data(load_yaml(entry_file))
                entries[entry.input_key] = entry
        self._entries[key] = entries
        return entries

    def put(
        self,
        goal: Goal,
        inputs: Mapping[str, Any],
        expected_output: Any,
        source: GroundTruthSource = GroundTruthSource.HUMAN,
    ) -> GroundTruthEntry:
        """Add or overwrite the expected output for a set of inputs."""
        arguments = goal.validate_inputs(inputs)
        entry = GroundTruthEntry(
            input_key=goal.input_key(arguments),
            inputs=arguments,
            expected_output=goal.validate_output(expected_output),
            source=source,
        )
        with self._lock:
            entries = self._loaded(goal)
            existing = entries.get(entry.input_key)
            if existing and existing.expected_output == entry.expected_output:
                return existing
            if self.ground_truth_dir is not None:
                save_yaml(
                    entry.serialize(), self.goal_dir(goal) / f"{entry.input_key}.yaml"
                )
            entries[entry.input_key] = entry
        return entry

    def get_all(self, goal: Goal) -> dict[InputKey, Any]:
        """Expected outputs for a goal, by input key."""
        return {key: entry.expected_output for key, entry in self.entries_by_key(goal).items()}

    def entries_by_key(self, goal: Goal) -> dict[InputKey, GroundTruthEntry]:
        """Full entries for a goal, by input key."""
        with self._lock:
            return dict(self._loaded(goal))

    def entries(self, goal: Goal) -> list[GroundTruthEntry]:
        """Full entries for a goal, oldest first."""
        return sorted(self.entries_by_key(goal).values(), key=lambda entry: entry.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())

    def unreviewed_records(
        self, goal: Goal, log: ExecutionLog
    ) -> Iterator[InvocationRecord]:
        """Successful AI outputs whose inputs are not yet covered by ground truth, one per input key."""
        covered = set(self.entries_by_key(goal))
        for record in log.query(goal, success=True):
            if record.solver_kind == SolverKind.COMPILED or record.input_key in covered:
                continue
            covered.add(record.input_key)
            yield record

    def logged_examples(
        self, goal: Goal, log: ExecutionLog, min_confidence: float
    ) -> list[GroundTruthEntry]:
        """Weak ground truth: unreviewed AI outputs with high self-reported confidence."""
        return [
            GroundTruthEntry(
                input_key=record.input_key,
                inputs=record.inputs,
                expected_output=record.output,
                source=GroundTruthSource.AGENT,
                timestamp=record.timestamp,
            )
            for record in self.unreviewed_records(goal, log)
            if record.solver_id == AI_FALLBACK_ID
            and record.confidence is not None
            and record.confidence >= min_confidence
        ]

    def review_logged_outputs(
        self,
        goal: Goal,
        log: ExecutionLog,
        validator: WorkValidator,
        limit: int | None = None,
        printout: bool = True,
    ) -> list[GroundTruthEntry]:
        """Ask a validator to approve logged AI outputs; approved outputs become trusted ground truth."""
        promoted: list[GroundTruthEntry] = []
        for reviewed, record in enumerate(self.unreviewed_records(goal, log)):
            if limit is not None and reviewed >= limit:
                break
            context = """
            Goal:
            {goal}

            Inputs:
            {inputs}

            Output produced by `{solver_id}`:
            {output}
            """
            context = dedent_and_strip(context).format(
                goal=goal,
                inputs=format_as_yaml_str(record.inputs),
                solver_id=record.solver_id,
                output=format_as_yaml_str({"output": record.output}),
            )
            result = validator.validate(context)
            if not result.valid:
                if printout:
                    print(
                        f"{TELOS_COLOR}Rejected output for {record.input_key}: {result.feedback}{Fore.RESET}"
                    )
                continue
            promoted.append(
                self.put(
                    goal,
                    record.inputs,
                    record.output,
                    source=GroundTruthSource.VALIDATED_LOG,
                )
            )
        return promoted
