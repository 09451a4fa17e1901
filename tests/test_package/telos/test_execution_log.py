"""Test the execution log."""

# pylint:disable=redefined-outer-name

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import time

import pytest

from telos.execution_log import ExecutionLog, InvocationRecord
from telos.goal import Goal
from telos.schema import AI_FALLBACK_ID, InvocationId, SolverId, SolverKind
from tests.helpers.sentiment import sentiment_goal


@pytest.fixture
def goal() -> Goal:
    """Return the sentiment goal."""
    return sentiment_goal()


def make_record(
    goal: Goal,
    number: int,
    solver_id: SolverId = AI_FALLBACK_ID,
    success: bool = True,
    timestamp: float | None = None,
) -> InvocationRecord:
    """Make a record for one call."""
    inputs = {"text": f"text {number}"}
    return InvocationRecord(
        goal_name=goal.name,
        goal_fingerprint=goal.fingerprint,
        invocation_id=InvocationId(f"call-{number}"),
        attempt=0,
        input_key=goal.input_key(inputs),
        inputs=inputs,
        output={"sentiment": "neutral", "confidence": 0.5} if success else None,
        solver_id=solver_id,
        solver_kind=(
            SolverKind.AI_FALLBACK if solver_id == AI_FALLBACK_ID else SolverKind.COMPILED
        ),
        latency=0.01 * (number + 1),
        cost=0.002 if solver_id == AI_FALLBACK_ID else None,
        success=success,
        timestamp=timestamp if timestamp is not None else time.time(),
        error=None if success else "boom",
        confidence=0.95 if success else None,
    )


def test_query_filters(goal: Goal):
    """Test filtering by solver, success and time."""
    log = ExecutionLog()
    log.append(make_record(goal, 0, timestamp=100.0))
    log.append(make_record(goal, 1, solver_id=SolverId("p1"), timestamp=200.0))
    log.append(make_record(goal, 2, success=False, timestamp=300.0))
    assert log.count(goal) == 3
    assert [record.invocation_id for record in log.query(goal, since=150.0)] == [
        "call-1",
        "call-2",
    ]
    assert [record.solver_id for record in log.query(goal, solver_id=SolverId("p1"))] == ["p1"]
    assert len(list(log.query(goal, success=False))) == 1


def test_query_is_lazy(goal: Goal):
    """Test that queries are generators."""
    log = ExecutionLog()
    log.append(make_record(goal, 0))
    query = log.query(goal)
    assert next(query).invocation_id == "call-0"


def test_query_ignores_other_schemas(goal: Goal):
    """Test that records made under a different schema are not returned."""
    log = ExecutionLog()
    log.append(make_record(goal, 0))
    changed = Goal.declare(
        name=goal.name, description=goal.description, inputs={"text": "str"}, output="str"
    )
    assert log.count(changed) == 0


def test_persistence(tmp_path: Path, goal: Goal):
    """Test that records survive a restart."""
    log = ExecutionLog(logs_dir=tmp_path)
    log.append(make_record(goal, 0))
    log.append(make_record(goal, 1, solver_id=SolverId("p1")))
    reloaded = ExecutionLog(logs_dir=tmp_path)
    assert list(reloaded.query(goal)) == list(log.query(goal))


def test_concurrent_appends(tmp_path: Path, goal: Goal):
    """Test that no record is lost when many threads append at once."""
    log = ExecutionLog(logs_dir=tmp_path)
    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(lambda number: log.append(make_record(goal, number)), range(200)))
    assert log.count(goal) == 200
    assert ExecutionLog(logs_dir=tmp_path).count(goal) == 200


def test_median_latency(goal: Goal):
    """Test median latency of successful calls."""
    log = ExecutionLog()
    for number in range(3):
        log.append(make_record(goal, number))
    log.append(make_record(goal, 9, success=False))
    assert log.median_latency(goal, AI_FALLBACK_ID) == pytest.approx(0.02)
    assert log.median_latency(goal, SolverId("missing")) is None


def test_invocations_group_attempts(goal: Goal):
    """Test grouping of records by call."""
    log = ExecutionLog()
    log.append(make_record(goal, 0))
    log.append(make_record(goal, 0))
    assert list(log.invocations(goal)) == ["call-0"]
    assert len(log.invocations(goal)[InvocationId("call-0")]) == 2
