"""Test the engine end to end, from the first fallback call to a promoted compiled solver."""

# pylint:disable=redefined-outer-name

from pathlib import Path

import pytest

from telos.config import TelosConfig
from telos.engine import TelosEngine, TelosFunction
from telos.errors import SchemaError
from telos.schema import AI_FALLBACK_ID, GroundTruthSource, SolverKind
from telos.typespec import bounded, enum_of, record_of
from tests.helpers.doubles import (
    ScriptedGenerator,
    ScriptedValidator,
    SilentReporter,
    ai_reply,
    compiled_draft,
    fake_model,
)
from tests.helpers.sentiment import (
    ALWAYS_POSITIVE_SOURCE,
    KEYWORD_SOURCE,
    SENTIMENT_EXAMPLES,
    sentiment_goal,
)

TEST_CONFIG = TelosConfig(
    iteration_budget=3,
    generation_rounds=1,
    candidate_call_timeout=1.0,
    benchmark_trials=2,
)


def make_engine(files_dir: Path, generator: ScriptedGenerator | None = None, validator=None) -> TelosEngine:
    """Engine whose model always answers `positive`, with no network access."""
    options = {"validator": validator} if validator is not None else {}
    return TelosEngine(
        files_dir=files_dir,
        config=TEST_CONFIG,
        model=fake_model(ai_reply({"sentiment": "positive", "confidence": 0.9}, 0.95)),
        generator=generator or ScriptedGenerator(rounds=[]),
        reporter=SilentReporter(),
        printout=False,
        **options,
    )


def add_examples(function: TelosFunction) -> None:
    """Add every sentiment example as ground truth."""
    for text, sentiment, confidence in SENTIMENT_EXAMPLES:
        function.add_ground_truth({"sentiment": sentiment, "confidence": confidence}, text=text)


@pytest.fixture
def engine(tmp_path: Path):
    """Engine with a generator that first proposes a flawed draft, then fixes it."""
    generator = ScriptedGenerator(
        rounds=[[compiled_draft(ALWAYS_POSITIVE_SOURCE)]],
        revisions=[compiled_draft(KEYWORD_SOURCE, note="handle negative and neutral text")],
    )
    engine = make_engine(tmp_path, generator)
    yield engine
    engine.shutdown()


def test_sentiment_lifecycle(engine: TelosEngine):
    """Test that a goal starts on the AI fallback and moves to a faster synthesized solver."""
    analyze = engine.register(sentiment_goal())
    assert analyze("I love this phone") == {"sentiment": "positive", "confidence": 0.9}
    (first,) = analyze.records()
    assert first.solver_id == AI_FALLBACK_ID
    assert first.cost is not None and first.cost > 0

    add_examples(analyze)
    assert len(analyze.ground_truth) == 10
    ranked = analyze.synthesize()
    winner = ranked[0]
    assert winner.accepted
    assert winner.source == KEYWORD_SOURCE
    assert [solver.id for solver in analyze.solvers] == [winner.id, AI_FALLBACK_ID]

    assert analyze(text="I hate waiting in line") == {"sentiment": "negative", "confidence": 0.9}
    latest = analyze.records()[-1]
    assert latest.solver_id == winner.id
    assert latest.solver_kind == SolverKind.COMPILED
    assert latest.cost is None
    assert latest.latency < first.latency


def test_state_survives_restart(engine: TelosEngine, tmp_path: Path):
    """Test that logs, ground truth, proposals and chains are restored from disk."""
    analyze = engine.register(sentiment_goal())
    analyze("What a great day")
    add_examples(analyze)
    (winner,) = analyze.synthesize()
    engine.shutdown()

    restarted = make_engine(tmp_path)
    analyze = restarted.register(sentiment_goal())
    try:
        assert analyze.solvers[0].id == winner.id
        assert [proposal.id for proposal in analyze.proposals] == [winner.id]
        assert len(analyze.ground_truth) == 10
        assert len(analyze.records()) == 1
        assert analyze("The meeting is at noon")["sentiment"] == "neutral"
    finally:
        restarted.shutdown()


def test_schema_change_starts_fresh(engine: TelosEngine):
    """Test that changing a goal's output type discards its chain, examples and proposals."""
    analyze = engine.register(sentiment_goal())
    add_examples(analyze)
    analyze.synthesize()
    changed = engine.declare(
        name="analyze_sentiment",
        description="Classify the sentiment of a piece of text.",
        inputs={"text": "str"},
        output=record_of(
            sentiment=enum_of("positive", "negative", "neutral", "mixed"),
            confidence=bounded(0.0, 1.0, tolerance=0.1),
        ),
    )
    assert [solver.id for solver in changed.solvers] == [AI_FALLBACK_ID]
    assert not changed.ground_truth
    assert not changed.proposals


def test_invalid_call(engine: TelosEngine):
    """Test that arguments are checked against the signature."""
    analyze = engine.register(sentiment_goal())
    with pytest.raises(SchemaError):
        analyze("a", "b")
    with pytest.raises(SchemaError):
        analyze(words="a")
    assert not analyze.records()


def test_review_promotes_approved_outputs(tmp_path: Path):
    """Test that approved fallback outputs become trusted ground truth."""
    validator = ScriptedValidator(verdicts=[True, False, False])
    engine = make_engine(tmp_path, validator=validator)
    analyze = engine.register(sentiment_goal())
    analyze("I love this phone")
    analyze("The meeting is at noon")
    analyze("I love this phone")
    approved = analyze.review()
    assert len(validator.contexts) == 2
    (entry,) = approved
    assert entry.inputs == {"text": "I love this phone"}
    assert entry.source == GroundTruthSource.VALIDATED_LOG
    assert analyze.ground_truth == [entry]
    assert not analyze.review()
    assert len(validator.contexts) == 3
    engine.shutdown()
