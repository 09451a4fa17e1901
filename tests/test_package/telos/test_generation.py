"""Test the LLM proposal generator."""

# pylint:disable=redefined-outer-name

import pytest

from telos.generation import LLMProposalGenerator, parse_draft, strip_code_fences
from telos.goal import Goal
from telos.ground_truth import GroundTruthEntry, GroundTruthStore
from telos.proposal import Observation
from telos.schema import FailureClass, Strategy
from telos.toolkit.text import ExtractionError
from tests.helpers.doubles import compiled_draft, fake_model
from tests.helpers.sentiment import ALWAYS_POSITIVE_SOURCE, SENTIMENT_EXAMPLES, sentiment_goal

PROPOSALS_REPLY = '''
I'll try two approaches.

```start_of_proposal
rationale: |-
  Keyword matching covers every example.
confidence: 0.8
strategy: compiled
source: |-
  def solve(text):
      return {"sentiment": "neutral", "confidence": 0.6}
```end_of_proposal

```start_of_proposal
rationale: |-
  Sarcasm needs a model.
confidence: 0.4
strategy: agentic
source: |-
  Label sarcastic praise as negative.
```end_of_proposal
'''

REVISION_REPLY = '''
```start_of_revision
observation: |-
  Negative words were never checked.
strategy: compiled
source: |-
  ```python
  def solve(text):
      return {"sentiment": "negative", "confidence": 0.9}
  ```
```end_of_revision
'''


@pytest.fixture
def goal() -> Goal:
    """Return the sentiment goal."""
    return sentiment_goal()


@pytest.fixture
def examples(goal: Goal) -> list[GroundTruthEntry]:
    """Return a few sentiment examples."""
    store = GroundTruthStore()
    for text, sentiment, confidence in SENTIMENT_EXAMPLES[:3]:
        store.put(goal, {"text": text}, {"sentiment": sentiment, "confidence": confidence})
    return store.entries(goal)


def test_propose(goal: Goal, examples: list[GroundTruthEntry]):
    """Test that each proposal block becomes a draft."""
    generator = LLMProposalGenerator(model=fake_model(PROPOSALS_REPLY), printout=False)
    drafts = generator.propose(goal, examples, [], count=2)
    assert [draft.strategy for draft in drafts] == [Strategy.COMPILED, Strategy.AGENTIC]
    assert drafts[0].source.startswith("def solve(text):")
    assert drafts[0].confidence == 0.8
    assert drafts[1].agentic
    assert drafts[1].source == "Label sarcastic praise as negative."


def test_propose_respects_count(goal: Goal, examples: list[GroundTruthEntry]):
    """Test that surplus proposals are dropped."""
    generator = LLMProposalGenerator(model=fake_model(PROPOSALS_REPLY), printout=False)
    assert len(generator.propose(goal, examples, [], count=1)) == 1


def test_propose_without_blocks(goal: Goal, examples: list[GroundTruthEntry]):
    """Test that a reply without proposals is an extraction error."""
    generator = LLMProposalGenerator(model=fake_model("I can't do that."), printout=False)
    with pytest.raises(ExtractionError):
        generator.propose(goal, examples, [], count=2)


def test_revise(goal: Goal, examples: list[GroundTruthEntry]):
    """Test that a revision keeps the rationale and records the generator's observation."""
    generator = LLMProposalGenerator(model=fake_model(REVISION_REPLY), printout=False)
    draft = compiled_draft(ALWAYS_POSITIVE_SOURCE, rationale="everything is positive")
    observation = Observation(failure_class=FailureClass.LOGICAL, accuracy=0.4)
    revised = generator.revise(goal, draft, observation, examples)
    assert revised.rationale == "everything is positive"
    assert revised.note == "Negative words were never checked."
    assert revised.source.startswith("def solve(text):")
    assert "```" not in revised.source


def test_prompt_carries_examples(goal: Goal, examples: list[GroundTruthEntry]):
    """Test that the context shows the goal and its examples."""
    generator = LLMProposalGenerator(model=fake_model("unused"), printout=False)
    context = "\n".join(
        str(message.content) for message in generator.context_messages(goal, examples)
    )
    assert "analyze_sentiment" in context
    assert "I love this phone" in context
    assert "`solve`" in context


def test_parse_draft_errors():
    """Test that drafts with missing or invalid fields are rejected."""
    with pytest.raises(ExtractionError):
        parse_draft({"strategy": "compiled"})
    with pytest.raises(ExtractionError):
        parse_draft({"strategy": "magic", "source": "x"})
    with pytest.raises(ExtractionError):
        parse_draft({"strategy": "compiled", "source": "  "})


def test_parse_draft_confidence():
    """Test that a stated confidence of zero is kept, and a missing one defaults to 0.5."""
    assert parse_draft({"strategy": "compiled", "source": "x", "confidence": 0}).confidence == 0.0
    assert parse_draft({"strategy": "compiled", "source": "x"}).confidence == 0.5
    assert parse_draft({"strategy": "compiled", "source": "x", "confidence": "high"}).confidence == 0.5


def test_strip_code_fences():
    """Test removal of markdown fences around source."""
    assert strip_code_fences("```python\nx = 1\n```") == "x = 1"
    assert strip_code_fences("x = 1") == "x = 1"
