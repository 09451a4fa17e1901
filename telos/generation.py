"""Generation of candidate implementations with an LLM."""

from dataclasses import dataclass
import re
from typing import Any, Mapping, Protocol, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import SystemMessage
from ruamel.yaml.error import YAMLError

from telos.config import PROPOSAL_COLOR
from telos.goal import Goal
from telos.ground_truth import GroundTruthEntry
from telos.proposal import Draft, Observation, Proposal, proposal_history_printout
from telos.sandbox import ENTRYPOINT
from telos.schema import Strategy
from telos.solver import parse_confidence
from telos.toolkit.models import format_messages, query_model
from telos.toolkit.text import ExtractionError, dedent_and_strip, extract_and_unpack, extract_blocks
from telos.toolkit.yaml_tools import DEFAULT_YAML, format_as_yaml_str


class ProposalGenerator(Protocol):
    """Produces and revises candidate implementations for a goal."""

    def propose(
        self,
        goal: Goal,
        examples: Sequence[GroundTruthEntry],
        prior_proposals: Sequence[Proposal],
        count: int,
    ) -> list[Draft]:
        """Generate new candidate drafts, aware of what was already tried."""
        raise NotImplementedError

    def revise(
        self,
        goal: Goal,
        draft: Draft,
        observation: Observation,
        examples: Sequence[GroundTruthEntry],
    ) -> Draft:
        """Patch a draft given an observation of how it failed."""
        raise NotImplementedError


CONTEXT_MESSAGE = """
# MISSION
You are a program synthesizer. A function is currently answered by an AI model, which is slow and expensive. Your job is to propose implementations that reproduce its EXAMPLES exactly, so that the function can be served without the AI model.

## FUNCTION DEFINITION
```start_of_function_definition
{goal}
```end_of_function_definition

## EXAMPLES
Correct input/output pairs for the function:
```start_of_examples
{examples}
```end_of_examples
"""

STRATEGY_NOTES = """
## STRATEGIES
- `compiled`: a deterministic Python implementation. The source must define a top-level function `{entrypoint}` taking the function's inputs as keyword arguments ({parameters}) and returning a value of type {output_type}. Use only the Python standard library.
- `agentic`: the function genuinely needs open-ended language understanding or world knowledge that can't be captured in code. The source is then a set of concise instructions for an AI model that answers each call at runtime.
Prefer `compiled` whenever the EXAMPLES suggest a rule can be written down.
"""

PROPOSE_REQUEST = """
## PREVIOUS PROPOSALS
These were proposed in earlier runs. Don't repeat strategies that were rejected:
```start_of_previous_proposals
{previous_proposals}
```end_of_previous_proposals

## REQUEST FOR YOU
Propose {count} distinct implementation(s). Post each proposal in its own block, in the following YAML format:
```start_of_proposal
rationale: |-
  {{why this approach should reproduce the examples}}
confidence: {{number between 0 and 1}}
strategy: {{compiled or agentic}}
source: |-
  {{python source or agentic instructions}}
```end_of_proposal
"""

REVISE_REQUEST = """
## CURRENT CANDIDATE
Strategy: {strategy}
```start_of_candidate_source
{source}
```end_of_candidate_source

## TEST RESULTS
The candidate was run against the EXAMPLES and failed:
```start_of_observation
{observation}
```end_of_observation

## REQUEST FOR YOU
First, observe what caused the failure. Then post a corrected candidate in the following YAML format:
```start_of_revision
observation: |-
  {{what went wrong and what you changed}}
strategy: {{compiled or agentic}}
source: |-
  {{corrected python source or agentic instructions}}
```end_of_revision
If you conclude that the function can't be implemented deterministically, switch the strategy to `agentic`.
"""

CODE_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\n(.*?)\n?```$", re.DOTALL)


def strip_code_fences(source: str) -> str:
    """Remove a markdown code fence wrapped around source, if there is one."""
    source = source.strip()
    if match := CODE_FENCE_PATTERN.match(source):
        return match[1].strip()
    return source


def parse_draft(data: Mapping[str, Any], rationale: str | None = None) -> Draft:
    """Build a draft from a parsed YAML block."""
    try:
        strategy = Strategy(str(data["strategy"]).strip().lower())
        source = strip_code_fences(str(data["source"]))
    except (KeyError, ValueError) as error:
        raise ExtractionError(
            problem=f"Invalid proposal fields: {error}", text=str(dict(data))
        ) from error
    if not source:
        raise ExtractionError(problem="Proposal has an empty source.", text=str(dict(data)))
    if (confidence := parse_confidence(data.get("confidence"))) is None:
        confidence = 0.5
    return Draft(
        rationale=str(data.get("rationale") or rationale or "").strip(),
        strategy=strategy,
        source=source,
        confidence=confidence,
        note=str(data["observation"]).strip() if data.get("observation") else None,
    )


def load_block(block: str) -> Mapping[str, Any]:
    """Load a YAML block, raising an extraction error if it isn't a mapping."""
    try:
        data = DEFAULT_YAML.load(block)
    except YAMLError as error:
        raise ExtractionError(problem=f"Invalid YAML: {error}", text=block) from error
    if not isinstance(data, Mapping):
        raise ExtractionError(problem="Expected a YAML mapping.", text=block)
    return data


@dataclass
class LLMProposalGenerator:
    """Generates and revises drafts by prompting a chat model."""

    model: BaseChatModel
    max_examples_in_prompt: int = 20
    printout: bool = True

    def context_messages(
        self, goal: Goal, examples: Sequence[GroundTruthEntry]
    ) -> list[SystemMessage]:
        """Messages describing the goal, its examples and the available strategies."""
        shown_examples = [
            {"inputs": example.inputs, "output": example.expected_output}
            for example in examples[: self.max_examples_in_prompt]
        ]
        context = dedent_and_strip(CONTEXT_MESSAGE).format(
            goal=goal, examples=format_as_yaml_str(shown_examples)
        )
        strategies = dedent_and_strip(STRATEGY_NOTES).format(
            entrypoint=ENTRYPOINT,
            parameters=", ".join(goal.parameter_names),
            output_type=goal.output.describe(),
        )
        return [SystemMessage(content=context), SystemMessage(content=strategies)]

    def propose(
        self,
        goal: Goal,
        examples: Sequence[GroundTruthEntry],
        prior_proposals: Sequence[Proposal],
        count: int,
    ) -> list[Draft]:
        """Generate new candidate drafts, aware of what was already tried."""
        request = dedent_and_strip(PROPOSE_REQUEST).format(
            previous_proposals=proposal_history_printout(prior_proposals),
            count=count,
        )
        messages = [*self.context_messages(goal, examples), SystemMessage(content=request)]
        output = query_model(
            model=self.model,
            messages=messages,
            preamble=f"Generating proposals for `{goal.name}`...\n{format_messages(messages)}",
            printout=self.printout,
            color=PROPOSAL_COLOR,
        )
        if not (blocks := extract_blocks(output, "start_of_proposal", "end_of_proposal")):
            raise ExtractionError(
                problem="No proposals found.", text=output, start_block_type="start_of_proposal"
            )
        drafts: list[Draft] = []
        for block in blocks[:count]:
            try:
                drafts.append(parse_draft(load_block(block)))
            except ExtractionError as error:
                if self.printout:
                    print(f"Skipping unreadable proposal: {error.problem}")
        if not drafts:
            raise ExtractionError(problem="No readable proposals.", text=output)
        return drafts

    def revise(
        self,
        goal: Goal,
        draft: Draft,
        observation: Observation,
        examples: Sequence[GroundTruthEntry],
    ) -> Draft:
        """Patch a draft given an observation of how it failed."""
        request = dedent_and_strip(REVISE_REQUEST).format(
            strategy=draft.strategy.value,
            source=draft.source,
            observation=observation,
        )
        messages = [*self.context_messages(goal, examples), SystemMessage(content=request)]
        output = query_model(
            model=self.model,
            messages=messages,
            preamble=f"Revising proposal for `{goal.name}`...\n{format_messages(messages)}",
            printout=self.printout,
            color=PROPOSAL_COLOR,
        )
        block = extract_and_unpack(output, "start_of_revision", "end_of_revision")
        return parse_draft(load_block(block), rationale=draft.rationale)
