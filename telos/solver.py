"""Solvers: anything that can produce an output for a goal's inputs."""

from dataclasses import dataclass, field
from functools import cached_property
import threading
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import SystemMessage
from ruamel.yaml.error import YAMLError

from telos.config import AI_COLOR, TelosConfig
from telos.errors import SolverExecutionError
from telos.goal import Goal
from telos.proposal import Proposal
from telos.sandbox import CodeSandbox
from telos.schema import AI_FALLBACK_ID, SolverId, SolverKind
from telos.toolkit.models import format_messages, query_model_message
from telos.toolkit.text import ExtractionError, dedent_and_strip, extract_and_unpack
from telos.toolkit.yaml_tools import DEFAULT_YAML, format_as_yaml_str


@dataclass(frozen=True)
class SolverResult:
    """Raw result of a solver call, before validation against the output type."""

    output: Any
    cost: float | None = None
    confidence: float | None = None


@runtime_checkable
class Solver(Protocol):
    """A callable that produces an output for a goal's inputs."""

    @property
    def id(self) -> SolverId:
        """Id of the solver."""
        raise NotImplementedError

    @property
    def kind(self) -> SolverKind:
        """Kind of the solver."""
        raise NotImplementedError

    def __call__(self, inputs: Mapping[str, Any]) -> SolverResult:
        """Produce an output for validated inputs."""
        raise NotImplementedError


AI_SYSTEM_MESSAGE = """
# MISSION
You are acting as a function inside a program. You will be given the FUNCTION DEFINITION and the INPUTS to a single call, and you must produce the return value of the function for those inputs.

## FUNCTION DEFINITION
```start_of_function_definition
{goal}
```end_of_function_definition
"""

AI_INSTRUCTIONS_MESSAGE = """
## ADDITIONAL INSTRUCTIONS
Follow these instructions, which were worked out from previous examples of correct outputs:
```start_of_instructions
{instructions}
```end_of_instructions
"""

AI_REQUEST_MESSAGE = """
## INPUTS
```start_of_inputs
{inputs}
```end_of_inputs

## REQUEST FOR YOU
Produce the return value of the function for the INPUTS above. The value must match this type exactly: {output_type}
Also estimate your confidence that the value is exactly correct, as a number between 0 and 1.
Post your output in the following YAML block format:
```start_of_output
output: {{output}}
confidence: {{confidence}}
```end_of_output
Do not add any fields that the type does not mention.
"""


@dataclass
class AISolver:
    """Solver that asks an AI model to act as the function. Always the last solver in a goal's chain."""

    goal: Goal
    model: BaseChatModel
    config: TelosConfig = field(default_factory=TelosConfig)
    printout: bool = False

    @property
    def id(self) -> SolverId:
        """Id of the solver."""
        return AI_FALLBACK_ID

    @property
    def kind(self) -> SolverKind:
        """Kind of the solver."""
        return SolverKind.AI_FALLBACK

    @property
    def instructions(self) -> str | None:
        """Extra runtime instructions, if any."""
        return None

    @property
    def model_name(self) -> str | None:
        """Name of the underlying model, used for cost estimates."""
        return getattr(self.model, "model_name", None)

    def messages(self, inputs: Mapping[str, Any]) -> list[SystemMessage]:
        """Messages sent to the model for a call."""
        messages = [
            SystemMessage(
                content=dedent_and_strip(AI_SYSTEM_MESSAGE).format(goal=self.goal)
            )
        ]
        if self.instructions:
            messages.append(
                SystemMessage(
                    content=dedent_and_strip(AI_INSTRUCTIONS_MESSAGE).format(
                        instructions=self.instructions
                    )
                )
            )
        messages.append(
            SystemMessage(
                content=dedent_and_strip(AI_REQUEST_MESSAGE).format(
                    inputs=format_as_yaml_str(dict(inputs)),
                    output_type=self.goal.output.describe(),
                )
            )
        )
        return messages

    def __call__(self, inputs: Mapping[str, Any]) -> SolverResult:
        """Produce an output for validated inputs by querying the model."""
        messages = self.messages(inputs)
        reply = query_model_message(
            model=self.model,
            messages=messages,
            color=AI_COLOR,
            preamble=f"Asking AI solver for `{self.goal.name}`...\n{format_messages(messages)}",
            printout=self.printout,
        )
        try:
            block = extract_and_unpack(str(reply.content), "start_of_output")
            parsed = DEFAULT_YAML.load(block)
        except (ExtractionError, YAMLError) as error:
            raise SolverExecutionError(self.id, f"unreadable model reply: {error}") from error
        if not isinstance(parsed, dict) or "output" not in parsed:
            raise SolverExecutionError(self.id, "model reply has no `output` field")
        cost = self.config.call_cost(
            self.model_name, dict(reply.usage_metadata) if reply.usage_metadata else None
        )
        return SolverResult(
            output=parsed["output"],
            cost=cost,
            confidence=parse_confidence(parsed.get("confidence")),
        )


def parse_confidence(value: Any) -> float | None:
    """Parse a self-reported confidence, discarding anything that isn't a number in [0, 1]."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    return confidence if 0.0 <= confidence <= 1.0 else None


@dataclass
class AgenticSolver(AISolver):
    """Solver for an accepted agentic proposal: delegates to the AI model, guided by the proposal's instructions."""

    proposal_id: SolverId = AI_FALLBACK_ID
    agentic_instructions: str = ""

    @property
    def id(self) -> SolverId:
        """Id of the solver."""
        return self.proposal_id

    @property
    def kind(self) -> SolverKind:
        """Kind of the solver."""
        return SolverKind.AGENTIC

    @property
    def instructions(self) -> str | None:
        """Extra runtime instructions, if any."""
        return self.agentic_instructions or None


@dataclass
class CompiledSolver:
    """Solver backed by synthesized Python code defining `solve(...)`."""

    solver_id: SolverId
    source: str
    sandbox: CodeSandbox
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def id(self) -> SolverId:
        """Id of the solver."""
        return self.solver_id

    @property
    def kind(self) -> SolverKind:
        """Kind of the solver."""
        return SolverKind.COMPILED

    @cached_property
    def function(self) -> Callable[..., Any]:
        """The loaded `solve` function."""
        with self._lock:
            return self.sandbox.load(self.source, label=self.solver_id)

    def __call__(self, inputs: Mapping[str, Any]) -> SolverResult:
        """Produce an output for validated inputs by running the code."""
        return SolverResult(output=self.function(**inputs))


def solver_for_proposal(
    proposal: Proposal,
    goal: Goal,
    model: BaseChatModel,
    sandbox: CodeSandbox,
    config: TelosConfig,
    printout: bool = False,
) -> Solver:
    """Build the runtime solver for an accepted proposal."""
    if proposal.agentic:
        return AgenticSolver(
            goal=goal,
            model=model,
            config=config,
            printout=printout,
            proposal_id=SolverId(proposal.id),
            agentic_instructions=proposal.source,
        )
    return CompiledSolver(
        solver_id=SolverId(proposal.id), source=proposal.source, sandbox=sandbox
    )
