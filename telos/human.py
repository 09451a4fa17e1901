"""Handling of human parts of the system."""

from dataclasses import dataclass
from typing import Callable

from telos.schema import RuntimeId, WorkValidationResult
from telos.toolkit.advisor import get_choice


@dataclass
class Human:
    """A human at the console. Slotted in as the validator that approves AI outputs before they become trusted ground truth."""

    name: str = "Human"
    _input: Callable[[str], str] = input

    @property
    def id(self) -> RuntimeId:
        """Runtime id of the human."""
        return RuntimeId(self.name)

    def advise(self, prompt: str) -> str:
        """Get input from the human."""
        print(prompt)
        return self._input("Enter your response: ").strip()

    def validate(self, context: str) -> WorkValidationResult:
        """Ask the human whether an output is correct, and why not if it isn't."""
        prompt = f"{context}\n\nPlease validate the work as described above (y/n): "
        valid = get_choice(prompt, {"y", "n"}, advisor=self) == "y"
        feedback: str = "" if valid else self.advise("Provide feedback: ")
        return WorkValidationResult(valid, feedback)
