"""Goal declarations."""

from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Iterable, Mapping, Self, Sequence

from telos.errors import SchemaError
from telos.schema import GoalName, InputKey
from telos.toolkit.files import sanitize_filename
from telos.toolkit.hashing import canonical_input_key, stable_hash
from telos.toolkit.text import dedent_and_strip
from telos.toolkit.yaml_tools import load_yaml
from telos.typespec import Signature, TypeSpec, parse_signature, parse_type


@dataclass(frozen=True)
class Goal:
    """A named unit of intent: a natural-language description with a typed input signature and output type."""

    name: GoalName
    description: str
    inputs: Signature
    output: TypeSpec
    examples_hint: str | None = field(default=None, compare=False)
    """Optional free-text note passed to models about the goal, e.g. edge cases to respect."""

    def __post_init__(self) -> None:
        assert self.name, "Goal name cannot be empty."
        assert self.description, "Goal description cannot be empty."

    @classmethod
    def declare(
        cls,
        name: str,
        description: str,
        inputs: Mapping[str, Any],
        output: Any,
        examples_hint: str | None = None,
    ) -> Self:
        """Declare a goal from loosely specified type descriptions."""
        return cls(
            name=GoalName(name),
            description=dedent_and_strip(description),
            inputs=parse_signature(inputs),
            output=parse_type(output),
            examples_hint=examples_hint,
        )

    @cached_property
    def fingerprint(self) -> str:
        """Hash of the goal's schema. Data gathered under a different schema is never mixed with data for this one."""
        return stable_hash(
            {
                "inputs": [
                    [name, input_type.serialize()]
                    for name, input_type in self.inputs.items()
                ],
                "output": self.output.serialize(),
            }
        )[:12]

    @staticmethod
    def slug_for(name: str) -> str:
        """Filesystem-safe version of a goal name."""
        return sanitize_filename(name)

    @property
    def slug(self) -> str:
        """Filesystem-safe name of the goal."""
        return self.slug_for(self.name)

    @property
    def parameter_names(self) -> list[str]:
        """Names of the input parameters, in order."""
        return list(self.inputs)

    def bind(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        """Bind positional and keyword arguments to the input signature, validating each value."""
        if len(args) > len(self.inputs):
            raise SchemaError(
                "args",
                f"`{self.name}` takes {len(self.inputs)} arguments but {len(args)} were given",
            )
        arguments = dict(zip(self.parameter_names, args))
        if duplicates := [name for name in kwargs if name in arguments]:
            raise SchemaError("args", f"multiple values for {duplicates}")
        arguments.update(kwargs)
        return self.validate_inputs(arguments)

    def validate_inputs(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        """Validate named arguments against the input signature."""
        if missing := [name for name in self.inputs if name not in arguments]:
            raise SchemaError("args", f"missing arguments {missing}")
        if unknown := [name for name in arguments if name not in self.inputs]:
            raise SchemaError("args", f"unexpected arguments {unknown}")
        return {
            name: input_type.validate(arguments[name], f"args.{name}")
            for name, input_type in self.inputs.items()
        }

    def validate_output(self, value: Any) -> Any:
        """Validate a value against the output type."""
        return self.output.validate(value, "output")

    def input_key(self, arguments: Mapping[str, Any]) -> InputKey:
        """Canonical key for a set of validated arguments."""
        return InputKey(canonical_input_key(arguments))

    @property
    def signature_printout(self) -> str:
        """Printable signature of the goal."""
        parameters = ", ".join(
            f"{name}: {input_type.describe()}" for name, input_type in self.inputs.items()
        )
        return f"{self.name}({parameters}) -> {self.output.describe()}"

    def __str__(self) -> str:
        template = """
        Name: {name}
        Signature: {signature}
        Description:
        {description}
        """
        printout = dedent_and_strip(template).format(
            name=self.name,
            signature=self.signature_printout,
            description=self.description,
        )
        if self.examples_hint:
            printout = f"{printout}\nNotes:\n{self.examples_hint}"
        return printout

    def serialize(self) -> dict[str, Any]:
        """Serialize the goal to a YAML-compatible dictionary."""
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputs": {
                name: input_type.serialize() for name, input_type in self.inputs.items()
            },
            "output": self.output.serialize(),
        }
        if self.examples_hint:
            data["examples_hint"] = self.examples_hint
        return data

    @classmethod
    def from_serialized_data(cls, data: Mapping[str, Any]) -> Self:
        """Deserialize the goal from a YAML-compatible dictionary."""
        return cls.declare(
            name=data["name"],
            description=data["description"],
            inputs=data["inputs"],
            output=data["output"],
            examples_hint=data.get("examples_hint"),
        )


def load_goals(goals_path: Path) -> Iterable[Goal]:
    """Load goal declarations from a YAML file holding either a list of goals or a `goals:` mapping."""
    data = load_yaml(goals_path)
    entries: Sequence[Mapping[str, Any]] = (
        data["goals"] if isinstance(data, Mapping) else data
    )
    return (Goal.from_serialized_data(entry) for entry in entries)
