"""Type descriptions for Telos inputs and outputs.

Types form a closed set of variants that are validated at the boundary of every call, independently of Python type hints:

- `PrimitiveType`: `str`, `int`, `float` or `bool`
- `EnumType`: one of a fixed set of strings
- `BoundedNumberType`: an `int` or `float` within an inclusive range
- `RecordType`: a mapping with a fixed set of named, typed fields
"""

from dataclasses import dataclass
import math
from typing import Any, Literal, Mapping

from telos.errors import SchemaError

PrimitiveKind = Literal["str", "int", "float", "bool"]
NumberKind = Literal["int", "float"]

PRIMITIVE_ALIASES: dict[Any, PrimitiveKind] = {
    "str": "str",
    "string": "str",
    "int": "int",
    "integer": "int",
    "float": "float",
    "number": "float",
    "bool": "bool",
    "boolean": "bool",
    str: "str",
    int: "int",
    float: "float",
    bool: "bool",
}


def check_number(value: Any, kind: NumberKind, path: str) -> int | float:
    """Check that a value is a number of the given kind."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(path, f"expected {kind}, got {type(value).__name__}")
    if kind == "int":
        if isinstance(value, float) and not value.is_integer():
            raise SchemaError(path, f"expected int, got {value!r}")
        return int(value)
    if not math.isfinite(value):
        raise SchemaError(path, f"expected a finite float, got {value!r}")
    return float(value)


def numbers_match(expected: float, actual: float, tolerance: float = 0.0) -> bool:
    """Whether two numbers are equal within a tolerance."""
    return math.isclose(expected, actual, rel_tol=1e-9, abs_tol=max(tolerance, 1e-12))


@dataclass(frozen=True)
class PrimitiveType:
    """A primitive value."""

    kind: PrimitiveKind

    def validate(self, value: Any, path: str = "value") -> Any:
        """Validate and normalize a value."""
        if self.kind == "str":
            if not isinstance(value, str):
                raise SchemaError(path, f"expected str, got {type(value).__name__}")
            return value
        if self.kind == "bool":
            if not isinstance(value, bool):
                raise SchemaError(path, f"expected bool, got {type(value).__name__}")
            return value
        return check_number(value, self.kind, path)

    def matches(self, expected: Any, actual: Any) -> bool:
        """Whether an actual value counts as equal to the expected one."""
        if self.kind == "float":
            return numbers_match(expected, actual)
        return bool(expected == actual)

    def describe(self) -> str:
        """Short description of the type."""
        return self.kind

    def serialize(self) -> Any:
        """Serialize to the goal file format."""
        return self.kind


@dataclass(frozen=True)
class EnumType:
    """One of a fixed set of string values."""

    values: tuple[str, ...]

    def __post_init__(self) -> None:
        assert self.values, "Enum types need at least one value."

    def validate(self, value: Any, path: str = "value") -> str:
        """Validate and normalize a value."""
        if value not in self.values:
            raise SchemaError(path, f"expected one of {list(self.values)}, got {value!r}")
        return value

    def matches(self, expected: Any, actual: Any) -> bool:
        """Whether an actual value counts as equal to the expected one."""
        return bool(expected == actual)

    def describe(self) -> str:
        """Short description of the type."""
        return f"one of [{', '.join(self.values)}]"

    def serialize(self) -> Any:
        """Serialize to the goal file format."""
        return {"enum": list(self.values)}


@dataclass(frozen=True)
class BoundedNumberType:
    """A number within an inclusive range. `tolerance` is the absolute difference allowed when scoring accuracy."""

    kind: NumberKind = "float"
    minimum: float | None = None
    maximum: float | None = None
    tolerance: float = 0.0

    def validate(self, value: Any, path: str = "value") -> int | float:
        """Validate and normalize a value."""
        number = check_number(value, self.kind, path)
        if self.minimum is not None and number < self.minimum:
            raise SchemaError(path, f"{number!r} is below the minimum of {self.minimum}")
        if self.maximum is not None and number > self.maximum:
            raise SchemaError(path, f"{number!r} is above the maximum of {self.maximum}")
        return number

    def matches(self, expected: Any, actual: Any) -> bool:
        """Whether an actual value counts as equal to the expected one."""
        return numbers_match(expected, actual, self.tolerance)

    def describe(self) -> str:
        """Short description of the type."""
        low = "-inf" if self.minimum is None else f"{self.minimum:g}"
        high = "inf" if self.maximum is None else f"{self.maximum:g}"
        return f"{self.kind} in [{low}, {high}]"

    def serialize(self) -> Any:
        """Serialize to the goal file format."""
        return {
            "bounded": {
                "kind": self.kind,
                "min": self.minimum,
                "max": self.maximum,
                "tolerance": self.tolerance,
            }
        }


@dataclass(frozen=True)
class RecordType:
    """A mapping with exactly the named fields."""

    fields: tuple[tuple[str, "TypeSpec"], ...]

    @property
    def field_types(self) -> dict[str, "TypeSpec"]:
        """Field types by name."""
        return dict(self.fields)

    def validate(self, value: Any, path: str = "value") -> dict[str, Any]:
        """Validate and normalize a value."""
        if not isinstance(value, Mapping):
            raise SchemaError(path, f"expected a record, got {type(value).__name__}")
        field_types = self.field_types
        if missing := [name for name in field_types if name not in value]:
            raise SchemaError(path, f"missing fields {missing}")
        if extra := [name for name in value if name not in field_types]:
            raise SchemaError(path, f"unexpected fields {extra}")
        return {
            name: field_type.validate(value[name], f"{path}.{name}")
            for name, field_type in self.fields
        }

    def matches(self, expected: Any, actual: Any) -> bool:
        """Whether an actual value counts as equal to the expected one."""
        return all(
            field_type.matches(expected[name], actual[name])
            for name, field_type in self.fields
        )

    def describe(self) -> str:
        """Short description of the type."""
        inner = ", ".join(
            f"{name}: {field_type.describe()}" for name, field_type in self.fields
        )
        return f"{{{inner}}}"

    def serialize(self) -> Any:
        """Serialize to the goal file format."""
        return {
            "record": {name: field_type.serialize() for name, field_type in self.fields}
        }


TypeSpec = PrimitiveType | EnumType | BoundedNumberType | RecordType
Signature = dict[str, TypeSpec]


def enum_of(*values: str) -> EnumType:
    """Create an enum type."""
    return EnumType(values=tuple(values))


def bounded(
    minimum: float | None = None,
    maximum: float | None = None,
    kind: NumberKind = "float",
    tolerance: float = 0.0,
) -> BoundedNumberType:
    """Create a bounded number type."""
    return BoundedNumberType(
        kind=kind, minimum=minimum, maximum=maximum, tolerance=tolerance
    )


def record_of(**fields: Any) -> RecordType:
    """Create a record type from keyword arguments, in the order they are given."""
    return RecordType(
        fields=tuple((name, parse_type(value)) for name, value in fields.items())
    )


def parse_type(data: Any) -> TypeSpec:
    """Parse a type description from the goal file format, or pass through an existing type."""
    if isinstance(data, (PrimitiveType, EnumType, BoundedNumberType, RecordType)):
        return data
    if isinstance(data, Mapping) and len(data) == 1:
        ((tag, body),) = data.items()
        if tag == "enum":
            return enum_of(*[str(value) for value in body])
        if tag == "bounded":
            return bounded(
                minimum=body.get("min"),
                maximum=body.get("max"),
                kind=body.get("kind", "float"),
                tolerance=float(body.get("tolerance", 0.0)),
            )
        if tag == "record":
            return record_of(**body)
    try:
        return PrimitiveType(kind=PRIMITIVE_ALIASES[data])
    except (KeyError, TypeError) as error:
        raise SchemaError("type", f"unrecognized type description: {data!r}") from error


def parse_signature(data: Mapping[str, Any]) -> Signature:
    """Parse an ordered mapping of parameter names to type descriptions."""
    return {str(name): parse_type(type_data) for name, type_data in data.items()}
