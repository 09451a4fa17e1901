"""Test type descriptions."""

import pytest

from telos.errors import SchemaError
from telos.typespec import (
    BoundedNumberType,
    EnumType,
    PrimitiveType,
    RecordType,
    bounded,
    enum_of,
    parse_signature,
    parse_type,
    record_of,
)


def test_parse_primitive_aliases():
    """Test that common spellings of primitive types are accepted."""
    assert parse_type("string") == PrimitiveType("str")
    assert parse_type("integer") == PrimitiveType("int")
    assert parse_type(float) == PrimitiveType("float")
    assert parse_type("boolean") == PrimitiveType("bool")


def test_parse_tagged_types():
    """Test parsing of enum, bounded and record descriptions."""
    parsed = parse_type(
        {
            "record": {
                "label": {"enum": ["a", "b"]},
                "score": {"bounded": {"min": 0, "max": 1, "tolerance": 0.1}},
            }
        }
    )
    assert isinstance(parsed, RecordType)
    assert parsed.field_types["label"] == EnumType(("a", "b"))
    assert parsed.field_types["score"] == BoundedNumberType(
        kind="float", minimum=0, maximum=1, tolerance=0.1
    )


def test_parse_unknown_type():
    """Test that unknown type descriptions are rejected."""
    with pytest.raises(SchemaError):
        parse_type("datetime")
    with pytest.raises(SchemaError):
        parse_type({"tuple": ["int"]})


def test_serialize_round_trip():
    """Test that serialized types parse back to the same type."""
    original = record_of(
        sentiment=enum_of("positive", "negative"), confidence=bounded(0.0, 1.0)
    )
    assert parse_type(original.serialize()) == original


def test_primitive_validation():
    """Test primitive validation, including bools not counting as numbers."""
    assert PrimitiveType("int").validate(3) == 3
    assert PrimitiveType("int").validate(3.0) == 3
    assert PrimitiveType("float").validate(2) == 2.0
    with pytest.raises(SchemaError):
        PrimitiveType("int").validate(True)
    with pytest.raises(SchemaError):
        PrimitiveType("str").validate(1)
    with pytest.raises(SchemaError):
        PrimitiveType("float").validate(float("nan"))


def test_bounded_validation():
    """Test that bounds are inclusive."""
    unit = bounded(0.0, 1.0)
    assert unit.validate(0.0) == 0.0
    assert unit.validate(1) == 1.0
    with pytest.raises(SchemaError, match="above the maximum"):
        unit.validate(1.01)
    with pytest.raises(SchemaError, match="below the minimum"):
        unit.validate(-0.5)


def test_record_validation_reports_path():
    """Test that record validation names the offending field."""
    record = record_of(sentiment=enum_of("positive", "negative"), confidence=bounded(0, 1))
    with pytest.raises(SchemaError) as error:
        record.validate({"sentiment": "meh", "confidence": 0.5}, "output")
    assert error.value.path == "output.sentiment"
    with pytest.raises(SchemaError, match="missing fields"):
        record.validate({"sentiment": "positive"})
    with pytest.raises(SchemaError, match="unexpected fields"):
        record.validate({"sentiment": "positive", "confidence": 0.5, "extra": 1})


def test_matches_uses_tolerance():
    """Test that bounded floats compare within their tolerance."""
    record = record_of(
        sentiment=enum_of("positive", "negative"), confidence=bounded(0, 1, tolerance=0.1)
    )
    assert record.matches(
        {"sentiment": "positive", "confidence": 0.9},
        {"sentiment": "positive", "confidence": 0.85},
    )
    assert not record.matches(
        {"sentiment": "positive", "confidence": 0.9},
        {"sentiment": "negative", "confidence": 0.9},
    )
    assert not bounded(0, 1).matches(0.9, 0.85)


def test_parse_signature_keeps_order():
    """Test that parameter order is preserved."""
    signature = parse_signature({"b": "int", "a": "str"})
    assert list(signature) == ["b", "a"]
