"""Test hashing utilities."""

from telos.toolkit.hashing import canonical_input_key, stable_hash


def test_stable_hash_ignores_key_order():
    """Test that mappings hash the same regardless of key order."""
    assert stable_hash({"a": 1, "b": [2, 3]}) == stable_hash({"b": [2, 3], "a": 1})


def test_stable_hash_is_fixed():
    """Test that the hash doesn't depend on the process."""
    assert stable_hash({"a": 1}) == "bb6cb5c68df4652941caf652a366f2d8"


def test_canonical_input_key_handles_non_json_values():
    """Test that values without a JSON form still get a key."""
    assert canonical_input_key({"when": {1, 2}}) == canonical_input_key({"when": {1, 2}})
    assert canonical_input_key({"text": "a"}) != canonical_input_key({"text": "b"})
