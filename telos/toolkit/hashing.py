"""Hashing utilities."""

from typing import Any, Callable, Hashable, Mapping
import hashlib
import json


def stable_hash(
    value: Hashable | Mapping[str, Any],
    json_default: Callable[[Any], Any] | None = None,
) -> str:
    """
    Return a stable hash for a value.

    >>> stable_hash({'a': 1, 'b': [2, 3, 4], 'c': {'d': 5}}) == stable_hash({'c': {'d': 5}, 'b': [2, 3, 4], 'a': 1})
    True

    Adapted from https://death.andgravity.com/stable-hashing
    """
    json_str = json.dumps(
        value,
        default=json_default,
        ensure_ascii=False,
        sort_keys=True,
        indent=None,
        separators=(",", ":"),
    )
    return hashlib.md5(json_str.encode("utf-8")).hexdigest()


def canonical_input_key(arguments: Mapping[str, Any]) -> str:
    """Key for a set of named arguments that doesn't depend on argument order."""
    return stable_hash(dict(arguments), json_default=repr)
