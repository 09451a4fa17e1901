"""Test text extraction."""

import pytest

from telos.toolkit.text import ExtractionError, extract_and_unpack, extract_blocks, truncate


def test_extract_blocks():
    """Test extracting several blocks of the same type."""
    text = "```start_of_proposal\na: 1\n```end_of_proposal\nthen\n```start_of_proposal\na: 2\n```end_of_proposal"
    assert extract_blocks(text, "start_of_proposal") == ["a: 1", "a: 2"]
    assert extract_blocks(text, "start_of_output") is None


def test_extract_and_unpack_requires_one_block():
    """Test that unpacking fails without exactly one block."""
    assert extract_and_unpack("```start_of_x\nvalue\n```end_of_x", "start_of_x") == "value"
    with pytest.raises(ExtractionError, match="Expected exactly one block"):
        extract_and_unpack("no blocks here", "start_of_x")


def test_truncate():
    """Test shortening of long text."""
    assert truncate("short") == "short"
    assert truncate("a  b\nc") == "a b c"
    assert truncate("x" * 50, 10) == "xxxxxxx..."
