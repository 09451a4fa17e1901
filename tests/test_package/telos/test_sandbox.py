"""Test loading of candidate code."""

from pathlib import Path

import pytest

from telos.sandbox import CandidateLoadError, LocalSandbox
from tests.helpers.sentiment import KEYWORD_SOURCE, SYNTAX_ERROR_SOURCE


def test_load_entrypoint(tmp_path: Path):
    """Test that the `solve` function is returned."""
    solve = LocalSandbox(tmp_path).load(KEYWORD_SOURCE, label="p1")
    assert solve(text="What a great day")["sentiment"] == "positive"
    assert len(list(tmp_path.glob("*.py"))) == 1


def test_load_errors(tmp_path: Path):
    """Test that broken candidates raise load errors."""
    sandbox = LocalSandbox(tmp_path)
    with pytest.raises(CandidateLoadError, match="SyntaxError"):
        sandbox.load(SYNTAX_ERROR_SOURCE, label="p1")
    with pytest.raises(CandidateLoadError, match="does not define"):
        sandbox.load("def answer(text):\n    return text\n", label="p2")
    with pytest.raises(CandidateLoadError, match="ZeroDivisionError"):
        sandbox.load("RATIO = 1 / 0\n", label="p3")


def test_default_directory():
    """Test that a temporary directory is used when none is given."""
    sandbox = LocalSandbox()
    assert sandbox.code_dir is not None and sandbox.code_dir.exists()
