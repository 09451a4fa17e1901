"""Test the console validator."""

import pytest

from telos.human import Human


def test_validate_rejection_with_feedback(capsys: pytest.CaptureFixture):
    """Test that invalid replies are asked again, and a rejection comes with feedback."""
    replies = iter(["maybe", "n", " wrong label "])
    human = Human(_input=lambda _: next(replies))
    result = human.validate("text: I love it\noutput: negative")
    assert not result.valid
    assert result.feedback == "wrong label"
    printed = capsys.readouterr().out
    assert "I love it" in printed
    assert "Invalid input" in printed


def test_validate_approval():
    """Test that an approval needs no feedback."""
    human = Human(name="Reviewer", _input=lambda _: "Y")
    result = human.validate("text: I love it\noutput: positive")
    assert result.valid
    assert result.feedback == ""
    assert human.id == "Reviewer"
