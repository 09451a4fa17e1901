"""Test configuration."""

import pytest

from telos.config import GPT_4O_MINI, TelosConfig


def test_from_env(monkeypatch: pytest.MonkeyPatch):
    """Test that environment variables override defaults, and explicit values override both."""
    monkeypatch.setenv("TELOS_ITERATION_BUDGET", "7")
    monkeypatch.setenv("TELOS_ACCURACY_THRESHOLD", "0.9")
    monkeypatch.setenv("TELOS_USE_LOGGED_EXAMPLES", "true")
    monkeypatch.setenv("TELOS_SOLVER_TIMEOUT", "1.5")
    config = TelosConfig.from_env(solver_timeout=3.0)
    assert config.iteration_budget == 7
    assert config.accuracy_threshold == 0.9
    assert config.use_logged_examples is True
    assert config.solver_timeout == 3.0
    assert config.auto_synthesis_threshold == 0


def test_call_cost():
    """Test that costs come from token usage when the model's pricing is known."""
    config = TelosConfig(ai_cost_per_call=0.01)
    usage = {"input_tokens": 1000, "output_tokens": 2000}
    assert config.call_cost(GPT_4O_MINI, usage) == pytest.approx(0.00015 + 0.0012)
    assert config.call_cost("unknown-model", usage) == 0.01
    assert config.call_cost(GPT_4O_MINI, None) == 0.01
