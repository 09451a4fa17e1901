"""Configuration process for Telos."""

from dataclasses import dataclass, field, fields
import os
from pathlib import Path
from os import makedirs
from typing import Any, Self

from colorama import Fore
from dotenv import load_dotenv

load_dotenv(override=False)

DATA_DIR = Path(".data")
CACHE_DIR = DATA_DIR / "cache"

TELOS_COLOR = Fore.MAGENTA
PROMPT_COLOR = Fore.BLUE
AI_COLOR = Fore.GREEN
PROPOSAL_COLOR = Fore.CYAN
FAILURE_COLOR = Fore.RED
VERBOSE = os.getenv("TELOS_VERBOSE", "1") not in {"0", "false", "False"}

GPT_4O = "gpt-4o-2024-08-06"
GPT_4O_MINI = "gpt-4o-mini-2024-07-18"
PRECISE_MODEL_NAME = os.getenv("TELOS_PRECISE_MODEL", GPT_4O_MINI)
VARIANT_MODEL_NAME = os.getenv("TELOS_VARIANT_MODEL", GPT_4O)

# USD per 1K tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    GPT_4O: (0.0025, 0.01),
    GPT_4O_MINI: (0.00015, 0.0006),
}


def configure_langchain_cache(
    database_path: Path = CACHE_DIR / ".langchain.db",
) -> None:
    """Configure the LLM cache."""
    # pylint:disable=import-outside-toplevel
    from langchain_community.cache import SQLiteCache
    from langchain_core.globals import get_llm_cache, set_llm_cache

    makedirs(database_path.parent, exist_ok=True)
    if not get_llm_cache():
        set_llm_cache(SQLiteCache(database_path=str(database_path)))


@dataclass(frozen=True)
class TelosConfig:
    """Tunable parameters for routing and synthesis. Defaults can be overridden with `TELOS_<FIELD_NAME>` environment variables."""

    accuracy_threshold: float = 1.0
    """Fraction of examples a proposal must get right to be accepted."""
    iteration_budget: int = 5
    """Maximum test-fix iterations per proposal."""
    proposals_per_round: int = 2
    """Number of proposals requested from the generator per round."""
    generation_rounds: int = 2
    """Rounds of proposal generation before a synthesis run gives up."""
    auto_synthesis_threshold: int = 0
    """Number of calls logged since the goal's last synthesis run that triggers a new run automatically. 0 disables it."""
    use_logged_examples: bool = False
    """Whether high-confidence logged AI outputs are used as weak ground truth."""
    logged_confidence_threshold: float = 0.9
    """Minimum self-reported confidence for a logged output to count as weak ground truth."""
    ai_timeout: float = 60.0
    """Seconds before an AI or agentic solver call is abandoned."""
    solver_timeout: float = 5.0
    """Seconds before a compiled solver call is abandoned."""
    candidate_call_timeout: float = 2.0
    """Seconds allowed per example when testing a candidate."""
    proposal_timeout: float = 300.0
    """Seconds allowed for one proposal's whole test-fix loop."""
    benchmark_trials: int = 5
    """Timed repetitions per example when benchmarking an accepted proposal."""
    max_parallel_proposals: int = 4
    max_chain_length: int = 3
    """Maximum number of synthesized solvers kept ahead of the AI fallback."""
    ai_cost_per_call: float = 0.002
    """Flat cost estimate in USD for AI calls whose token usage is unknown."""
    model_pricing: dict[str, tuple[float, float]] = field(
        default_factory=lambda: dict(MODEL_PRICING)
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> Self:
        """Build a configuration from `TELOS_*` environment variables, with explicit overrides taking precedence."""
        values: dict[str, Any] = {}
        for config_field in fields(cls):
            if config_field.name == "model_pricing":
                continue
            raw = os.getenv(f"TELOS_{config_field.name.upper()}")
            if raw is None:
                continue
            default = config_field.default
            if isinstance(default, bool):
                values[config_field.name] = raw.lower() in {"1", "true", "yes"}
            elif isinstance(default, int):
                values[config_field.name] = int(raw)
            else:
                values[config_field.name] = float(raw)
        values.update(overrides)
        return cls(**values)

    def call_cost(self, model_name: str | None, usage: dict[str, Any] | None) -> float:
        """Estimated cost in USD of a single AI call."""
        if not usage or model_name not in self.model_pricing:
            return self.ai_cost_per_call
        input_price, output_price = self.model_pricing[model_name]
        return (
            usage.get("input_tokens", 0) * input_price
            + usage.get("output_tokens", 0) * output_price
        ) / 1000
