"""Command line interface for Telos."""

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Sequence

from colorama import Fore

from telos.config import DATA_DIR, FAILURE_COLOR, TELOS_COLOR
from telos.engine import TelosEngine, TelosFunction
from telos.errors import TelosError
from telos.evaluation import ProposalEvaluator
from telos.toolkit.yaml_tools import DEFAULT_YAML, format_as_yaml_str


def parse_assignment(assignment: str) -> tuple[str, Any]:
    """Parse a `name=value` argument. Values are read as YAML, so `3` is an int and `true` a bool."""
    name, separator, raw_value = assignment.partition("=")
    if not separator or not name:
        raise ValueError(f"Expected `name=value`, got `{assignment}`.")
    value = DEFAULT_YAML.load(raw_value) if raw_value.strip() else raw_value
    return name.strip(), value


def get_args(argv: Sequence[str] | None = None) -> Namespace:
    """Get the command line arguments."""
    common = ArgumentParser(add_help=False)
    common.add_argument(
        "--goals",
        default="goals.yaml",
        type=str,
        help="Path to the YAML file declaring goals.",
    )
    common.add_argument(
        "--data-dir",
        default=str(DATA_DIR),
        type=str,
        help="Path to the directory where Telos keeps its data.",
    )
    common.add_argument(
        "--llm-cache",
        action="store_true",
        help="Cache identical calls to models.",
    )
    parser = ArgumentParser(prog="telos", description="Self-improving functions.")
    commands = parser.add_subparsers(dest="command", required=True)

    synthesize = commands.add_parser(
        "synthesize", parents=[common], help="Run synthesis for a goal."
    )
    synthesize.add_argument("goal", type=str)

    invoke = commands.add_parser("invoke", parents=[common], help="Call a goal.")
    invoke.add_argument("goal", type=str)
    invoke.add_argument("inputs", nargs="*", help="Inputs as `name=value` pairs.")

    add_example = commands.add_parser(
        "add-example", parents=[common], help="Add a ground truth example for a goal."
    )
    add_example.add_argument("goal", type=str)
    add_example.add_argument(
        "--expected", required=True, type=str, help="Expected output, as YAML."
    )
    add_example.add_argument("inputs", nargs="*", help="Inputs as `name=value` pairs.")

    review = commands.add_parser(
        "review",
        parents=[common],
        help="Review logged AI outputs and approve them as ground truth.",
    )
    review.add_argument("goal", type=str)
    review.add_argument("--limit", type=int, default=None)

    proposals = commands.add_parser(
        "proposals", parents=[common], help="List proposals made for a goal."
    )
    proposals.add_argument("goal", type=str)
    return parser.parse_args(argv)


def get_function(engine: TelosEngine, goals_path: Path, name: str) -> TelosFunction:
    """Load goals from a file and get the callable for one of them."""
    functions = engine.load_goals(goals_path)
    if name not in functions:
        raise SystemExit(f"Goal `{name}` is not declared in {goals_path}.")
    return functions[name]  # type: ignore


def run_command(args: Namespace, engine: TelosEngine) -> None:
    """Run a parsed command against an engine."""
    function = get_function(engine, Path(args.goals), args.goal)
    if args.command == "invoke":
        output = function(**dict(parse_assignment(item) for item in args.inputs))
        print(format_as_yaml_str({"output": output}))
    elif args.command == "add-example":
        entry = function.add_ground_truth(
            DEFAULT_YAML.load(args.expected),
            **dict(parse_assignment(item) for item in args.inputs),
        )
        print(f"{TELOS_COLOR}Added example {entry.input_key} for `{function.name}`.{Fore.RESET}")
    elif args.command == "review":
        approved = function.review(limit=args.limit)
        print(f"{TELOS_COLOR}Approved {len(approved)} output(s) as ground truth.{Fore.RESET}")
    elif args.command == "synthesize":
        function.synthesize()
        solvers = ", ".join(solver.id for solver in function.solvers)
        print(f"{TELOS_COLOR}Solver chain for `{function.name}`: {solvers}{Fore.RESET}")
    elif args.command == "proposals":
        ranked = ProposalEvaluator.rank(function.proposals)
        rejected = [proposal for proposal in function.proposals if not proposal.accepted]
        for proposal in [*ranked, *rejected]:
            print(proposal.summary)
        if not function.proposals:
            print(f"No proposals yet for `{function.name}`.")


def main(argv: Sequence[str] | None = None) -> None:
    """Run the main function."""
    args = get_args(argv)
    engine = TelosEngine(files_dir=Path(args.data_dir), llm_cache_enabled=args.llm_cache)
    try:
        run_command(args, engine)
    except TelosError as error:
        print(f"{FAILURE_COLOR}{error.message}{Fore.RESET}")
        raise SystemExit(1) from error
    finally:
        if "orchestrator" in engine.__dict__:
            engine.orchestrator.wait_for_background_runs()
        engine.shutdown()


if __name__ == "__main__":
    main()
