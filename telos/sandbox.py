"""Loading of generated candidate code."""

from dataclasses import dataclass
import importlib.util
from pathlib import Path
import tempfile
from typing import Any, Callable, Protocol

from telos.toolkit.files import make_if_not_exist
from telos.toolkit.hashing import stable_hash

ENTRYPOINT = "solve"


@dataclass
class CandidateLoadError(Exception):
    """Generated code could not be turned into a callable."""

    problem: str

    def __str__(self) -> str:
        return self.problem


class CodeSandbox(Protocol):
    """Turns generated source into a callable `solve` function."""

    def load(self, source: str, label: str) -> Callable[..., Any]:
        """Load the entrypoint function defined by `source`."""
        raise NotImplementedError


@dataclass
class LocalSandbox:
    """
    Loads candidate code as a module from a file on disk, in the current process.

    This is not a security boundary: candidates run with the same privileges as the caller.
    """

    code_dir: Path | None = None
    """Directory where candidate modules are written. Defaults to a temporary directory."""
    entrypoint: str = ENTRYPOINT

    def __post_init__(self) -> None:
        if self.code_dir is None:
            self.code_dir = Path(tempfile.mkdtemp(prefix="telos_candidates_"))
        make_if_not_exist(self.code_dir)

    def load(self, source: str, label: str) -> Callable[..., Any]:
        """Load the entrypoint function defined by `source`."""
        assert self.code_dir is not None
        module_name = f"telos_candidate_{label}_{stable_hash(source)[:8]}".replace("-", "_")
        location = self.code_dir / f"{module_name}.py"
        location.write_text(source, encoding="utf-8")
        spec = importlib.util.spec_from_file_location(module_name, location)
        if not spec or not spec.loader:
            raise CandidateLoadError(f"Could not load candidate module: {location}")
        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as error:  # pylint:disable=broad-except
            raise CandidateLoadError(
                f"{type(error).__name__} while loading candidate: {error}"
            ) from error
        if not callable(solve := getattr(module, self.entrypoint, None)):
            raise CandidateLoadError(
                f"Candidate does not define a `{self.entrypoint}` function."
            )
        return solve
