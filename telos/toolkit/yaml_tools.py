"""YAML tools for Telos."""

import os
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence
from ruamel.yaml import YAML
from ruamel.yaml.compat import StringIO

DEFAULT_YAML = YAML(typ="safe")
DEFAULT_YAML.default_flow_style = False
DEFAULT_YAML.allow_unicode = True


def save_yaml(data: Mapping[str, Any], location: Path) -> None:
    """Save YAML to a file, making sure the directory exists."""
    if not location.exists():
        os.makedirs(location.parent, exist_ok=True)
    DEFAULT_YAML.dump(dict(data), location)


def load_yaml(location: Path) -> Any:
    """Load YAML from a file into plain Python objects."""
    return DEFAULT_YAML.load(location)


def append_yaml_document(data: Mapping[str, Any], location: Path) -> None:
    """Append a single document to a multi-document YAML stream."""
    if not location.exists():
        os.makedirs(location.parent, exist_ok=True)
    document = format_as_yaml_str(dict(data))
    with open(location, "a", encoding="utf-8") as file:
        file.write(f"---\n{document}\n")


def load_yaml_documents(location: Path) -> Iterator[Any]:
    """Iterate over the documents of a multi-document YAML stream."""
    if not location.exists():
        return iter(())
    return (
        document
        for document in DEFAULT_YAML.load_all(location.read_text(encoding="utf-8"))
        if document is not None
    )


def format_as_yaml_str(
    data: Mapping[str, Any] | Sequence[Any], yaml: YAML = DEFAULT_YAML
) -> str:
    """Dump yaml as a string."""
    yaml.dump(data, stream := StringIO())
    return stream.getvalue().strip()
