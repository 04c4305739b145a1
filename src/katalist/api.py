"""Public API for downstream modules."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import ujson as json

from .config import KatalistConfig, load_config, save_config
from .errors import SourceNotFoundError
from .formatter import Formatter, default_formatter
from .locator import (
    find_client_method_calls,
    find_schema_constructors,
    find_tagged_calls,
    parse,
)
from .synthesizer import SchemaDescriptor, synthesize
from .transformer import transform_http_client_call
from .writer import ensure_package, schema_path, write_schema

__all__ = [
    "CallSite",
    "KatalistConfig",
    "load_config",
    "save_config",
    "read_json_file",
    "generate_schema",
    "generate_schema_from_file",
    "transform_file",
    "list_call_sites",
]


@dataclass(frozen=True)
class CallSite:
    kind: str
    line: int
    column: int
    detail: str


def read_json_file(path: str | Path) -> Any:
    """Parse a JSON document from disk."""
    path = Path(path)
    if not path.is_file():
        msg = f"JSON file not found: {path}"
        raise FileNotFoundError(msg)
    return json.loads(path.read_text(encoding="utf-8"))


def generate_schema(
    value: Any,
    title: str,
    config: KatalistConfig | None = None,
    formatter: Formatter | None = None,
) -> tuple[SchemaDescriptor, Path]:
    """Synthesize a schema for ``value`` and write it under the schema directory."""
    config = config or load_config()
    descriptor = synthesize(value, title)
    path = write_schema(
        descriptor,
        title,
        schema_path(title, config),
        formatter or default_formatter(config.line_length),
        config.type_suffix,
    )
    ensure_package(config.schema_root)
    return descriptor, path


def generate_schema_from_file(
    path: str | Path,
    title: str,
    config: KatalistConfig | None = None,
    formatter: Formatter | None = None,
) -> tuple[SchemaDescriptor, Path]:
    return generate_schema(read_json_file(path), title, config, formatter)


def transform_file(
    path: str | Path,
    in_place: bool = False,
    function_names: Sequence[str] | None = None,
    config: KatalistConfig | None = None,
    formatter: Formatter | None = None,
    correlate: bool = False,
) -> str:
    """Rewrite ``path``; see ``transform_http_client_call``."""
    return transform_http_client_call(
        path,
        not in_place,
        function_names,
        config=config or load_config(),
        formatter=formatter,
        correlate=correlate,
    )


def list_call_sites(path: str | Path, client_type: str = "HttpClient") -> list[CallSite]:
    """Every call the transformer would look at, in source order."""
    path = Path(path)
    if not path.is_file():
        msg = f"Source file not found: {path}"
        raise SourceNotFoundError(msg)
    tree = parse(path.read_text(encoding="utf-8"))
    sites: list[CallSite] = []
    for tagged in find_tagged_calls(tree):
        sites.append(
            CallSite(
                "tagged",
                tagged.call.lineno,
                tagged.call.col_offset,
                f".{tagged.method}() -> {tagged.interface_name or '?'}",
            )
        )
    for ctor in find_schema_constructors(tree, client_type):
        sites.append(CallSite("constructor", ctor.call.lineno, ctor.call.col_offset, client_type))
    for method_call in find_client_method_calls(tree, client_type):
        sites.append(
            CallSite(
                "client-method",
                method_call.call.lineno,
                method_call.call.col_offset,
                f"{method_call.variable}.{method_call.method}()",
            )
        )
    sites.sort(key=lambda site: (site.line, site.column))
    return sites
