"""Rewrite caller source so schema-generating calls use the generated types.

Every pass parses the current text, computes text edits from ``ast`` node
positions and applies them, so code outside the matched call sites is kept
byte for byte until the final formatter run. Passes are idempotent: once a
call carries ``response_type`` and has lost its generation options it no
longer matches anything.
"""

from __future__ import annotations

import ast
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import KatalistConfig
from .edits import SourceText, TextEdit, apply_edits, disjoint, removal_edits
from .errors import IOWriteError, SourceNotFoundError
from .formatter import Formatter, default_formatter
from .locator import (
    ANONYMOUS_SCOPE,
    FORCE_FILE_TRANSFORM,
    GENERATE_SCHEMA,
    INTERFACE_NAME,
    RESPONSE_TYPE,
    SCHEMA_OUTPUT,
    SchemaConstructor,
    bound_name,
    dict_value,
    enclosing_function_name,
    find_client_method_calls,
    find_schema_constructors,
    find_tagged_calls,
    has_keys,
    keyword_value,
    parent_map,
    parse,
    string_key,
)
from .log import logger
from .paths import join_module, schema_package, transformed_path
from .writer import schema_path

ANONYMOUS_MARKER = "<anonymous>"

GENERATION_OPTION_KEYS = frozenset(
    {
        GENERATE_SCHEMA,
        INTERFACE_NAME,
        "source_file",
        "generate_input_schema",
        "input_interface_name",
    }
)
EMBEDDED_SCHEMA_KEYS = frozenset({SCHEMA_OUTPUT, FORCE_FILE_TRANSFORM})


@dataclass(frozen=True)
class ClientBinding:
    """Type recorded for a client variable inside one function."""

    type_name: str
    function_name: str


@dataclass(frozen=True)
class _ImportRequest:
    name: str
    module: str
    marker: str


def _parse(text: str) -> tuple[ast.Module, SourceText]:
    return ast.parse(text), SourceText(text)


def _skip_comment(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] not in "\r\n":
        pos += 1
    return pos


def _widen(source: SourceText, start: int, end: int, open_: int, close: int) -> tuple[int, int]:
    """Grow a span over the parentheses wrapping it inside a container."""
    text = source.text
    pos = start - 1
    while pos > open_ and text[pos] in " \t\r\n(":
        if text[pos] == "(":
            start = pos
        pos -= 1
    pos = end
    while pos < close:
        char = text[pos]
        if char == "#":
            pos = _skip_comment(text, pos)
            continue
        if char == ")":
            end = pos + 1
        elif char not in " \t\r\n\\":
            break
        pos += 1
    return start, end


def _open_paren(source: SourceText, call: ast.Call) -> int:
    text = source.text
    pos = source.span(call.func)[1]
    while pos < len(text) and text[pos] != "(":
        if text[pos] == "#":
            pos = _skip_comment(text, pos)
            continue
        pos += 1
    return pos


def _call_elements(call: ast.Call) -> list[ast.AST]:
    elements: list[ast.AST] = [*call.args, *call.keywords]
    return sorted(elements, key=lambda n: (n.lineno, n.col_offset))  # type: ignore[attr-defined]


def _call_element_spans(source: SourceText, call: ast.Call) -> list[tuple[int, int]]:
    open_ = _open_paren(source, call)
    close = source.span(call)[1] - 1
    return [
        _widen(source, *source.span(element), open_, close) for element in _call_elements(call)
    ]


def _spread_start(source: SourceText, value: ast.expr, floor: int) -> int:
    start = source.span(value)[0]
    pos = start - 1
    while pos > floor and source.text[pos] in " \t\r\n(":
        pos -= 1
    if source.text[pos - 1 : pos + 1] == "**":
        return pos - 1
    return start


def _dict_entry_spans(source: SourceText, node: ast.Dict) -> list[tuple[int, int]]:
    open_, end = source.span(node)
    close = end - 1
    spans = []
    for key, value in zip(node.keys, node.values):
        value_end = source.span(value)[1]
        if key is None:
            start = _spread_start(source, value, open_)
            spans.append(_widen(source, start, value_end, open_, close))
        else:
            spans.append(_widen(source, source.span(key)[0], value_end, open_, close))
    return spans


def _remove_dict_entries(source: SourceText, node: ast.Dict, keys: Iterable[str]) -> list[TextEdit]:
    wanted = set(keys)
    remove = [string_key(key) in wanted for key in node.keys]
    if not any(remove):
        return []
    return removal_edits(source, _dict_entry_spans(source, node), remove)


def _remove_keywords(source: SourceText, call: ast.Call, names: Iterable[str]) -> list[TextEdit]:
    wanted = set(names)
    elements = _call_elements(call)
    remove = [isinstance(e, ast.keyword) and e.arg in wanted for e in elements]
    if not any(remove):
        return []
    return removal_edits(source, _call_element_spans(source, call), remove)


def _insert_keyword(source: SourceText, call: ast.Call, name: str, value: str) -> TextEdit:
    """Append ``name=value`` as the last argument of ``call``."""
    spans = _call_element_spans(source, call)
    if spans:
        end = spans[-1][1]
        return TextEdit(end, end, f", {name}={value}")
    close = source.span(call)[1] - 1
    return TextEdit(close, close, f"{name}={value}")


def _imported_names(tree: ast.Module) -> list[tuple[str, set[str]]]:
    imports = []
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom):
            module = "." * node.level + (node.module or "")
            imports.append((module, {alias.asname or alias.name for alias in node.names}))
    return imports


def _is_docstring(statement: ast.stmt) -> bool:
    return (
        isinstance(statement, ast.Expr)
        and isinstance(statement.value, ast.Constant)
        and isinstance(statement.value.value, str)
    )


def _import_insertion_point(tree: ast.Module, source: SourceText) -> tuple[int, str]:
    """Offset after the module's leading docstring and imports."""
    anchor: ast.stmt | None = None
    for index, statement in enumerate(tree.body):
        if index == 0 and _is_docstring(statement):
            anchor = statement
        elif isinstance(statement, (ast.Import, ast.ImportFrom)):
            anchor = statement
        else:
            break
    text = source.text
    if anchor is None:
        if tree.body:
            return source.line_start(tree.body[0].lineno), ""
        return len(text), "\n" if text and not text.endswith(("\n", "\r")) else ""
    offset = source.next_line_start(anchor)
    if offset >= len(text) and not text.endswith(("\n", "\r")):
        return len(text), "\n"
    return offset, ""


def _ensure_imports(text: str, requests: Sequence[_ImportRequest]) -> str:
    if not requests:
        return text
    tree, source = _parse(text)
    existing = _imported_names(tree)
    lines: list[str] = []
    seen: set[str] = set()
    for request in requests:
        if request.name in seen:
            continue
        seen.add(request.name)
        if any(request.marker in module and request.name in names for module, names in existing):
            continue
        lines.append(f"from {request.module} import {request.name}\n")
    if not lines:
        return text
    offset, prefix = _import_insertion_point(tree, source)
    return apply_edits(text, [TextEdit(offset, offset, prefix + "".join(lines))])


def add_type_parameters_to_tagged_calls(
    text: str, type_suffix: str = "SchemaType", names: Collection[str] | None = None
) -> str:
    """Add ``response_type=<Name><suffix>`` to tagged calls that lack one.

    With ``names`` only calls whose ``interface_name`` is listed are touched.
    """
    tree, source = _parse(text)
    edits = []
    for site in find_tagged_calls(tree):
        if site.response_type is not None:
            continue
        name = site.interface_name
        if not name or not name.isidentifier():
            logger.debug(
                "Skipping call on line %s: interface_name is not a literal name",
                site.call.lineno,
            )
            continue
        if names is not None and name not in names:
            continue
        edits.append(_insert_keyword(source, site.call, RESPONSE_TYPE, f"{name}{type_suffix}"))
    return apply_edits(text, disjoint(edits))


def add_schema_imports(
    text: str,
    source_path: str | Path,
    config: KatalistConfig,
    names: Collection[str] | None = None,
) -> str:
    """Import the schema type referenced by each tagged call's ``response_type``."""
    tree = parse(text)
    suffix = config.type_suffix
    package = schema_package(source_path, config.schema_root, config.project_root)
    requests = []
    for site in find_tagged_calls(tree):
        value = site.response_type
        if not isinstance(value, ast.Name) or not value.id.endswith(suffix):
            continue
        base = value.id[: -len(suffix)]
        if base and (names is None or base in names):
            requests.append(_ImportRequest(value.id, join_module(package, base), base))
    return _ensure_imports(text, requests)


def ready_schema_names(text: str, config: KatalistConfig) -> set[str]:
    """Interface names of tagged calls whose schema module already exists."""
    return {
        site.interface_name
        for site in find_tagged_calls(text)
        if site.interface_name
        and site.interface_name.isidentifier()
        and schema_path(site.interface_name, config).exists()
    }


def output_type_name(site: SchemaConstructor, type_suffix: str = "SchemaType") -> str | None:
    """``<schema_name>Output<suffix>`` from ``schema_output={"schema_name": ...}``."""
    descriptor = site.descriptor
    if not isinstance(descriptor, ast.Dict):
        return None
    value = dict_value(descriptor, "schema_name")
    if isinstance(value, ast.Constant) and isinstance(value.value, str) and value.value:
        return f"{value.value}Output{type_suffix}"
    return None


def extract_client_bindings(
    source: str | ast.Module,
    client_type: str = "HttpClient",
    function_names: Sequence[str] | None = None,
    type_suffix: str = "SchemaType",
) -> dict[str, ClientBinding]:
    """Map ``"<variable>:<function>"`` to the type of each embedded-schema client.

    With ``function_names`` only bindings inside those functions are kept;
    ``"<anonymous>"`` in the filter admits bindings inside unbound lambdas.
    When two bindings share a key the first one is kept.
    """
    tree = parse(source)
    parents = parent_map(tree)
    wants_anonymous = bool(function_names) and ANONYMOUS_MARKER in (function_names or ())
    bindings: dict[str, ClientBinding] = {}
    for site in find_schema_constructors(tree, client_type):
        variable = bound_name(parents.get(site.call), site.call)
        if variable is None:
            continue
        function_name = enclosing_function_name(site.call, parents)
        if function_names:
            allowed = function_name in function_names or (
                function_name == ANONYMOUS_SCOPE and wants_anonymous
            )
            if not allowed:
                continue
        type_name = output_type_name(site, type_suffix)
        if type_name is None:
            continue
        bindings.setdefault(f"{variable}:{function_name}", ClientBinding(type_name, function_name))
    return bindings


def _output_module(binding: ClientBinding, type_suffix: str) -> str | None:
    suffix = f"Output{type_suffix}"
    if not binding.type_name.endswith(suffix):
        return None
    return f"{binding.type_name[: -len(suffix)]}Output"


def add_types_to_client_method_calls(
    text: str, bindings: dict[str, ClientBinding], client_type: str = "HttpClient"
) -> str:
    """Add ``response_type`` to verb calls on clients listed in ``bindings``."""
    if not bindings:
        return text
    tree, source = _parse(text)
    parents = parent_map(tree)
    edits = []
    for site in find_client_method_calls(tree, client_type):
        key = f"{site.variable}:{enclosing_function_name(site.call, parents)}"
        binding = bindings.get(key)
        if binding is None or keyword_value(site.call, RESPONSE_TYPE) is not None:
            continue
        edits.append(_insert_keyword(source, site.call, RESPONSE_TYPE, binding.type_name))
    return apply_edits(text, disjoint(edits))


def add_client_schema_imports(
    text: str,
    bindings: dict[str, ClientBinding],
    source_path: str | Path,
    config: KatalistConfig,
) -> str:
    """Import every output type recorded in ``bindings``."""
    package = schema_package(source_path, config.schema_root, config.project_root)
    requests = []
    for binding in bindings.values():
        module_name = _output_module(binding, config.type_suffix)
        if module_name is None:
            continue
        requests.append(
            _ImportRequest(binding.type_name, join_module(package, module_name), module_name)
        )
    return _ensure_imports(text, requests)


def add_type_to_client_variables(
    text: str,
    source_path: str | Path,
    config: KatalistConfig,
    function_names: Sequence[str] | None = None,
) -> str:
    """Type verb calls on clients built with an embedded ``schema_output``.

    Only bindings whose ``<schema_name>Output`` module exists in the schema
    directory are applied, so the added import always resolves. Must run
    before ``remove_schema_output`` drops the descriptor.
    """
    bindings = extract_client_bindings(
        text, config.client_type, function_names, config.type_suffix
    )
    available = {}
    for key, binding in bindings.items():
        module_name = _output_module(binding, config.type_suffix)
        if module_name and schema_path(module_name, config).exists():
            available[key] = binding
        else:
            logger.debug("No generated module for %s; leaving %s untyped", binding.type_name, key)
    text = add_types_to_client_method_calls(text, available, config.client_type)
    return add_client_schema_imports(text, available, source_path, config)


def remove_schema_output(text: str, client_type: str = "HttpClient") -> str:
    """Drop ``schema_output`` and ``force_file_transform`` from client constructors."""
    tree, source = _parse(text)
    edits: list[TextEdit] = []
    for site in find_schema_constructors(tree, client_type):
        for arg in site.call.args:
            if isinstance(arg, ast.Dict) and has_keys(arg, SCHEMA_OUTPUT):
                edits.extend(_remove_dict_entries(source, arg, EMBEDDED_SCHEMA_KEYS))
        if site.keyword is not None:
            edits.extend(_remove_keywords(source, site.call, EMBEDDED_SCHEMA_KEYS))
    return apply_edits(text, disjoint(edits))


def remove_schema_generation_options(text: str, names: Collection[str] | None = None) -> str:
    """Strip generation-control keys from tagged calls, keeping ``headers`` and the rest."""
    tree, source = _parse(text)
    edits: list[TextEdit] = []
    for site in find_tagged_calls(tree):
        if names is not None and site.interface_name not in names:
            continue
        edits.extend(_remove_dict_entries(source, site.options, GENERATION_OPTION_KEYS))
    return apply_edits(text, disjoint(edits))


def transform_source(
    text: str,
    source_path: str | Path,
    config: KatalistConfig | None = None,
    function_names: Sequence[str] | None = None,
    formatter: Formatter | None = None,
    *,
    correlate: bool = False,
    require_schema: bool = False,
) -> str:
    """Run the rewrite passes over ``text`` and return the formatted result.

    ``correlate`` adds the client-variable pass, filtered by
    ``function_names``. ``require_schema`` limits tagged calls to those whose
    schema module exists. Text that no pass changes is returned as given.
    """
    config = config or KatalistConfig()
    names = ready_schema_names(text, config) if require_schema else None
    updated = add_type_parameters_to_tagged_calls(text, config.type_suffix, names)
    updated = add_schema_imports(updated, source_path, config, names)
    if correlate:
        updated = add_type_to_client_variables(updated, source_path, config, function_names)
    updated = remove_schema_output(updated, config.client_type)
    updated = remove_schema_generation_options(updated, names)
    if updated == text:
        return text
    formatter = formatter or default_formatter(config.line_length)
    return formatter.format(updated, source_path)


def transform_http_client_call(
    source_file_path: str | Path,
    write_new_file: bool = True,
    function_names: Sequence[str] | None = None,
    *,
    config: KatalistConfig | None = None,
    formatter: Formatter | None = None,
    correlate: bool = False,
    require_schema: bool = False,
) -> str:
    """Transform a source file and write the result.

    With ``write_new_file`` the output goes to ``<stem>.transformed<suffix>``
    next to the original; otherwise the original is overwritten (left alone
    when nothing changed). ``function_names`` only applies with ``correlate``.
    Returns the resulting text.
    """
    path = Path(source_file_path)
    if not path.is_file():
        raise SourceNotFoundError(f"Source file not found: {path}")
    original = path.read_text(encoding="utf-8")
    formatted = transform_source(
        original,
        path,
        config,
        function_names,
        formatter,
        correlate=correlate,
        require_schema=require_schema,
    )
    target = transformed_path(path) if write_new_file else path
    if target == path and formatted == original:
        logger.debug("No changes for %s", path)
        return formatted
    try:
        target.write_text(formatted, encoding="utf-8")
    except OSError as exc:
        raise IOWriteError(f"Could not write transformed source to {target}: {exc}") from exc
    logger.debug("Transformed %s -> %s", path, target)
    return formatted
