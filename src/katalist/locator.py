"""Syntactic call-site matching over a parsed Python module.

Matching compares identifier text only: no imports are followed and no types
are resolved, so any ``x.get(url, {...})`` with the right options shape counts
as a tagged call.
"""

from __future__ import annotations

import ast
from collections.abc import Iterable
from dataclasses import dataclass

HTTP_METHODS = ("get", "post", "put", "delete")
# Position of the options argument for each verb; body-carrying verbs take it third.
OPTIONS_INDEX = {"get": 1, "delete": 1, "post": 2, "put": 2}

GENERATE_SCHEMA = "generate_schema"
INTERFACE_NAME = "interface_name"
SCHEMA_OUTPUT = "schema_output"
FORCE_FILE_TRANSFORM = "force_file_transform"
RESPONSE_TYPE = "response_type"

GLOBAL_SCOPE = "global"
ANONYMOUS_SCOPE = "anonymous"


@dataclass(frozen=True)
class TaggedCall:
    """``x.<verb>(..., {"generate_schema": ..., "interface_name": ...})``."""

    call: ast.Call
    method: str
    options: ast.Dict

    @property
    def interface_name(self) -> str | None:
        value = dict_value(self.options, INTERFACE_NAME)
        if isinstance(value, ast.Constant) and isinstance(value.value, str):
            return value.value
        return None

    @property
    def response_type(self) -> ast.expr | None:
        return keyword_value(self.call, RESPONSE_TYPE)


@dataclass(frozen=True)
class SchemaConstructor:
    """Client construction carrying an embedded ``schema_output`` descriptor."""

    call: ast.Call
    options: ast.Dict | None
    keyword: ast.keyword | None

    @property
    def descriptor(self) -> ast.expr | None:
        if self.options is not None:
            return dict_value(self.options, SCHEMA_OUTPUT)
        if self.keyword is not None:
            return self.keyword.value
        return None


@dataclass(frozen=True)
class ClientVariable:
    name: str
    call: ast.Call
    binding: ast.stmt


@dataclass(frozen=True)
class ClientMethodCall:
    call: ast.Call
    variable: str
    method: str


def parse(source: str | ast.Module) -> ast.Module:
    if isinstance(source, ast.Module):
        return source
    return ast.parse(source)


def _position(node: ast.AST) -> tuple[int, int]:
    return node.lineno, node.col_offset  # type: ignore[attr-defined]


def _calls(tree: ast.Module) -> list[ast.Call]:
    return sorted((n for n in ast.walk(tree) if isinstance(n, ast.Call)), key=_position)


def string_key(key: ast.expr | None) -> str | None:
    if isinstance(key, ast.Constant) and isinstance(key.value, str):
        return key.value
    return None


def dict_value(node: ast.Dict, key: str) -> ast.expr | None:
    """Value stored under the literal string ``key``; the last entry wins."""
    found = None
    for entry_key, value in zip(node.keys, node.values):
        if string_key(entry_key) == key:
            found = value
    return found


def has_keys(node: ast.Dict, *keys: str) -> bool:
    present = {string_key(k) for k in node.keys}
    return all(key in present for key in keys)


def keyword_value(call: ast.Call, name: str) -> ast.expr | None:
    for kw in call.keywords:
        if kw.arg == name:
            return kw.value
    return None


def callee_name(call: ast.Call) -> str | None:
    """Trailing identifier of the called expression (``a.b.C`` -> ``C``)."""
    func = call.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def options_argument(call: ast.Call, method: str) -> ast.expr | None:
    """The options argument of a verb call, positional or ``options=``."""
    value = keyword_value(call, "options")
    if value is not None:
        return value
    index = OPTIONS_INDEX.get(method, 1)
    positional = call.args[: index + 1]
    if any(isinstance(arg, ast.Starred) for arg in positional):
        return None
    if len(call.args) > index:
        return call.args[index]
    return None


def find_tagged_calls(source: str | ast.Module) -> list[TaggedCall]:
    """Verb calls whose options dict requests schema generation."""
    tree = parse(source)
    found: list[TaggedCall] = []
    for call in _calls(tree):
        if not isinstance(call.func, ast.Attribute) or call.func.attr not in HTTP_METHODS:
            continue
        method = call.func.attr
        options = options_argument(call, method)
        if not isinstance(options, ast.Dict):
            continue
        if has_keys(options, GENERATE_SCHEMA, INTERFACE_NAME):
            found.append(TaggedCall(call=call, method=method, options=options))
    return found


def find_schema_constructors(
    source: str | ast.Module, client_type: str = "HttpClient"
) -> list[SchemaConstructor]:
    """Client constructions carrying a ``schema_output`` entry or keyword."""
    tree = parse(source)
    found: list[SchemaConstructor] = []
    for call in _calls(tree):
        if callee_name(call) != client_type:
            continue
        options = next(
            (
                arg
                for arg in call.args
                if isinstance(arg, ast.Dict) and has_keys(arg, SCHEMA_OUTPUT)
            ),
            None,
        )
        kw = next((k for k in call.keywords if k.arg == SCHEMA_OUTPUT), None)
        if options is not None or kw is not None:
            found.append(SchemaConstructor(call=call, options=options, keyword=kw))
    return found


def bound_name(statement: ast.AST | None, value: ast.AST) -> str | None:
    """Variable name when ``statement`` assigns ``value`` to a single name."""
    if isinstance(statement, ast.Assign) and statement.value is value:
        if len(statement.targets) == 1 and isinstance(statement.targets[0], ast.Name):
            return statement.targets[0].id
    if isinstance(statement, ast.AnnAssign) and statement.value is value:
        if isinstance(statement.target, ast.Name):
            return statement.target.id
    return None


def find_client_variables(
    source: str | ast.Module, client_type: str = "HttpClient"
) -> list[ClientVariable]:
    """Client constructions bound to a variable."""
    tree = parse(source)
    parents = parent_map(tree)
    found: list[ClientVariable] = []
    for call in _calls(tree):
        if callee_name(call) != client_type:
            continue
        statement = parents.get(call)
        name = bound_name(statement, call)
        if name is not None and isinstance(statement, ast.stmt):
            found.append(ClientVariable(name=name, call=call, binding=statement))
    return found


def find_client_method_calls(
    source: str | ast.Module,
    client_type: str = "HttpClient",
    variables: Iterable[str] | None = None,
) -> list[ClientMethodCall]:
    """``<var>.<verb>(...)`` calls on variables bound to the client type."""
    tree = parse(source)
    if variables is None:
        names = {var.name for var in find_client_variables(tree, client_type)}
    else:
        names = set(variables)
    found: list[ClientMethodCall] = []
    for call in _calls(tree):
        func = call.func
        if (
            isinstance(func, ast.Attribute)
            and isinstance(func.value, ast.Name)
            and func.value.id in names
            and func.attr in HTTP_METHODS
        ):
            found.append(ClientMethodCall(call=call, variable=func.value.id, method=func.attr))
    return found


def parent_map(tree: ast.AST) -> dict[ast.AST, ast.AST]:
    parents: dict[ast.AST, ast.AST] = {}
    for node in ast.walk(tree):
        for child in ast.iter_child_nodes(node):
            parents[child] = node
    return parents


def enclosing_function_name(node: ast.AST, parents: dict[ast.AST, ast.AST]) -> str:
    """Name of the function that contains ``node``.

    A ``lambda`` bound to a variable takes the variable's name; any other
    ``lambda`` is ``"anonymous"``; module-level code is ``"global"``.
    """
    current = parents.get(node)
    while current is not None:
        if isinstance(current, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return current.name or ANONYMOUS_SCOPE
        if isinstance(current, ast.Lambda):
            return bound_name(parents.get(current), current) or ANONYMOUS_SCOPE
        current = parents.get(current)
    return GLOBAL_SCOPE
