"""Render schema descriptors as importable pydantic modules."""

from __future__ import annotations

import keyword
import re
from pathlib import Path

from .config import KatalistConfig
from .errors import IOWriteError
from .formatter import Formatter, default_formatter
from .log import logger
from .synthesizer import SchemaDescriptor

_SCALARS = {
    "string": "str",
    "integer": "int",
    "number": "float",
    "boolean": "bool",
    "null": "None",
}
_WORD_RE = re.compile(r"[A-Za-z0-9]+")

MODULE_DOC = '''"""{title} schema generated by katalist from an observed HTTP payload.

Regenerated on every observation of the payload; manual edits are overwritten.
"""
'''


def _pascal(key: str) -> str:
    words = _WORD_RE.findall(key)
    return "".join(word[:1].upper() + word[1:] for word in words) or "Field"


def _is_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


def _union(members: list[str]) -> str:
    unique: list[str] = []
    for member in members:
        if member not in unique:
            unique.append(member)
    if "None" in unique:
        unique.remove("None")
        unique.append("None")
    return " | ".join(unique) if unique else "Any"


class _ModuleRenderer:
    def __init__(self, title: str, type_suffix: str) -> None:
        self.title = title
        self.type_name = f"{title}{type_suffix}"
        self.blocks: list[str] = []
        self.used: set[str] = {self.type_name, f"{title}Schema"}
        self.uses_any = False
        self.uses_typeddict = False
        self.uses_not_required = False

    def _claim(self, name: str) -> str:
        candidate = name
        counter = 2
        while candidate in self.used:
            candidate = f"{name}{counter}"
            counter += 1
        self.used.add(candidate)
        return candidate

    def annotation(self, node: SchemaDescriptor, hint: str) -> str:
        if node.kind == "union":
            return _union(
                [self.annotation(variant, hint) for variant in node.variants]
            )
        if node.kind == "scalar":
            if not node.types:
                self.uses_any = True
                return "Any"
            return _union([_SCALARS.get(t, "Any") for t in node.types])
        if node.kind == "array":
            if node.items is None:
                self.uses_any = True
                return "list[Any]"
            return f"list[{self.annotation(node.items, f'{hint}Item')}]"
        if not node.properties:
            self.uses_any = True
            return "dict[str, Any]"
        return self.typed_dict(node, self._claim(hint), hint)

    def typed_dict(self, node: SchemaDescriptor, name: str, base: str) -> str:
        fields: list[tuple[str, str]] = []
        for key, prop in node.properties.items():
            annotation = self.annotation(prop, f"{base}{_pascal(key)}")
            if key not in node.required:
                self.uses_not_required = True
                annotation = f"NotRequired[{annotation}]"
            fields.append((key, annotation))
        self.uses_typeddict = True
        if all(_is_identifier(key) for key, _ in fields):
            body = "\n".join(f"    {key}: {annotation}" for key, annotation in fields)
            self.blocks.append(f"class {name}(TypedDict):\n{body}\n")
        else:
            entries = ", ".join(f"{key!r}: {annotation}" for key, annotation in fields)
            self.blocks.append(f"{name} = TypedDict({name!r}, {{{entries}}})\n")
        return name

    def render(self, descriptor: SchemaDescriptor) -> str:
        if descriptor.kind == "object" and descriptor.properties:
            self.typed_dict(descriptor, self.type_name, self.title)
            alias = None
        else:
            alias = self.annotation(descriptor, self.title)

        imports = []
        if self.uses_any:
            imports.append("from typing import Any\n")
        imports.append("import pydantic\n")
        extras = []
        if self.uses_not_required:
            extras.append("NotRequired")
        if self.uses_typeddict:
            extras.append("TypedDict")
        if extras:
            imports.append(f"from typing_extensions import {', '.join(extras)}\n")

        parts = [MODULE_DOC.format(title=self.title), "\n".join(imports)]
        parts.extend(self.blocks)
        if alias is not None:
            parts.append(f"{self.type_name} = {alias}\n")
        parts.append(f"{self.title}Schema = pydantic.TypeAdapter({self.type_name})\n")
        parts.append(f"__all__ = [{self.title + 'Schema'!r}, {self.type_name!r}]\n")
        return "\n\n".join(part.rstrip("\n") + "\n" for part in parts)


def render_schema_module(
    descriptor: SchemaDescriptor, title: str, type_suffix: str = "SchemaType"
) -> str:
    """Return the unformatted module source for ``descriptor``."""
    if not _is_identifier(title):
        raise ValueError(f"Schema title {title!r} is not a valid Python identifier")
    return _ModuleRenderer(title, type_suffix).render(descriptor)


def schema_path(title: str, config: KatalistConfig) -> Path:
    """Location of the generated module for ``title``."""
    return config.schema_root / f"{title}.py"


def write_schema(
    descriptor: SchemaDescriptor,
    title: str,
    path: str | Path,
    formatter: Formatter | None = None,
    type_suffix: str = "SchemaType",
) -> Path:
    """Format and write the schema module, replacing any previous content."""
    path = Path(path)
    formatter = formatter or default_formatter()
    text = formatter.format(render_schema_module(descriptor, title, type_suffix), path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise IOWriteError(f"Could not write schema {title} to {path}: {exc}") from exc
    logger.debug("Wrote schema %s to %s", title, path)
    return path


def ensure_package(directory: str | Path) -> Path:
    """Create ``__init__.py`` in the schema directory so schemas import as a package."""
    marker = Path(directory) / "__init__.py"
    if marker.exists():
        return marker
    try:
        marker.write_text('"""Schemas generated by katalist."""\n', encoding="utf-8")
    except OSError as exc:
        raise IOWriteError(f"Could not create {marker}: {exc}") from exc
    return marker
