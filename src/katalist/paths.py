"""Import path and output path helpers for the transform engine."""

from __future__ import annotations

import os
from pathlib import Path

TRANSFORMED_MARKER = ".transformed"


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True


def package_top(directory: Path) -> Path | None:
    """Outermost directory of the package chain containing ``directory``."""
    top = None
    current = directory
    while (current / "__init__.py").exists():
        top = current
        if current.parent == current:
            break
        current = current.parent
    return top


def schema_package(source_file: str | Path, schema_root: Path, project_root: Path) -> str:
    """Dotted path of the schema directory as imported from ``source_file``.

    Inside a package that also contains the schema directory the path is
    relative (``..http_schemas``); otherwise it is absolute from the project
    root (``http_schemas``), or just the directory name as a last resort.
    """
    source_dir = Path(source_file).resolve().parent
    schema_root = schema_root.resolve()
    project_root = project_root.resolve()
    top = package_top(source_dir)
    if top is not None and _is_within(schema_root, top):
        common = Path(os.path.commonpath([source_dir, schema_root]))
        ups = len(source_dir.relative_to(common).parts)
        rest = schema_root.relative_to(common).parts
        return "." * (ups + 1) + ".".join(rest)
    if _is_within(schema_root, project_root) and schema_root != project_root:
        return ".".join(schema_root.relative_to(project_root).parts)
    return schema_root.name


def join_module(package: str, name: str) -> str:
    if not package or package.endswith("."):
        return f"{package}{name}"
    return f"{package}.{name}"


def transformed_path(path: str | Path) -> Path:
    """Sibling path with ``.transformed`` inserted before the suffix."""
    path = Path(path)
    return path.with_name(f"{path.stem}{TRANSFORMED_MARKER}{path.suffix}")
