"""Best-effort detection of the user file that called into katalist.

The stack is read as text, innermost frame first, and the first frame that
belongs neither to katalist, an installed dependency nor the standard library
wins. A miss returns ``None``; callers treat that as "skip the rewrite".
"""

from __future__ import annotations

import re
import sysconfig
import traceback
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

PACKAGE_NAME = "katalist"
PACKAGE_DIR = Path(__file__).resolve().parent

_PATH_RE = re.compile(
    r"((?:file://)?(?:[A-Za-z]:)?[\\/][^\s\"'<>()]*?\.(?:py|pyw))(?=[\s\"'<>():,]|$)"
)
INSTALL_DIRS = ("site-packages", "dist-packages")
KNOWN_DEPENDENCIES = frozenset(
    {
        "httpx",
        "httpcore",
        "anyio",
        "genson",
        "black",
        "pydantic",
        "typer",
        "click",
        "_pytest",
        "pluggy",
    }
)


@dataclass(frozen=True)
class StackFrame:
    path: str
    is_library: bool


def normalize_path(raw: str) -> str:
    path = raw[len("file://") :] if raw.startswith("file://") else raw
    return path.replace("\\", "/")


def _stdlib_dirs() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    keys = ("stdlib", "platstdlib")
    dirs = {normalize_path(paths[key]).rstrip("/") for key in keys if key in paths}
    return tuple(sorted(dirs))


def _within(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip("/") + "/")


def is_library_path(path: str, package_dir: str | None = None) -> bool:
    """True for katalist's own source, installed copy or build output."""
    package_dir = package_dir or normalize_path(str(PACKAGE_DIR))
    if _within(path, package_dir):
        return True
    for marker in (*(f"/{d}/{PACKAGE_NAME}/" for d in INSTALL_DIRS), f"/build/lib/{PACKAGE_NAME}/"):
        if marker in path:
            return True
    return False


def is_third_party_path(path: str) -> bool:
    if any(f"/{d}/" in path for d in INSTALL_DIRS):
        return True
    return any(_within(path, stdlib) for stdlib in _stdlib_dirs())


def is_known_dependency(path: str) -> bool:
    return any(part in KNOWN_DEPENDENCIES for part in path.split("/"))


def parse_frame(line: str, package_dir: str | None = None) -> StackFrame | None:
    """Extract and classify the first source path mentioned in ``line``."""
    match = _PATH_RE.search(line)
    if match is None:
        return None
    path = normalize_path(match.group(1))
    return StackFrame(path=path, is_library=is_library_path(path, package_dir))


def capture_stack() -> list[str]:
    """Current stack as ``File "...", line N, in name`` lines, innermost first."""
    frames = traceback.extract_stack()
    return [
        f'  File "{frame.filename}", line {frame.lineno}, in {frame.name}'
        for frame in reversed(frames)
    ]


def detect_caller_file(
    stack: Iterable[str] | str | None = None, package_dir: str | None = None
) -> str | None:
    """Path of the first user frame in ``stack`` (captured when omitted)."""
    try:
        if stack is None:
            lines: Iterable[str] = capture_stack()
        elif isinstance(stack, str):
            lines = stack.splitlines()
        else:
            lines = stack
        for line in lines:
            frame = parse_frame(line, package_dir)
            if frame is None or frame.is_library:
                continue
            if is_third_party_path(frame.path) or is_known_dependency(frame.path):
                continue
            return frame.path
    except (OSError, ValueError, RuntimeError):
        return None
    return None
