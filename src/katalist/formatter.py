"""Code formatter adapter used for generated schemas and rewritten sources."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import black


class Formatter(Protocol):
    def format(self, text: str, path: str | Path | None = None) -> str: ...


class BlackFormatter:
    """Formats Python source with black's library API."""

    def __init__(self, line_length: int = 88) -> None:
        self.line_length = line_length

    def format(self, text: str, path: str | Path | None = None) -> str:
        is_stub = path is not None and Path(path).suffix == ".pyi"
        mode = black.Mode(line_length=self.line_length, is_pyi=is_stub)
        return black.format_str(text, mode=mode)


def default_formatter(line_length: int = 88) -> Formatter:
    return BlackFormatter(line_length=line_length)
