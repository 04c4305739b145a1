"""Typed configuration for the client facade and the transform engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import ujson as json
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILE = Path("katalist.yaml")
DEBUG_ENV_VAR = "KATALIST_DEBUG"


class KatalistConfig(BaseModel):
    """Settings shared by the facade, the schema writer and the transformer."""

    debug: bool = False
    root: Path | None = None
    schema_dir: Path = Path("http_schemas")
    client_type: str = "HttpClient"
    type_suffix: str = "SchemaType"
    line_length: int = Field(default=88, gt=0)
    raise_for_status: bool = True
    base_url: str = ""
    timeout: float | None = Field(default=10.0, gt=0.0)
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @field_validator("client_type", "type_suffix")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @property
    def project_root(self) -> Path:
        """Directory schema paths and import paths are resolved against."""
        return (self.root or Path.cwd()).resolve()

    @property
    def schema_root(self) -> Path:
        """Absolute directory that holds generated schema modules."""
        if self.schema_dir.is_absolute():
            return self.schema_dir
        return self.project_root / self.schema_dir


def _env_debug() -> bool:
    return os.environ.get(DEBUG_ENV_VAR, "").strip().lower() in {"1", "true", "yes", "on"}


def load_config(path: str | Path | None = None) -> KatalistConfig:
    """Load settings from YAML or JSON, falling back to defaults.

    Without an explicit path, ``katalist.yaml`` in the working directory is
    used when it exists. ``KATALIST_DEBUG`` switches debug logging on.
    """
    data: dict[str, Any] = {}
    if path is None and DEFAULT_CONFIG_FILE.exists():
        path = DEFAULT_CONFIG_FILE
    if path is not None:
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        text = path.read_text()
        if path.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Invalid config {path}: expected a mapping")
    try:
        config = KatalistConfig(**data)
    except ValidationError as exc:
        raise ValueError(f"Invalid config {path}") from exc
    if _env_debug():
        config = config.model_copy(update={"debug": True})
    return config


def save_config(config: KatalistConfig, path: str | Path) -> None:
    """Persist settings as YAML or JSON based on file suffix."""
    path = Path(path)
    payload = config.model_dump(mode="json", exclude_none=True)
    if path.suffix in {".yaml", ".yml"}:
        path.write_text(yaml.safe_dump(payload, sort_keys=False))
    else:
        path.write_text(json.dumps(payload, indent=2))
