"""Command-line utilities for the katalist package."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import httpx
import typer
import ujson as json
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from . import get_version
from .api import generate_schema_from_file, list_call_sites, load_config, transform_file
from .client import Katalist
from .config import KatalistConfig
from .errors import KatalistError
from .log import configure_logging
from .paths import transformed_path
from .probe import detect_caller_file
from .transformer import transform_source
from .writer import schema_path

app = typer.Typer(help="Schema capture and source rewriting for HTTP calls")
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="YAML/JSON settings file (defaults to katalist.yaml)."),
]


def _load(config_path: Path | None) -> KatalistConfig:
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    configure_logging(config.debug)
    return config


@app.command()
def version() -> None:
    """Print the installed package version."""
    typer.echo(get_version())


@app.command()
def transform(
    source: Annotated[Path, typer.Argument(help="Python file to rewrite.")],
    in_place: Annotated[
        bool, typer.Option(help="Overwrite the file instead of writing <name>.transformed.py.")
    ] = False,
    function: Annotated[
        list[str] | None,
        typer.Option("--function", "-f", help="Only correlate clients bound in these functions."),
    ] = None,
    correlate: Annotated[
        bool,
        typer.Option(
            help="Also type calls on clients built with schema_output whose module exists."
        ),
    ] = False,
    check: Annotated[
        bool, typer.Option(help="Exit with status 1 if the file would change; write nothing.")
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """Rewrite tagged HTTP calls to use their generated schema types."""
    config = _load(config_path)
    if not source.is_file():
        raise typer.BadParameter(f"{source} does not exist")
    if check:
        original = source.read_text(encoding="utf-8")
        try:
            updated = transform_source(original, source, config, function, correlate=correlate)
        except SyntaxError as exc:
            raise typer.BadParameter(f"{source}: {exc}") from exc
        if updated != original:
            console.print(f"[bold yellow]Would rewrite:[/] {source}")
            raise typer.Exit(code=1)
        console.print(f"[bold green]Up to date:[/] {source}")
        return
    try:
        transform_file(
            source,
            in_place=in_place,
            function_names=function,
            config=config,
            correlate=correlate,
        )
    except (KatalistError, SyntaxError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    target = source if in_place else transformed_path(source)
    console.print(f"[bold green]Written:[/] {target}")


@app.command()
def sites(
    source: Annotated[Path, typer.Argument(help="Python file to scan.")],
    config_path: ConfigOption = None,
) -> None:
    """List the call sites the transformer would act on."""
    config = _load(config_path)
    try:
        found = list_call_sites(source, config.client_type)
    except (KatalistError, SyntaxError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    table = Table(title=f"Call sites ({source})")
    table.add_column("Line", justify="right")
    table.add_column("Col", justify="right")
    table.add_column("Kind")
    table.add_column("Detail")
    for site in found:
        table.add_row(str(site.line), str(site.column), site.kind, site.detail)
    console.print(table)


@app.command()
def schema(
    input_path: Annotated[Path, typer.Argument(help="JSON document to infer a schema from.")],
    title: Annotated[str, typer.Option(help="Schema name, e.g. User.")],
    print_module: Annotated[
        bool, typer.Option("--print", help="Echo the generated module.")
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """Generate a schema module from a JSON file."""
    config = _load(config_path)
    try:
        _, path = generate_schema_from_file(input_path, title, config)
    except (FileNotFoundError, ValueError, KatalistError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    console.print(f"[bold green]Schema written:[/] {path}")
    if print_module:
        console.print(Syntax(path.read_text(encoding="utf-8"), "python"))


@app.command()
def fetch(
    url: Annotated[str, typer.Argument(help="URL to GET.")],
    interface_name: Annotated[str, typer.Option(help="Schema name for the response.")],
    source_file: Annotated[
        Path | None, typer.Option(help="Source file to rewrite after the schema is written.")
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """GET a URL and record a schema for its JSON response."""
    config = _load(config_path)
    options = {"generate_schema": True, "interface_name": interface_name}
    if source_file is not None:
        options["source_file"] = str(source_file)
    path = schema_path(interface_name, config)
    before = path.stat().st_mtime_ns if path.exists() else None
    try:
        with Katalist(config) as client:
            response = client.get(url, options)
    except httpx.HTTPError as exc:
        console.print(f"[bold red]Request failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[bold]Status:[/] {response.status_code}")
    if path.exists() and path.stat().st_mtime_ns != before:
        console.print(f"[bold green]Schema written:[/] {path}")
    else:
        console.print(f"[bold yellow]No schema written for[/] {interface_name}")
        raise typer.Exit(code=1)


@app.command()
def detect() -> None:
    """Print the caller file the probe resolves for this process."""
    found = detect_caller_file()
    typer.echo(found if found is not None else "<none>")


@app.command("config-schema")
def config_schema(
    out: Annotated[Path, typer.Argument(help="Where to write the JSON Schema.")],
) -> None:
    """Write the JSON Schema of the settings file."""
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(KatalistConfig.model_json_schema(), indent=2))
    console.print(f"[bold green]Config schema written:[/] {out}")


def main() -> None:
    """Entry point for `python -m katalist.cli`."""
    app()


if __name__ == "__main__":
    main()
