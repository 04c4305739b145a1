from pathlib import Path

import httpx
import pytest
import ujson as json
from typer.testing import CliRunner

from katalist import cli as cli_module
from katalist.cli import app
from katalist.client import Katalist


@pytest.fixture()
def runner(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KATALIST_DEBUG", raising=False)
    return CliRunner()


def test_cli_version(runner: CliRunner) -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0, result.output
    assert result.output.strip()


def test_cli_transform_writes_sibling(runner: CliRunner, tagged_file: Path) -> None:
    original = tagged_file.read_text()
    result = runner.invoke(app, ["transform", str(tagged_file)])
    assert result.exit_code == 0, result.output
    sibling = tagged_file.with_name("service.transformed.py")
    assert "response_type=UserSchemaType" in sibling.read_text()
    assert tagged_file.read_text() == original


def test_cli_transform_check_then_in_place(runner: CliRunner, tagged_file: Path) -> None:
    result = runner.invoke(app, ["transform", str(tagged_file), "--check"])
    assert result.exit_code == 1, result.output

    result = runner.invoke(app, ["transform", str(tagged_file), "--in-place"])
    assert result.exit_code == 0, result.output
    assert "response_type=UserSchemaType" in tagged_file.read_text()

    result = runner.invoke(app, ["transform", str(tagged_file), "--check"])
    assert result.exit_code == 0, result.output


def test_cli_transform_function_filter(
    runner: CliRunner, tmp_path: Path, embedded_file: Path
) -> None:
    schemas = tmp_path / "http_schemas"
    schemas.mkdir()
    (schemas / "OrderOutput.py").write_text("OrderOutputSchemaType = dict\n")
    sibling = embedded_file.with_name("orders.transformed.py")

    args = ["transform", str(embedded_file), "--correlate"]
    result = runner.invoke(app, [*args, "--function", "elsewhere"])
    assert result.exit_code == 0, result.output
    assert "HttpClient({})" in sibling.read_text()
    assert "response_type" not in sibling.read_text()

    result = runner.invoke(app, [*args, "-f", "fetch_orders"])
    assert result.exit_code == 0, result.output
    assert 'api.get("/orders", response_type=OrderOutputSchemaType)' in sibling.read_text()


def test_cli_transform_missing_file(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(app, ["transform", str(tmp_path / "absent.py")])
    assert result.exit_code != 0


def test_cli_sites(runner: CliRunner, tagged_file: Path) -> None:
    result = runner.invoke(app, ["sites", str(tagged_file)])
    assert result.exit_code == 0, result.output
    assert "tagged" in result.output


def test_cli_schema_from_json(runner: CliRunner, tmp_path: Path) -> None:
    payload = tmp_path / "user.json"
    payload.write_text(json.dumps({"id": 1, "login": "ada"}))
    result = runner.invoke(app, ["schema", str(payload), "--title", "User", "--print"])
    assert result.exit_code == 0, result.output
    assert "UserSchemaType" in (tmp_path / "http_schemas" / "User.py").read_text()


def test_cli_schema_rejects_scalar_arrays(runner: CliRunner, tmp_path: Path) -> None:
    payload = tmp_path / "numbers.json"
    payload.write_text("[1, 2, 3]")
    result = runner.invoke(app, ["schema", str(payload), "--title", "Numbers"])
    assert result.exit_code != 0
    assert not (tmp_path / "http_schemas" / "Numbers.py").exists()


def test_cli_fetch(runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id": 1}))
    monkeypatch.setattr(
        cli_module, "Katalist", lambda config: Katalist(config, transport=transport)
    )
    result = runner.invoke(app, ["fetch", "https://api.test/me", "--interface-name", "Me"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "http_schemas" / "Me.py").exists()


def test_cli_fetch_http_error(
    runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, json={}))
    monkeypatch.setattr(
        cli_module, "Katalist", lambda config: Katalist(config, transport=transport)
    )
    result = runner.invoke(app, ["fetch", "https://api.test/me", "--interface-name", "Me"])
    assert result.exit_code == 1
    assert not (tmp_path / "http_schemas" / "Me.py").exists()


def test_cli_detect(runner: CliRunner) -> None:
    result = runner.invoke(app, ["detect"])
    assert result.exit_code == 0, result.output
    assert "test_cli.py" in result.output


def test_cli_config_schema(runner: CliRunner, tmp_path: Path) -> None:
    out = tmp_path / "schema" / "katalist.schema.json"
    result = runner.invoke(app, ["config-schema", str(out)])
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text())
    assert "schema_dir" in data["properties"]


def test_cli_bad_config(runner: CliRunner, tmp_path: Path, tagged_file: Path) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("line_length: -1\n")
    result = runner.invoke(app, ["transform", str(tagged_file), "--config", str(bad)])
    assert result.exit_code != 0
