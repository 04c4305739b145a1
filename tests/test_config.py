from pathlib import Path

import pytest

from katalist.config import KatalistConfig, load_config, save_config


def test_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KATALIST_DEBUG", raising=False)
    config = load_config()
    assert config.schema_dir == Path("http_schemas")
    assert config.client_type == "HttpClient"
    assert config.type_suffix == "SchemaType"
    assert config.raise_for_status is True
    assert config.schema_root == tmp_path.resolve() / "http_schemas"


def test_yaml_and_json_round_trip(tmp_path: Path) -> None:
    config = KatalistConfig(root=tmp_path, schema_dir=Path("types"), headers={"X-Env": "dev"})
    for name in ("katalist.yaml", "katalist.json"):
        path = tmp_path / name
        save_config(config, path)
        loaded = load_config(path)
        assert loaded.schema_dir == Path("types")
        assert loaded.headers == {"X-Env": "dev"}
        assert loaded.root == tmp_path


def test_default_file_in_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "katalist.yaml").write_text("client_type: ApiClient\nline_length: 100\n")
    monkeypatch.chdir(tmp_path)
    config = load_config()
    assert config.client_type == "ApiClient"
    assert config.line_length == 100


def test_missing_explicit_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize("body", ["line_length: 0\n", "client_type: '  '\n", "- a\n- b\n"])
def test_invalid_files(tmp_path: Path, body: str) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(body)
    with pytest.raises(ValueError):
        load_config(path)


def test_debug_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KATALIST_DEBUG", "1")
    assert load_config().debug is True


def test_unknown_keys_are_ignored() -> None:
    assert KatalistConfig(**{"schema_dir": "x", "legacy": True}).schema_dir == Path("x")
