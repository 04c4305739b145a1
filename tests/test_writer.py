from pathlib import Path

import pytest

from katalist.config import KatalistConfig
from katalist.errors import IOWriteError
from katalist.synthesizer import synthesize
from katalist.writer import ensure_package, render_schema_module, schema_path, write_schema


def _namespace(text: str) -> dict:
    namespace: dict = {"__name__": "generated_schema"}
    exec(compile(text, "<schema>", "exec"), namespace)
    return namespace


def test_object_module_declares_typed_dict_and_adapter() -> None:
    text = render_schema_module(synthesize({"id": 1, "name": "Ada"}, "User"), "User")
    assert "class UserSchemaType(TypedDict):" in text
    assert "    id: int" in text
    assert "    name: str" in text
    assert "UserSchema = pydantic.TypeAdapter(UserSchemaType)" in text
    assert "NotRequired" not in text


def test_nullable_keys_are_not_required() -> None:
    text = render_schema_module(synthesize({"id": 1, "bio": None}, "Profile"), "Profile")
    assert "bio: NotRequired[None]" in text
    assert "from typing_extensions import NotRequired, TypedDict" in text


def test_nested_objects_and_arrays_get_named_types() -> None:
    payload = {"owner": {"login": "x"}, "labels": [{"name": "bug"}]}
    text = render_schema_module(synthesize(payload, "Issue"), "Issue")
    assert "class IssueOwner(TypedDict):" in text
    assert "class IssueLabelsItem(TypedDict):" in text
    assert "labels: list[IssueLabelsItem]" in text
    assert text.index("class IssueOwner") < text.index("class IssueSchemaType")


def test_array_root_is_an_alias() -> None:
    text = render_schema_module(synthesize([{"id": 1}], "Users"), "Users")
    assert "class UsersItem(TypedDict):" in text
    assert "UsersSchemaType = list[UsersItem]" in text


def test_non_identifier_keys_use_functional_syntax() -> None:
    text = render_schema_module(synthesize({"first-name": "a", "class": 1}, "Odd"), "Odd")
    assert "OddSchemaType = TypedDict('OddSchemaType', {'first-name': str, 'class': int})" in text


def test_invalid_title_is_rejected() -> None:
    with pytest.raises(ValueError):
        render_schema_module(synthesize({"a": 1}, "not valid"), "not valid")


def test_written_module_validates_payload(tmp_path: Path) -> None:
    payload = {"id": 7, "email": "a@b.c", "tags": [{"name": "x"}], "deleted": None}
    path = write_schema(synthesize(payload, "Account"), "Account", tmp_path / "Account.py")
    namespace = _namespace(path.read_text())
    adapter = namespace["AccountSchema"]
    assert adapter.validate_python(payload)["id"] == 7
    assert adapter.validate_python({k: v for k, v in payload.items() if k != "deleted"})
    assert set(namespace["__all__"]) == {"AccountSchema", "AccountSchemaType"}


def test_write_replaces_previous_content(tmp_path: Path) -> None:
    path = tmp_path / "schemas" / "Thing.py"
    write_schema(synthesize({"a": 1}, "Thing"), "Thing", path)
    write_schema(synthesize({"b": "x"}, "Thing"), "Thing", path)
    text = path.read_text()
    assert "b: str" in text
    assert "a: int" not in text


def test_write_failure_raises_io_write_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    with pytest.raises(IOWriteError):
        write_schema(synthesize({"a": 1}, "Thing"), "Thing", blocker / "Thing.py")


def test_schema_path_uses_configured_directory(tmp_path: Path) -> None:
    config = KatalistConfig(root=tmp_path, schema_dir=Path("generated/types"))
    assert schema_path("User", config) == tmp_path.resolve() / "generated" / "types" / "User.py"


def test_ensure_package_creates_marker_once(tmp_path: Path) -> None:
    marker = ensure_package(tmp_path)
    marker.write_text("# kept\n")
    ensure_package(tmp_path)
    assert marker.read_text() == "# kept\n"
