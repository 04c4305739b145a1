import asyncio
from pathlib import Path

import httpx
import pytest
import ujson as json

from katalist import client as client_module
from katalist.client import AsyncKatalist, Katalist, TypedResponse, katalist
from katalist.config import KatalistConfig

USER = {"id": 1, "name": "Ada", "email": None}


def _transport(payload, status: int = 200, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def test_tagged_get_writes_schema_and_rewrites_source(
    config: KatalistConfig, tagged_file: Path
) -> None:
    with Katalist(config, transport=_transport(USER)) as api:
        response = api.get(
            "https://api.test/users/1",
            {"generate_schema": True, "interface_name": "User", "source_file": str(tagged_file)},
        )
    assert isinstance(response, TypedResponse)
    assert response.json() == USER
    assert response.status == response.status_code == 200
    schema_file = config.schema_root / "User.py"
    assert "class UserSchemaType(TypedDict):" in schema_file.read_text()
    assert (config.schema_root / "__init__.py").exists()
    rewritten = tagged_file.read_text()
    assert "response_type=UserSchemaType" in rewritten
    assert "from http_schemas.User import UserSchemaType" in rewritten
    assert "generate_schema" not in rewritten


def test_plain_request_touches_nothing(config: KatalistConfig) -> None:
    api = katalist(config, transport=_transport(USER))
    response = api.get("https://api.test/users/1", response_type=dict)
    api.close()
    assert response.json()["name"] == "Ada"
    assert response.url == httpx.URL("https://api.test/users/1")
    assert not config.schema_root.exists()


def test_headers_and_json_body_are_sent(config: KatalistConfig) -> None:
    seen: list[httpx.Request] = []
    with Katalist(config, transport=_transport({"ok": True}, 201, seen)) as api:
        api.post("https://api.test/users", {"name": "Ada"}, {"headers": {"X-Trace": "abc"}})
    assert seen[0].method == "POST"
    assert seen[0].headers["X-Trace"] == "abc"
    assert json.loads(seen[0].content) == {"name": "Ada"}


def test_input_schema_from_request_body(config: KatalistConfig) -> None:
    with Katalist(config, transport=_transport({"id": 9})) as api:
        api.put(
            "https://api.test/users/9",
            {"name": "Ada", "tags": ["x"]},
            {
                "generate_schema": True,
                "interface_name": "Saved",
                "generate_input_schema": True,
                "input_interface_name": "UserUpdate",
            },
        )
    assert (config.schema_root / "Saved.py").exists()
    update = (config.schema_root / "UserUpdate.py").read_text()
    assert "tags: list[str]" in update


def test_unsupported_payload_is_swallowed(config: KatalistConfig) -> None:
    with Katalist(config, transport=_transport([1, 2, 3])) as api:
        response = api.get(
            "https://api.test/numbers", {"generate_schema": True, "interface_name": "Numbers"}
        )
    assert response.json() == [1, 2, 3]
    assert not (config.schema_root / "Numbers.py").exists()


def test_source_is_left_alone_when_no_schema_is_written(
    config: KatalistConfig, tagged_file: Path
) -> None:
    original = tagged_file.read_text()
    options = {"generate_schema": True, "interface_name": "User", "source_file": str(tagged_file)}
    with Katalist(config, transport=_transport([1, 2, 3])) as api:
        api.get("https://api.test/numbers", options)
    assert tagged_file.read_text() == original

    config = KatalistConfig(root=config.root, raise_for_status=False)
    with Katalist(config, transport=_transport({"error": "nope"}, 404)) as api:
        api.get("https://api.test/users/1", options)
    assert tagged_file.read_text() == original
    assert not (config.schema_root / "User.py").exists()


def test_only_calls_with_a_schema_are_rewritten(config: KatalistConfig, tmp_path: Path) -> None:
    source = tmp_path / "two.py"
    source.write_text(
        "def both(client):\n"
        '    client.get("/u", {"generate_schema": True, "interface_name": "User"})\n'
        '    client.get("/p", {"generate_schema": True, "interface_name": "Post"})\n'
    )
    with Katalist(config, transport=_transport(USER)) as api:
        api.get(
            "https://api.test/u",
            {"generate_schema": True, "interface_name": "User", "source_file": str(source)},
        )
    rewritten = source.read_text()
    assert "response_type=UserSchemaType" in rewritten
    assert '{"generate_schema": True, "interface_name": "Post"}' in rewritten
    assert "PostSchemaType" not in rewritten


def test_transform_failures_are_swallowed(config: KatalistConfig, tmp_path: Path) -> None:
    broken = tmp_path / "broken.py"
    broken.write_text("def broken(:\n")
    options = {"generate_schema": True, "interface_name": "User"}
    with Katalist(config, transport=_transport(USER)) as api:
        api.get("https://api.test/u", {**options, "source_file": str(broken)})
        api.get("https://api.test/u", {**options, "source_file": str(tmp_path / "gone.py")})
    assert broken.read_text() == "def broken(:\n"
    assert (config.schema_root / "User.py").exists()


def test_error_status_raises_after_hooks(config: KatalistConfig) -> None:
    with Katalist(config, transport=_transport({"error": "nope"}, 404)) as api:
        with pytest.raises(httpx.HTTPStatusError):
            api.delete(
                "https://api.test/users/1", {"generate_schema": True, "interface_name": "Gone"}
            )
    assert not (config.schema_root / "Gone.py").exists()


def test_error_status_can_be_returned(tmp_path: Path) -> None:
    config = KatalistConfig(root=tmp_path, raise_for_status=False)
    with Katalist(config, transport=_transport({"error": "nope"}, 500)) as api:
        response = api.get("https://api.test/x")
    assert response.status_code == 500
    assert not response.ok


def test_detected_caller_is_rewritten(
    config: KatalistConfig, tagged_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(client_module, "detect_caller_file", lambda: str(tagged_file))
    with Katalist(config, transport=_transport(USER)) as api:
        api.get("https://api.test/u", {"generate_schema": True, "interface_name": "User"})
    assert "response_type=UserSchemaType" in tagged_file.read_text()


def test_async_client(config: KatalistConfig, tagged_file: Path) -> None:
    async def run() -> TypedResponse:
        async with AsyncKatalist(config, transport=_transport(USER)) as api:
            return await api.get(
                "https://api.test/users/1",
                {
                    "generate_schema": True,
                    "interface_name": "User",
                    "source_file": str(tagged_file),
                },
            )

    response = asyncio.run(run())
    assert response.json() == USER
    assert (config.schema_root / "User.py").exists()
    assert "response_type=UserSchemaType" in tagged_file.read_text()


def test_async_error_status(config: KatalistConfig) -> None:
    async def run() -> None:
        async with AsyncKatalist(config, transport=_transport({}, 503)) as api:
            await api.post("https://api.test/jobs", {"a": 1})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(run())
