from pathlib import Path

import pytest

from katalist import client as client_module
from katalist.config import KatalistConfig

TAGGED_SOURCE = '''\
"""Users service."""

import requests_like


def load_user(client):
    response = client.get(
        "https://api.example.com/users/1",
        {"generate_schema": True, "interface_name": "User", "headers": {"X-Trace": "1"}},
    )
    return response.json()
'''

EMBEDDED_SOURCE = '''\
from clients import HttpClient


def fetch_orders():
    api = HttpClient({"schema_output": {"schema_name": "Order"}, "force_file_transform": True})
    return api.get("/orders")
'''


@pytest.fixture(autouse=True)
def no_caller_probe(monkeypatch: pytest.MonkeyPatch) -> None:
    # The facade must never rewrite a test module it finds on the stack.
    monkeypatch.setattr(client_module, "detect_caller_file", lambda: None)


@pytest.fixture()
def config(tmp_path: Path) -> KatalistConfig:
    return KatalistConfig(root=tmp_path)


@pytest.fixture()
def tagged_file(tmp_path: Path) -> Path:
    path = tmp_path / "service.py"
    path.write_text(TAGGED_SOURCE)
    return path


@pytest.fixture()
def embedded_file(tmp_path: Path) -> Path:
    path = tmp_path / "orders.py"
    path.write_text(EMBEDDED_SOURCE)
    return path
