from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

from common import ethereum
from common.ethereum import (
    AccountResult,
    EthereumApiError,
    EthereumError,
    EthereumRpcClient,
    EthereumRpcError,
    format_ether,
)
from state.file_store import FileStateStore
from state.models import EthereumAccount, StellarKeypair


ADDRESS = "0x" + "ab" * 20


def _client(handler) -> EthereumRpcClient:
    http = httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)
    return EthereumRpcClient("https://rpc.test", client=http)


def test_get_balance_sends_json_rpc_request():
    bodies: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": bodies[-1]["id"], "result": "0x14d1120d7b160000"})

    with _client(handler) as client:
        wei = client.get_balance(ADDRESS)

    assert wei == 1_500_000_000_000_000_000
    assert bodies[0]["method"] == "eth_getBalance"
    assert bodies[0]["params"] == [ADDRESS, "latest"]
    assert bodies[0]["jsonrpc"] == "2.0"


def test_rpc_error_object_raises():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid argument"}})

    with _client(handler) as client:
        with pytest.raises(EthereumRpcError) as ei:
            client.get_balance("nope")
    assert ei.value.code == -32602


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, text="<html>gateway</html>"),
        httpx.Response(200, json={"jsonrpc": "2.0", "id": 1}),
        httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0xzz"}),
    ],
)
def test_unexpected_responses_raise_api_error(response: httpx.Response):
    def handler(_: httpx.Request) -> httpx.Response:
        return response

    with _client(handler) as client:
        with pytest.raises(EthereumApiError):
            client.get_balance(ADDRESS)


def test_transport_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with _client(handler) as client:
        with pytest.raises(EthereumError):
            client.get_balance(ADDRESS)


@pytest.mark.parametrize(
    "wei,expected",
    [
        (0, "0.0"),
        (10**18, "1.0"),
        (1_500_000_000_000_000_000, "1.5"),
        (1, "0.000000000000000001"),
        (123 * 10**18, "123.0"),
    ],
)
def test_format_ether(wei: int, expected: str):
    assert format_ether(wei) == expected


def test_check_balance_formats_ether():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x0"})

    with _client(handler) as client:
        assert ethereum.check_balance(client, ADDRESS) == "0.0"


# --------------- account service ---------------
def _fake_account(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        ethereum,
        "_generate_account",
        lambda: AccountResult(private_key="0x" + "11" * 32, address="0xGENERATED", is_new=True),
    )


def test_get_or_create_account_reuses_stored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _fake_account(monkeypatch)
    store = FileStateStore(tmp_path / "state.json")
    store.update_ethereum_account(EthereumAccount(private_key="0xkey", address="0xaddr"))

    result = ethereum.get_or_create_account(store)

    assert result == AccountResult(private_key="0xkey", address="0xaddr", is_new=False)


def test_get_or_create_account_generates_when_empty(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _fake_account(monkeypatch)
    store = FileStateStore(tmp_path / "state.json")
    store.update_stellar_keypair(StellarKeypair(secret="S", public="G"))

    result = ethereum.get_or_create_account(store)

    assert result.is_new is True
    assert result.address == "0xGENERATED"


def test_generate_account_uses_eth_account():
    result = ethereum._generate_account()
    assert result.is_new is True
    assert re.fullmatch(r"0x[0-9a-f]{64}", result.private_key)
    assert re.fullmatch(r"0x[0-9a-fA-F]{40}", result.address)


def test_update_account_writes_once_and_keeps_stellar(tmp_path: Path):
    path = tmp_path / "state.json"
    store = FileStateStore(path)
    store.update_stellar_keypair(StellarKeypair(secret="S", public="G"))
    account = EthereumAccount(private_key="0xk", address="0xa")

    assert ethereum.update_account(store, account) is True
    assert ethereum.update_account(store, account) is False

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["ethereum"] == {"privateKey": "0xk", "address": "0xa"}
    assert raw["stellar"] == {"keypair": {"secret": "S", "public": "G"}}


def test_stored_account_survives_broken_stellar_section(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _fake_account(monkeypatch)
    path = tmp_path / "state.json"
    path.write_text(
        json.dumps({"stellar": "oops", "ethereum": {"privateKey": "0xkey", "address": "0xaddr"}}),
        encoding="utf-8",
    )
    store = FileStateStore(path)

    result = ethereum.get_or_create_account(store)

    assert result == AccountResult(private_key="0xkey", address="0xaddr", is_new=False)
    assert ethereum.update_account(store, result.account()) is False
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["ethereum"] == {"privateKey": "0xkey", "address": "0xaddr"}
