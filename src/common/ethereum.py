from __future__ import annotations

import itertools
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
from eth_account import Account
from eth_utils import from_wei
from pydantic import BaseModel, Field

from state.file_store import FileStateStore
from state.models import EthereumAccount

from .htlc import normalize_hex


logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"


class EthereumError(RuntimeError):
    """Base error for the Ethereum JSON-RPC client."""


class EthereumApiError(EthereumError):
    """Endpoint returned an unexpected HTTP status or payload."""


class EthereumRpcError(EthereumError):
    """JSON-RPC response carried an error object."""

    def __init__(self, code: Optional[int], message: str) -> None:
        self.code = code
        super().__init__(f"{message} (code={code})")


class AccountResult(BaseModel):
    private_key: str
    address: str
    is_new: bool = Field(..., description="True when generated in this run rather than loaded")

    def account(self) -> EthereumAccount:
        return EthereumAccount(private_key=self.private_key, address=self.address)


def format_ether(wei: int) -> str:
    """Render a wei amount as a decimal ether string ("0.0", "1.5", ...)."""
    text = format(Decimal(from_wei(wei, "ether")), "f")
    if "." not in text:
        return text + ".0"
    text = text.rstrip("0")
    return text + "0" if text.endswith(".") else text


class EthereumRpcClient:
    """
    Minimal JSON-RPC client over HTTP, enough for balance queries.

    Notes
    - Defaults to a public Sepolia endpoint.
    - No retries; transport failures surface as `EthereumError`.
    """

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not rpc_url:
            raise ValueError("rpc_url is required")
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)
        self._ids = itertools.count(1)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "EthereumRpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def get_balance(self, address: str, block: str = "latest") -> int:
        """Return the balance of `address` in wei."""
        result = self._call("eth_getBalance", [address, block])
        if not isinstance(result, str):
            raise EthereumApiError(f"Unexpected eth_getBalance result: {result!r}")
        try:
            return int(result, 16)
        except ValueError as ex:
            raise EthereumApiError(f"Balance is not a hex quantity: {result!r}") from ex

    # --------------- Internal ---------------
    def _call(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._client.post(self._rpc_url, json=body)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise EthereumError(f"Request to {self._rpc_url} failed: {exc}") from exc

        if resp.status_code != 200:
            raise EthereumApiError(f"HTTP {resp.status_code} from RPC endpoint: {resp.text[:200]}")
        try:
            data: Dict[str, Any] = resp.json()
        except ValueError as ex:
            raise EthereumApiError(f"Non-JSON response from RPC endpoint: {resp.text[:200]}") from ex
        if not isinstance(data, dict):
            raise EthereumApiError("Malformed JSON-RPC response")
        err = data.get("error")
        if err:
            if isinstance(err, dict):
                raise EthereumRpcError(err.get("code"), str(err.get("message") or "JSON-RPC error"))
            raise EthereumRpcError(None, str(err))
        if "result" not in data:
            raise EthereumApiError("JSON-RPC response has neither result nor error")
        return data["result"]


# --------------- Account service ---------------
def _generate_account() -> AccountResult:
    acct = Account.create()
    return AccountResult(private_key=normalize_hex(acct.key.hex()), address=acct.address, is_new=True)


def get_or_create_account(store: FileStateStore) -> AccountResult:
    """Reuse the stored account when both fields are set, else generate a new one."""
    try:
        eth = store.read_ethereum_account()
    except OSError as ex:
        logger.warning("Could not read existing state, generating new account: %s", ex)
    else:
        if eth.private_key and eth.address:
            logger.info("Using existing Ethereum account from %s", store.path)
            return AccountResult(private_key=eth.private_key, address=eth.address, is_new=False)
        logger.info("No valid Ethereum account in state, generating new one")

    return _generate_account()


def update_account(store: FileStateStore, account: EthereumAccount) -> bool:
    """Persist `account` unless it is already stored. Returns True when written."""
    try:
        current = store.read_ethereum_account()
    except OSError:
        current = None
    if current is not None and current == account:
        logger.info("Ethereum account already saved in %s", store.path)
        return False

    logger.info("Saving Ethereum account to %s", store.path)
    store.update_ethereum_account(account)
    return True


def check_balance(client: EthereumRpcClient, address: str) -> str:
    balance = format_ether(client.get_balance(address))
    logger.info("Ethereum balance of %s: %s ETH", address, balance)
    return balance


__all__ = [
    "AccountResult",
    "EthereumApiError",
    "EthereumError",
    "EthereumRpcClient",
    "EthereumRpcError",
    "check_balance",
    "format_ether",
    "get_or_create_account",
    "update_account",
]
