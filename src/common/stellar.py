from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError
from stellar_sdk import Keypair

from state.file_store import FileStateStore
from state.models import StellarKeypair


logger = logging.getLogger(__name__)

DEFAULT_HORIZON_URL = "https://horizon-testnet.stellar.org"
DEFAULT_FRIENDBOT_URL = "https://friendbot.stellar.org"


class StellarError(RuntimeError):
    """Base error for the Stellar client."""


class StellarApiError(StellarError):
    """Horizon returned an unexpected status or payload."""


class StellarAccountNotFoundError(StellarError):
    """The account does not exist on the ledger (not funded yet)."""


class FundingStatus(str, Enum):
    FUNDED = "funded"
    ALREADY_FUNDED = "already_funded"
    FAILED = "failed"
    ERROR = "error"


class Balance(BaseModel):
    asset_type: str
    balance: str
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None


class KeypairResult(BaseModel):
    secret: str
    public: str
    is_new: bool = Field(..., description="True when generated in this run rather than loaded")

    def keypair(self) -> StellarKeypair:
        return StellarKeypair(secret=self.secret, public=self.public)


class StellarClient:
    """
    Minimal Horizon + Friendbot client for the Stellar testnet.

    Notes
    - Only the calls the init flow needs: load an account, fund via Friendbot,
      list balances.
    - No retries; transport failures surface as `StellarError`.
    """

    def __init__(
        self,
        *,
        horizon_url: str = DEFAULT_HORIZON_URL,
        friendbot_url: str = DEFAULT_FRIENDBOT_URL,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._horizon_url = horizon_url.rstrip("/")
        self._friendbot_url = friendbot_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "StellarClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def load_account(self, public_key: str) -> Dict[str, Any]:
        """
        Fetch the Horizon account record for `public_key`.

        Raises StellarAccountNotFoundError on 404, StellarApiError on other non-200.
        """
        resp = self._get(f"{self._horizon_url}/accounts/{public_key}")
        if resp.status_code == 404:
            raise StellarAccountNotFoundError(f"Account {public_key} not found")
        if resp.status_code != 200:
            raise StellarApiError(f"HTTP {resp.status_code} from Horizon: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as ex:
            raise StellarApiError(f"Non-JSON account response from Horizon: {resp.text[:200]}") from ex
        if not isinstance(data, dict):
            raise StellarApiError("Malformed account response from Horizon")
        return data

    def fund(self, public_key: str) -> bool:
        """Ask Friendbot to credit `public_key`; True on a 2xx response."""
        resp = self._get(f"{self._friendbot_url}/", params={"addr": public_key})
        return resp.is_success

    def balances(self, public_key: str) -> List[Balance]:
        account = self.load_account(public_key)
        raw = account.get("balances")
        if not isinstance(raw, list):
            raise StellarApiError("Account record has no balances list")
        try:
            return [Balance.model_validate(item) for item in raw]
        except ValidationError as ex:
            raise StellarApiError(f"Unexpected balance entry from Horizon: {ex}") from ex

    # --------------- Internal ---------------
    def _get(self, url: str, *, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            return self._client.get(url, params=params)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise StellarError(f"Request to {url} failed: {exc}") from exc


# --------------- Account service ---------------
def _generate_keypair() -> KeypairResult:
    pair = Keypair.random()
    return KeypairResult(secret=pair.secret, public=pair.public_key, is_new=True)


def create_or_get_keypair(store: FileStateStore) -> KeypairResult:
    """Reuse the stored keypair when both halves are set, else generate a new one."""
    try:
        kp = store.read_stellar_keypair()
    except OSError as ex:
        logger.warning("Could not read existing state, generating new keypair: %s", ex)
    else:
        if kp.secret and kp.public:
            logger.info("Using existing Stellar keypair from %s", store.path)
            return KeypairResult(secret=kp.secret, public=kp.public, is_new=False)
        logger.info("No valid Stellar keypair in state, generating new one")

    return _generate_keypair()


def update_keypair(store: FileStateStore, keypair: StellarKeypair) -> bool:
    """Persist `keypair` unless it is already stored. Returns True when written."""
    try:
        current = store.read_stellar_keypair()
    except OSError:
        current = None
    if current is not None and current == keypair:
        logger.info("Stellar keypair already saved in %s", store.path)
        return False

    logger.info("Saving Stellar keypair to %s", store.path)
    store.update_stellar_keypair(keypair)
    return True


def fund_account(client: StellarClient, public_key: str) -> FundingStatus:
    """Fund through Friendbot only when the account does not exist yet."""
    try:
        client.load_account(public_key)
    except StellarAccountNotFoundError:
        logger.info("Account %s not found, funding via Friendbot", public_key)
    except StellarError as ex:
        logger.error("Error checking account status for %s: %s", public_key, ex)
        return FundingStatus.ERROR
    else:
        logger.info("Account %s is already funded, skipping Friendbot", public_key)
        return FundingStatus.ALREADY_FUNDED

    try:
        ok = client.fund(public_key)
    except StellarError as ex:
        logger.error("Friendbot request failed for %s: %s", public_key, ex)
        return FundingStatus.ERROR
    if ok:
        logger.info("Account %s funded successfully", public_key)
        return FundingStatus.FUNDED
    logger.error("Friendbot refused to fund %s", public_key)
    return FundingStatus.FAILED


def check_balance(client: StellarClient, public_key: str) -> List[Balance]:
    balances = client.balances(public_key)
    for b in balances:
        code = "XLM" if b.asset_type == "native" else (b.asset_code or b.asset_type)
        logger.info("Stellar balance: %s %s", b.balance, code)
    return balances


__all__ = [
    "Balance",
    "FundingStatus",
    "KeypairResult",
    "StellarAccountNotFoundError",
    "StellarApiError",
    "StellarClient",
    "StellarError",
    "check_balance",
    "create_or_get_keypair",
    "fund_account",
    "update_keypair",
]
