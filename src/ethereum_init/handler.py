from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from common.ethereum import (
    DEFAULT_RPC_URL,
    EthereumError,
    EthereumRpcClient,
    check_balance,
    get_or_create_account,
    update_account,
)
from state.file_store import FileStateStore, StateStoreError


logger = logging.getLogger(__name__)

ENV_RPC_URL = "ETHEREUM_RPC_URL"
ENV_LOG_LEVEL = "LOG_LEVEL"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def run_once() -> Dict[str, Any]:
    store = FileStateStore.from_env()

    account = get_or_create_account(store)
    out: Dict[str, Any] = {
        "ok": True,
        "address": account.address,
        "is_new": account.is_new,
        "saved": False,
        "balance": None,
    }

    if account.is_new:
        try:
            out["saved"] = update_account(store, account.account())
        except StateStoreError as ex:
            logger.error("Could not save account to state: %s", ex)

    # No faucet API for Sepolia; report the balance only
    with EthereumRpcClient(_getenv(ENV_RPC_URL, DEFAULT_RPC_URL)) as client:
        try:
            out["balance"] = check_balance(client, account.address)
        except EthereumError as ex:
            logger.error("Could not query balance for %s: %s", account.address, ex)
            out["ok"] = False
            out["error"] = str(ex)

    return out


def main() -> int:
    level = _getenv(ENV_LOG_LEVEL, "INFO")
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    out = run_once()
    print(json.dumps(out, indent=2))
    return 0 if out.get("ok") else 1


if __name__ == "__main__":
    sys.exit(main())
