from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from common.stellar import (
    DEFAULT_FRIENDBOT_URL,
    DEFAULT_HORIZON_URL,
    StellarClient,
    StellarError,
    check_balance,
    create_or_get_keypair,
    fund_account,
    update_keypair,
)
from state.file_store import FileStateStore, StateStoreError


logger = logging.getLogger(__name__)

ENV_HORIZON_URL = "STELLAR_HORIZON_URL"
ENV_FRIENDBOT_URL = "STELLAR_FRIENDBOT_URL"
ENV_LOG_LEVEL = "LOG_LEVEL"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def run_once() -> Dict[str, Any]:
    store = FileStateStore.from_env()

    # 1. Reuse the stored keypair or generate one
    keypair = create_or_get_keypair(store)
    out: Dict[str, Any] = {
        "ok": True,
        "public": keypair.public,
        "is_new": keypair.is_new,
        "saved": False,
        "funding": None,
        "balances": [],
    }

    # 2. Only a freshly generated keypair needs saving
    if keypair.is_new:
        try:
            out["saved"] = update_keypair(store, keypair.keypair())
        except StateStoreError as ex:
            logger.error("Could not save keypair to state: %s", ex)

    with StellarClient(
        horizon_url=_getenv(ENV_HORIZON_URL, DEFAULT_HORIZON_URL),
        friendbot_url=_getenv(ENV_FRIENDBOT_URL, DEFAULT_FRIENDBOT_URL),
    ) as client:
        # 3. Friendbot, skipped when the account already exists
        out["funding"] = fund_account(client, keypair.public).value

        # 4. Balances
        try:
            balances = check_balance(client, keypair.public)
        except StellarError as ex:
            logger.error("Could not load balances for %s: %s", keypair.public, ex)
            out["ok"] = False
            out["error"] = str(ex)
        else:
            out["balances"] = [b.model_dump(exclude_none=True) for b in balances]

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
