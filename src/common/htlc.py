from __future__ import annotations

import hashlib
import re
import secrets
import time
from typing import Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


HEX_PREFIX = "0x"
SECRET_BYTES = 32

DEFAULT_DURATION = 3600  # 1 hour
DEFAULT_MAKER_TIMEOUT = 1800  # 30 minutes
DEFAULT_TAKER_TIMEOUT = 1800  # 30 minutes

HtlcKind = Literal["ethereum", "stellar"]
HTLC_KINDS = ("ethereum", "stellar")

_HEX_RE = re.compile(r"[0-9a-fA-F]*")
_SECRET_RE = re.compile(r"[0-9a-fA-F]{%d}" % (SECRET_BYTES * 2))


class HexValidationError(ValueError):
    """Input is not hex of the expected shape."""


class SecretPair(BaseModel):
    secret: str = Field(..., description="0x-prefixed 32-byte secret (preimage)")
    hashlock: str = Field(..., description="0x-prefixed SHA-256 of the raw secret bytes")


class TimelockSchedule(BaseModel):
    """
    Deadlines for an HTLC-style exchange, all in Unix seconds.

    Notes
    - Derived from `created_at` and the configured offsets only; no ordering
      between the deadlines is enforced. A `taker_timeout` larger than
      `duration` yields a claim deadline before `created_at`.
    """

    model_config = ConfigDict(populate_by_name=True)

    created_at: int = Field(..., alias="createdAt")
    duration: int
    claim_deadline: int = Field(..., alias="claimDeadline")
    refund_deadline: int = Field(..., alias="refundDeadline")
    maker_exclusive_until: int = Field(..., alias="makerExclusiveUntil")
    taker_exclusive_until: int = Field(..., alias="takerExclusiveUntil")


# --------------- Hex helpers ---------------
def strip_hex_prefix(value: str) -> str:
    return value[len(HEX_PREFIX):] if value.startswith(HEX_PREFIX) else value


def normalize_hex(value: str) -> str:
    return value if value.startswith(HEX_PREFIX) else HEX_PREFIX + value


def is_valid_hex(value: str, expected_length: Optional[int] = None) -> bool:
    """
    Check that `value` (optionally 0x-prefixed) contains only hex digits.

    `expected_length` is in bytes, so the digit count must be exactly twice it.
    """
    clean = strip_hex_prefix(value)
    if not _HEX_RE.fullmatch(clean):
        return False
    if expected_length is not None:
        return len(clean) == expected_length * 2
    return True


# --------------- Secrets and hashlocks ---------------
def generate_secret() -> str:
    """Return a fresh 32-byte secret from the OS CSPRNG as 0x-prefixed hex."""
    return HEX_PREFIX + secrets.token_bytes(SECRET_BYTES).hex()


def create_hashlock(secret: str) -> str:
    """
    SHA-256 commitment to `secret`.

    - Accepts the secret with or without the 0x prefix.
    - Raises HexValidationError unless it is exactly 64 hex characters.
    Returns the lowercase digest with the 0x prefix.
    """
    clean = strip_hex_prefix(secret)
    if not _SECRET_RE.fullmatch(clean):
        raise HexValidationError(
            f"Secret must be exactly {SECRET_BYTES} bytes ({SECRET_BYTES * 2} hex characters)"
        )
    digest = hashlib.sha256(bytes.fromhex(clean)).hexdigest()
    return HEX_PREFIX + digest


def verify_secret(secret: str, hashlock: str) -> bool:
    """True when `secret` hashes to `hashlock`; malformed input yields False."""
    try:
        computed = create_hashlock(secret)
        expected = normalize_hex(hashlock)
    except (HexValidationError, AttributeError, TypeError):
        return False
    return computed.lower() == expected.lower()


def generate_secret_pair() -> SecretPair:
    secret = generate_secret()
    return SecretPair(secret=secret, hashlock=create_hashlock(secret))


# --------------- Identifiers ---------------
def _now_millis() -> int:
    return time.time_ns() // 1_000_000


def generate_order_id() -> str:
    # 4 random bytes per millisecond bucket; unique enough for a local tool
    return f"order_{_now_millis()}_{secrets.token_hex(4)}"


def generate_htlc_id(kind: HtlcKind) -> str:
    if kind not in HTLC_KINDS:
        raise ValueError(f"Unknown HTLC kind: {kind!r} (expected one of {', '.join(HTLC_KINDS)})")
    return f"{kind}_htlc_{_now_millis()}_{secrets.token_hex(4)}"


# --------------- Timelocks ---------------
def calculate_timelocks(
    duration: int = DEFAULT_DURATION,
    maker_timeout: int = DEFAULT_MAKER_TIMEOUT,
    taker_timeout: int = DEFAULT_TAKER_TIMEOUT,
    *,
    clock: Callable[[], float] = time.time,
) -> TimelockSchedule:
    """
    Compute an HTLC deadline schedule starting now.

    - claim / taker-exclusive window ends at `created_at + duration - taker_timeout`.
    - refund becomes possible at `created_at + duration`.
    - maker-exclusive window ends at `created_at + maker_timeout`.

    Inputs are not validated; callers supply consistent offsets.
    """
    now = int(clock())
    return TimelockSchedule(
        created_at=now,
        duration=duration,
        claim_deadline=now + duration - taker_timeout,
        refund_deadline=now + duration,
        maker_exclusive_until=now + maker_timeout,
        taker_exclusive_until=now + duration - taker_timeout,
    )


__all__ = [
    "HexValidationError",
    "SecretPair",
    "TimelockSchedule",
    "calculate_timelocks",
    "create_hashlock",
    "generate_htlc_id",
    "generate_order_id",
    "generate_secret",
    "generate_secret_pair",
    "is_valid_hex",
    "normalize_hex",
    "strip_hex_prefix",
    "verify_secret",
]
