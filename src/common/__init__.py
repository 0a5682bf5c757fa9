"""
Common utilities for testnet-accounts.

Modules:
- htlc: Secrets, SHA-256 hashlocks, hex helpers, IDs and timelock schedules
- stellar: Horizon/Friendbot client and the Stellar keypair service
- ethereum: JSON-RPC client and the Ethereum account service
"""

__all__ = [
    "htlc",
    "stellar",
    "ethereum",
]
