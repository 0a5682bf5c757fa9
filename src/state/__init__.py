"""
Credential state models and the local JSON file store.

The persisted document holds the generated Ethereum account and Stellar
keypair; see `models.CredentialState` for the shape.
"""

from .models import CredentialState, EthereumAccount, StellarKeypair
from .file_store import FileStateStore, MalformedStateError, StateStoreError, StateWriteError

__all__ = [
    "CredentialState",
    "EthereumAccount",
    "StellarKeypair",
    "FileStateStore",
    "MalformedStateError",
    "StateStoreError",
    "StateWriteError",
]
