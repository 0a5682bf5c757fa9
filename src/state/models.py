from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StellarKeypair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    secret: str = Field(default="", description="Stellar secret seed (S...)")
    public: str = Field(default="", description="Stellar public key (G...)")


class StellarSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keypair: StellarKeypair = Field(default_factory=StellarKeypair)


class EthereumAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    private_key: str = Field(default="", alias="privateKey", description="0x-prefixed private key")
    address: str = Field(default="", description="Checksummed 0x address")


class CredentialState(BaseModel):
    """
    Locally held credential material for both test networks.

    Fields
    - ethereum: `{privateKey, address}` of the Sepolia account.
    - stellar: `{keypair: {secret, public}}` of the testnet account.

    Notes
    - Every string defaults to "", so a document missing a section or a key
      still reads back structurally complete.
    - The JSON shape uses the camelCase keys (`privateKey`); dump with
      `by_alias=True` when persisting.
    """

    model_config = ConfigDict(populate_by_name=True)

    ethereum: EthereumAccount = Field(default_factory=EthereumAccount)
    stellar: StellarSection = Field(default_factory=StellarSection)

    @classmethod
    def empty(cls) -> "CredentialState":
        """Convenience constructor for a fresh, all-empty state."""
        return cls()
