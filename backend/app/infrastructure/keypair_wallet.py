"""Keypair Wallet — WalletCapability backed by a Stellar secret key.

Invariants:
    - Without a secret the wallet reports no address (nothing to select)
    - sign_transaction refuses to sign for an address other than its own
    - Return shapes mirror common browser-wallet kits ({"address": ...},
      {"signedTxXdr": ...}) so the session manager's adapters are exercised

Design Decisions:
    - Used for server-side automation and tests; browser/extension wallets
      implement the same four operations through their own bridge
"""

from stellar_sdk import Keypair, TransactionEnvelope

from app.core.domain_types import Network


class KeypairWallet:
    """Single-key wallet implementing the WalletCapability protocol."""

    def __init__(self, secret: str | None = None, network: Network = Network.TESTNET):
        self._keypair = Keypair.from_secret(secret) if secret else None
        self._network = network

    @property
    def public_key(self) -> str | None:
        return self._keypair.public_key if self._keypair else None

    async def get_address(self) -> dict:
        return {"address": self.public_key}

    async def open_selector(self) -> None:
        return None

    async def sign_transaction(
        self, xdr: str, *, network_passphrase: str, address: str | None,
    ) -> dict:
        if self._keypair is None:
            raise PermissionError("no key loaded")
        if address and address != self._keypair.public_key:
            raise PermissionError(f"cannot sign for {address}")
        envelope = TransactionEnvelope.from_xdr(xdr, network_passphrase)
        envelope.sign(self._keypair)
        return {"signedTxXdr": envelope.to_xdr(), "signerAddress": self.public_key}

    async def get_network(self) -> dict:
        return {
            "network": self._network.value,
            "networkPassphrase": self._network.passphrase,
        }
