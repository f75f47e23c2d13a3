"""Wallet Session Manager — owns the single active wallet connection and brokers signing.

Invariants:
    - At most one WalletSession per manager; replaced wholesale on reconnect,
      cleared on disconnect
    - connect() is idempotent: an existing session is returned without
      reopening the selector
    - current_address() and network() never raise — wallet failures read as
      "absent" / TESTNET
    - sign() maps every wallet failure to SignatureRejectedError
    - The network passphrase passed to sign() is NOT checked against the
      wallet's active network; the wallet itself must reject a mismatch

Design Decisions:
    - Polymorphic wallet responses (bare string, mapping, object) normalized by
      one adapter per call: extract_address, extract_signed_xdr, normalize_network
    - One manager can back several claims (see services/factory.py); the
      claim flow never issues concurrent sign requests
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from app.core.capability_protocols import WalletCapability
from app.core.domain_types import NETWORK_PASSPHRASES, Network
from app.core.errors import SignatureRejectedError, WalletUnavailableError

logger = logging.getLogger(__name__)

_BY_PASSPHRASE = {p: n for n, p in NETWORK_PASSPHRASES.items()}


@dataclass(frozen=True)
class WalletSession:
    address: str
    network: Network
    network_passphrase: str
    connected: bool = True


# --- Boundary adapters ---------------------------------------------------------

def _field(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if raw.get(name):
                return raw[name]
        elif getattr(raw, name, None):
            return getattr(raw, name)
    return None


def extract_address(raw: Any) -> str | None:
    """'G...' | {"address": 'G...'} | obj.address -> 'G...' or None."""
    value = raw if isinstance(raw, str) else _field(raw, "address")
    if not isinstance(value, str):
        return None
    return value.strip() or None


def extract_signed_xdr(raw: Any) -> str:
    """'AAAA...' | {"signedTxXdr": ...} | obj.signed_tx_xdr -> signed envelope."""
    value = raw if isinstance(raw, str) else _field(
        raw, "signedTxXdr", "signed_tx_xdr", "signedXdr",
    )
    if not isinstance(value, str) or not value:
        raise SignatureRejectedError("wallet returned no signed transaction")
    return value


def normalize_network(raw: Any) -> tuple[Network, str]:
    """Any wallet network answer -> (Network, passphrase). Defaults to TESTNET."""
    candidates = [raw] if isinstance(raw, str) else [
        _field(raw, "network"),
        _field(raw, "networkPassphrase", "network_passphrase"),
    ]
    for value in candidates:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value in _BY_PASSPHRASE:
            network = _BY_PASSPHRASE[value]
            return network, network.passphrase
        try:
            network = Network(value.upper())
        except ValueError:
            continue
        return network, network.passphrase
    return Network.TESTNET, Network.TESTNET.passphrase


# --- Manager ----------------------------------------------------------------------

class WalletSessionManager:
    """Connects, tracks and signs through one external wallet."""

    def __init__(self, wallet: WalletCapability, selection_wait_ms: int = 500):
        self.wallet = wallet
        self.selection_wait_ms = selection_wait_ms
        self._session: WalletSession | None = None

    @property
    def session(self) -> WalletSession | None:
        return self._session

    async def connect(self) -> WalletSession:
        """Return the live session, opening the wallet selector if needed."""
        if self._session is not None:
            return self._session

        address = await self.current_address()
        if not address:
            try:
                await self.wallet.open_selector()
            except Exception as e:
                raise WalletUnavailableError(f"Could not open the wallet selector: {e}")
            await asyncio.sleep(self.selection_wait_ms / 1000)
            address = await self.current_address()
            if not address:
                raise WalletUnavailableError("Could not connect a wallet.")

        network, passphrase = await self.network()
        self._session = WalletSession(
            address=address, network=network, network_passphrase=passphrase,
        )
        logger.info(
            "Wallet connected",
            extra={"address": address, "network": network.value},
        )
        return self._session

    async def current_address(self) -> str | None:
        try:
            return extract_address(await self.wallet.get_address())
        except Exception as e:
            logger.debug(f"Wallet address probe failed: {e}")
            return None

    async def network(self) -> tuple[Network, str]:
        try:
            raw = await self.wallet.get_network()
        except Exception as e:
            logger.debug(f"Wallet network probe failed: {e}")
            raw = None
        return normalize_network(raw)

    async def sign(
        self,
        xdr: str,
        *,
        network_passphrase: str | None = None,
        address: str | None = None,
    ) -> str:
        """Ask the wallet to sign xdr. Raises SignatureRejectedError."""
        session = self._session
        passphrase = network_passphrase or (
            session.network_passphrase if session else Network.TESTNET.passphrase
        )
        signer = address or (session.address if session else None)
        try:
            raw = await self.wallet.sign_transaction(
                xdr, network_passphrase=passphrase, address=signer,
            )
        except SignatureRejectedError:
            raise
        except Exception as e:
            logger.warning(f"Wallet declined to sign: {e}", extra={"address": signer})
            raise SignatureRejectedError(str(e) or type(e).__name__)
        return extract_signed_xdr(raw)

    def disconnect(self) -> None:
        if self._session is not None:
            logger.info("Wallet disconnected", extra={"address": self._session.address})
        self._session = None
