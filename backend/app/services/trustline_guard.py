"""Trustline Guard — detects and establishes the payer's trustline to the settlement asset.

Invariants:
    - check() never raises: an absent asset OR any ledger read error yields
      exists=False (the caller then offers to establish one)
    - establish() builds ChangeTrust with the maximal limit, signs through
      WalletSessionManager, submits to Horizon; every failure becomes
      TrustlineSubmissionFailedError carrying the underlying reason
    - establish() requires a connected WalletSession (programming error otherwise)
    - TrustlineStatus is derived on demand and never cached

Design Decisions:
    - stellar_sdk TransactionBuilder for XDR; Horizon REST via LedgerGateway
    - Base fee 100 stroops, 30s validity window
"""

import logging
from dataclasses import dataclass

from stellar_sdk import Account, Asset, TransactionBuilder

from app.core.capability_protocols import LedgerGateway
from app.core.domain_types import MAX_TRUST_LIMIT
from app.core.errors import (
    ErrorContext,
    PasaTandaError,
    TrustlineSubmissionFailedError,
)
from app.services.wallet_session import WalletSessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementAsset:
    code: str
    issuer: str


@dataclass(frozen=True)
class TrustlineStatus:
    exists: bool
    asset_code: str
    asset_issuer: str
    balance: str | None = None
    limit: str | None = None


@dataclass(frozen=True)
class TrustlineEstablished:
    tx_hash: str
    asset_code: str
    asset_issuer: str


def find_trustline(balances: list[dict], asset: SettlementAsset) -> dict | None:
    """The balance entry for asset, ignoring the native XLM line."""
    for balance in balances:
        if balance.get("asset_type") == "native":
            continue
        if (
            balance.get("asset_code") == asset.code
            and balance.get("asset_issuer") == asset.issuer
        ):
            return balance
    return None


class TrustlineGuard:
    """Trustline check/establish for one settlement asset."""

    def __init__(
        self,
        ledger: LedgerGateway,
        wallet: WalletSessionManager,
        base_fee: int = 100,
        timeout_seconds: int = 30,
    ):
        self.ledger = ledger
        self.wallet = wallet
        self.base_fee = base_fee
        self.timeout_seconds = timeout_seconds

    async def check(self, address: str, asset: SettlementAsset) -> TrustlineStatus:
        absent = TrustlineStatus(
            exists=False, asset_code=asset.code, asset_issuer=asset.issuer,
        )
        try:
            account = await self.ledger.load_account(address)
        except Exception as e:
            logger.warning(
                f"Trustline check failed, treating as absent: {e}",
                extra={"address": address},
            )
            return absent

        line = find_trustline(account.get("balances") or [], asset)
        if line is None or "balance" not in line or "limit" not in line:
            return absent
        return TrustlineStatus(
            exists=True,
            asset_code=asset.code,
            asset_issuer=asset.issuer,
            balance=line["balance"],
            limit=line["limit"],
        )

    async def establish(
        self, address: str, asset: SettlementAsset,
    ) -> TrustlineEstablished:
        session = self.wallet.session
        assert session is not None, "establish() requires a connected wallet session"
        passphrase = session.network_passphrase

        try:
            account = await self.ledger.load_account(address)
            envelope = (
                TransactionBuilder(
                    source_account=Account(address, int(account["sequence"])),
                    network_passphrase=passphrase,
                    base_fee=self.base_fee,
                )
                .append_change_trust_op(
                    asset=Asset(asset.code, asset.issuer), limit=MAX_TRUST_LIMIT,
                )
                .set_timeout(self.timeout_seconds)
                .build()
            )
            signed_xdr = await self.wallet.sign(
                envelope.to_xdr(), network_passphrase=passphrase, address=address,
            )
            result = await self.ledger.submit_transaction(signed_xdr)
        except PasaTandaError as e:
            raise TrustlineSubmissionFailedError(
                e.message, ErrorContext(debug_info={"code": e.code}),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise TrustlineSubmissionFailedError(str(e) or type(e).__name__)

        tx_hash = result.get("hash", "")
        logger.info(
            "Trustline established",
            extra={"address": address, "tx_hash": tx_hash},
        )
        return TrustlineEstablished(
            tx_hash=tx_hash, asset_code=asset.code, asset_issuer=asset.issuer,
        )
