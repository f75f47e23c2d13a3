"""Requirements Payment Builder — X-PAYMENT header from an x402 paymentRequirements object.

Invariants:
    - Builds a single Payment operation: payer -> payTo for maxAmountRequired
    - maxAmountRequired is in atomic units (7 decimals on Stellar)
    - asset is "native", "CODE:ISSUER" or {"code", "issuer"}
    - The signed envelope is wrapped with the same codec as the raw-XDR path;
      header network is the requirements' network, else the signing passphrase

Design Decisions:
    - Implements RequirementsPaymentBuilder; the orchestrator only sees the protocol
"""

from decimal import Decimal
from typing import Any

from stellar_sdk import Account, Asset, TransactionBuilder

from app.core import payment_codec
from app.core.capability_protocols import LedgerGateway, SignFn
from app.core.errors import InvalidPaymentRequirementsError

STROOPS_PER_UNIT = Decimal(10) ** 7


def parse_asset(raw: Any) -> Asset:
    if raw in (None, "", "native", "XLM"):
        return Asset.native()
    if isinstance(raw, dict):
        code, issuer = raw.get("code"), raw.get("issuer")
    elif isinstance(raw, str) and ":" in raw:
        code, issuer = raw.split(":", 1)
    else:
        raise InvalidPaymentRequirementsError("asset")
    if not code or not issuer:
        raise InvalidPaymentRequirementsError("asset")
    return Asset(code, issuer)


def atomic_to_amount(raw: Any) -> str:
    """'1000000' -> '0.1000000'."""
    try:
        atomic = int(str(raw))
    except (TypeError, ValueError):
        raise InvalidPaymentRequirementsError("maxAmountRequired")
    if atomic <= 0:
        raise InvalidPaymentRequirementsError("maxAmountRequired")
    return f"{Decimal(atomic) / STROOPS_PER_UNIT:.7f}"


class LedgerRequirementsBuilder:
    """Builds and signs the payment that satisfies x402 requirements."""

    def __init__(self, ledger: LedgerGateway, base_fee: int = 100):
        self.ledger = ledger
        self.base_fee = base_fee

    async def build(
        self,
        requirements: dict[str, Any],
        *,
        address: str,
        network_passphrase: str,
        sign: SignFn,
    ) -> str:
        pay_to = requirements.get("payTo")
        if not pay_to:
            raise InvalidPaymentRequirementsError("payTo")
        amount = atomic_to_amount(requirements.get("maxAmountRequired"))
        asset = parse_asset(requirements.get("asset"))
        timeout = int(requirements.get("maxTimeoutSeconds") or 180)

        account = await self.ledger.load_account(address)
        envelope = (
            TransactionBuilder(
                source_account=Account(address, int(account["sequence"])),
                network_passphrase=network_passphrase,
                base_fee=self.base_fee,
            )
            .append_payment_op(destination=pay_to, asset=asset, amount=amount)
            .set_timeout(timeout)
            .build()
        )
        signed_xdr = await sign(envelope.to_xdr())
        network = requirements.get("network") or network_passphrase
        return payment_codec.encode(signed_xdr, network)
