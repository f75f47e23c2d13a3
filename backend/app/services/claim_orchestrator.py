"""Order Claim Orchestrator — state machine for paying one order via fiat or crypto.

Invariants:
    - States: LOADING -> READY -> {FIAT_PENDING, CRYPTO_PENDING} -> {SUBMITTED, FAILED}
    - Crypto steps run strictly in order: wallet session -> trustline ->
      challenge source -> sign -> encode -> POST claim
    - Any step failure moves to FAILED with the original error kept in
      last_error and re-raised; nothing is retried automatically
    - A busy flag rejects a second claim while one is in flight
      (ClaimInProgressError, no second POST); it is the only mutual exclusion
    - The order is read-only: status is never changed locally
    - An issued sign/submit call is never cancelled by the orchestrator

Design Decisions:
    - One orchestrator per order link; WalletSessionManager is shared
    - Clients passed as owned_clients are closed by aclose(); injected
      fakes and shared clients are left alone
    - submit_crypto_claim(x_payment=...) re-posts an already built header
      without re-signing; the order service deduplicates by order id + header
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from functools import partial

from pydantic import ValidationError

from app.core import payment_codec
from app.core.capability_protocols import (
    AsyncClosable,
    OrderService,
    RequirementsPaymentBuilder,
)
from app.core.challenge_source import Requirements, resolve_challenge
from app.core.domain_types import ClaimState, PaymentType
from app.core.errors import (
    ClaimInProgressError,
    ErrorContext,
    InvalidStageTransitionError,
    OrderFetchFailedError,
    PasaTandaError,
    TrustlineMissingError,
)
from app.schemas.order import ClaimResult, Order, PaymentProofFiat
from app.services.trustline_guard import SettlementAsset, TrustlineGuard, TrustlineStatus
from app.services.wallet_session import WalletSession, WalletSessionManager

logger = logging.getLogger(__name__)

FIAT_CLAIM_SENT = "Claim sent, pending verification."
CRYPTO_CLAIM_SENT = "Payment proof sent, pending settlement."


class OrderClaimOrchestrator:
    """Drives one order from fetch to a submitted (or failed) claim."""

    def __init__(
        self,
        order_id: str,
        orders: OrderService,
        wallet: WalletSessionManager,
        trustlines: TrustlineGuard,
        asset: SettlementAsset,
        requirements_builder: RequirementsPaymentBuilder | None = None,
        owned_clients: Sequence[AsyncClosable] = (),
    ):
        self.order_id = order_id
        self.orders = orders
        self.wallet = wallet
        self.trustlines = trustlines
        self.asset = asset
        self.requirements_builder = requirements_builder
        self.owned_clients = tuple(owned_clients)

        self.state = ClaimState.LOADING
        self.order: Order | None = None
        self.trustline: TrustlineStatus | None = None
        self.last_error: Exception | None = None
        self.last_result: ClaimResult | None = None
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    # --- LOADING -> READY -------------------------------------------------------

    async def load(self) -> Order:
        """Fetch the order. Raises OrderNotFoundError / OrderFetchFailedError."""
        self.state = ClaimState.LOADING
        try:
            data = await self.orders.get_order(self.order_id)
            order = Order.model_validate(data)
        except ValidationError as e:
            self.last_error = OrderFetchFailedError(
                f"Order service returned an invalid order: {e.error_count()} error(s)",
                ErrorContext(order_id=self.order_id),
            )
            raise self.last_error
        except PasaTandaError as e:
            self.last_error = e
            raise

        self.order = order
        self.last_error = None
        self.state = ClaimState.READY
        logger.info(
            f"Order loaded ({order.status.value})", extra={"order_id": order.id},
        )
        return order

    # --- Claim guard ------------------------------------------------------------------

    @asynccontextmanager
    async def _claiming(self, pending: ClaimState) -> AsyncIterator[Order]:
        if self._busy:
            raise ClaimInProgressError(self.order_id)
        if self.order is None or self.state == ClaimState.LOADING:
            raise InvalidStageTransitionError(
                "Order must be loaded before submitting a claim.",
                ErrorContext(order_id=self.order_id),
            )
        self._busy = True
        self.state = pending
        self.last_error = None
        try:
            yield self.order
        except Exception as e:
            self.state = ClaimState.FAILED
            self.last_error = e
            logger.warning(
                f"Claim failed: {e}",
                extra={
                    "order_id": self.order_id,
                    "error_code": getattr(e, "code", type(e).__name__),
                },
            )
            raise
        finally:
            self._busy = False

    # --- READY -> FIAT_PENDING -> SUBMITTED ---------------------------------

    async def submit_fiat_claim(self, proof: PaymentProofFiat) -> ClaimResult:
        """POST the bank-transfer proof. Settlement happens server-side."""
        async with self._claiming(ClaimState.FIAT_PENDING) as order:
            body = {
                "paymentType": PaymentType.FIAT.value,
                "proofMetadata": proof.to_metadata(order.amount_fiat),
            }
            response = await self.orders.submit_claim(order.id, body)
            return self._submitted(PaymentType.FIAT, FIAT_CLAIM_SENT, response)

    # --- READY -> CRYPTO_PENDING -> SUBMITTED -----------------------------

    async def submit_crypto_claim(self, x_payment: str | None = None) -> ClaimResult:
        """Wallet -> trustline -> challenge -> sign -> encode -> POST."""
        async with self._claiming(ClaimState.CRYPTO_PENDING) as order:
            if x_payment is None:
                session = await self._ready_wallet()
                await self._ready_trustline(session)
                x_payment = await self._build_x_payment(order, session)
            body = {"paymentType": PaymentType.CRYPTO.value, "xPayment": x_payment}
            response = await self.orders.submit_claim(order.id, body)
            return self._submitted(
                PaymentType.CRYPTO, CRYPTO_CLAIM_SENT, response, x_payment,
            )

    async def _ready_wallet(self) -> WalletSession:
        return self.wallet.session or await self.wallet.connect()

    async def _ready_trustline(self, session: WalletSession) -> TrustlineStatus:
        status = await self.trustlines.check(session.address, self.asset)
        if not status.exists:
            logger.info(
                "Trustline absent, establishing",
                extra={"order_id": self.order_id, "address": session.address},
            )
            await self.trustlines.establish(session.address, self.asset)
            status = await self.trustlines.check(session.address, self.asset)
            if not status.exists:
                raise TrustlineMissingError(self.asset.code, session.address)
        self.trustline = status
        return status

    async def _build_x_payment(self, order: Order, session: WalletSession) -> str:
        source = resolve_challenge(
            order.id,
            order.payment_requirements,
            order.xdr_challenge,
            accept_requirements=self.requirements_builder is not None,
        )
        sign = partial(
            self.wallet.sign,
            network_passphrase=session.network_passphrase,
            address=session.address,
        )
        if isinstance(source, Requirements):
            return await self.requirements_builder.build(
                source.requirements,
                address=session.address,
                network_passphrase=session.network_passphrase,
                sign=sign,
            )
        signed_xdr = await sign(source.xdr)
        return payment_codec.encode(signed_xdr, session.network_passphrase)

    def _submitted(
        self,
        payment_type: PaymentType,
        default_message: str,
        response: dict,
        x_payment: str | None = None,
    ) -> ClaimResult:
        self.state = ClaimState.SUBMITTED
        server_status = response.get("status")
        self.last_result = ClaimResult(
            order_id=self.order_id,
            payment_type=payment_type,
            state=ClaimState.SUBMITTED,
            message=default_message,
            server_message=response.get("message"),
            server_status=str(server_status) if server_status is not None else None,
            x_payment=x_payment,
        )
        logger.info(
            "Claim submitted",
            extra={"order_id": self.order_id, "payment_type": payment_type.value},
        )
        return self.last_result

    async def aclose(self) -> None:
        """Release the HTTP clients the factory built for this orchestrator."""
        for client in self.owned_clients:
            await client.aclose()
        self.owned_clients = ()
