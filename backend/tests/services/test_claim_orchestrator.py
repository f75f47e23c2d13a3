"""Order Claim Orchestrator — fiat and crypto claim flows end to end over fakes.

Invariants:
    - load() moves LOADING -> READY; fetch failures keep the typed error
    - Fiat claim POSTs proofMetadata and reaches SUBMITTED
    - Crypto claim: wallet -> trustline -> challenge -> sign -> encode -> POST
    - Any failure -> FAILED with last_error set, and no claim POST after it
    - A second claim while one is in flight raises ClaimInProgressError
"""

import asyncio
from decimal import Decimal

import pytest
from stellar_sdk import Keypair, TransactionEnvelope

from app.core import payment_codec
from app.core.domain_types import ClaimState, Network, PaymentType
from app.core.errors import (
    ClaimInProgressError,
    ClaimRejectedByServerError,
    InvalidStageTransitionError,
    NoChallengeAvailableError,
    OrderFetchFailedError,
    OrderNotFoundError,
    SignatureRejectedError,
    TrustlineSubmissionFailedError,
    WalletUnavailableError,
)
from app.schemas.order import PaymentProofFiat
from app.services.claim_orchestrator import (
    CRYPTO_CLAIM_SENT,
    FIAT_CLAIM_SENT,
    OrderClaimOrchestrator,
)
from app.services.requirements_payment import LedgerRequirementsBuilder
from app.services.trustline_guard import SettlementAsset, TrustlineGuard
from app.services.wallet_session import WalletSessionManager
from tests.services.fakes import (
    FakeLedger,
    FakeOrderService,
    FakeWallet,
    trustline_balance,
)

ISSUER = Keypair.random().public_key
USDC = SettlementAsset(code="USDC", issuer=ISSUER)
PASSPHRASE = Network.TESTNET.passphrase


def _challenge_xdr(payer: str) -> str:
    """Unsigned payment envelope the order service would issue."""
    from stellar_sdk import Account, Asset, TransactionBuilder

    return (
        TransactionBuilder(
            source_account=Account(payer, 1), network_passphrase=PASSPHRASE, base_fee=100,
        )
        .append_payment_op(
            destination=Keypair.random().public_key,
            asset=Asset("USDC", ISSUER),
            amount="21.55",
        )
        .set_timeout(300)
        .build()
        .to_xdr()
    )


class _Harness:
    def __init__(self, order: dict | None = None, with_builder: bool = False):
        self.wallet = FakeWallet()
        self.manager = WalletSessionManager(self.wallet, selection_wait_ms=0)
        self.ledger = FakeLedger()
        self.orders = FakeOrderService(order)
        self.orchestrator = OrderClaimOrchestrator(
            "ord-1",
            orders=self.orders,
            wallet=self.manager,
            trustlines=TrustlineGuard(self.ledger, self.manager),
            asset=USDC,
            requirements_builder=LedgerRequirementsBuilder(self.ledger) if with_builder else None,
        )

    @property
    def address(self) -> str:
        return self.wallet.keypair.public_key


def _order(**overrides) -> dict:
    data = {"id": "ord-1", "status": "PENDING", "amountFiat": 150, "amountUsdc": "21.55"}
    data.update(overrides)
    return data


@pytest.fixture
def harness():
    return _Harness(_order())


# ─── load ──────────────────────────────────────────────────────

async def test_load_moves_to_ready(harness):
    order = await harness.orchestrator.load()
    assert order.amount_fiat == Decimal("150")
    assert harness.orchestrator.state == ClaimState.READY


async def test_load_not_found_keeps_typed_error(harness):
    harness.orders.raise_on_get = OrderNotFoundError("ord-1")
    with pytest.raises(OrderNotFoundError):
        await harness.orchestrator.load()
    assert isinstance(harness.orchestrator.last_error, OrderNotFoundError)
    assert harness.orchestrator.state == ClaimState.LOADING


async def test_load_invalid_payload_is_fetch_failure():
    h = _Harness({"id": "ord-1", "status": "???"})
    with pytest.raises(OrderFetchFailedError):
        await h.orchestrator.load()


async def test_claim_before_load_is_rejected(harness):
    with pytest.raises(InvalidStageTransitionError):
        await harness.orchestrator.submit_fiat_claim(PaymentProofFiat(bank="BNB", reference="R"))
    assert harness.orders.claims == []


# ─── Fiat ──────────────────────────────────────────────────────

async def test_fiat_claim_with_default_amount(harness):
    await harness.orchestrator.load()

    result = await harness.orchestrator.submit_fiat_claim(
        PaymentProofFiat(bank="BNB", reference="REF-77"),
    )

    assert harness.orders.claims == [("ord-1", {
        "paymentType": "fiat",
        "proofMetadata": {
            "bank": "BNB", "amount": 150.0, "reference": "REF-77", "screenshotUrl": "",
        },
    })]
    assert result.state == ClaimState.SUBMITTED
    assert result.payment_type == PaymentType.FIAT
    assert result.message == FIAT_CLAIM_SENT
    assert harness.orchestrator.state == ClaimState.SUBMITTED


async def test_fiat_claim_server_rejection_fails(harness):
    await harness.orchestrator.load()
    harness.orders.raise_on_claim = ClaimRejectedByServerError("Order already claimed", 409)

    with pytest.raises(ClaimRejectedByServerError, match="already claimed"):
        await harness.orchestrator.submit_fiat_claim(PaymentProofFiat(bank="BNB", reference="R"))

    assert harness.orchestrator.state == ClaimState.FAILED
    assert harness.orchestrator.last_error.message == "Order already claimed"
    assert not harness.orchestrator.busy


# ─── Crypto ────────────────────────────────────────────────────

async def test_crypto_claim_with_existing_trustline():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.ledger.fund(h.address, [trustline_balance("USDC", ISSUER, "50.0000000")])
    await h.orchestrator.load()

    result = await h.orchestrator.submit_crypto_claim()

    assert h.ledger.submitted == []
    order_id, body = h.orders.claims[0]
    assert body["paymentType"] == "crypto"
    decoded = payment_codec.decode(body["xPayment"])
    assert decoded.network == PASSPHRASE
    envelope = TransactionEnvelope.from_xdr(decoded.signed_xdr, PASSPHRASE)
    assert len(envelope.signatures) == 1
    assert result.message == CRYPTO_CLAIM_SENT
    assert result.x_payment == body["xPayment"]
    assert h.orchestrator.trustline.exists


async def test_crypto_claim_establishes_missing_trustline_first():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.ledger.fund(h.address)
    h.ledger.add_trustline_on_submit = ("USDC", ISSUER)
    await h.orchestrator.load()

    await h.orchestrator.submit_crypto_claim()

    assert len(h.ledger.submitted) == 1
    assert h.wallet.calls.count("sign_transaction") == 2
    assert len(h.orders.claims) == 1


async def test_crypto_claim_without_wallet_stops_before_post():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.wallet.connected = False
    h.wallet.connect_on_select = False
    await h.orchestrator.load()

    with pytest.raises(WalletUnavailableError):
        await h.orchestrator.submit_crypto_claim()

    assert h.orders.claims == []
    assert h.ledger.submitted == []
    assert "sign_transaction" not in h.wallet.calls
    assert h.orchestrator.state == ClaimState.FAILED
    assert isinstance(h.orchestrator.last_error, WalletUnavailableError)


async def test_crypto_claim_trustline_decline_stops_before_post():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.ledger.fund(h.address)
    h.wallet.decline = True
    await h.orchestrator.load()

    with pytest.raises(TrustlineSubmissionFailedError):
        await h.orchestrator.submit_crypto_claim()

    assert h.orders.claims == []
    assert h.orchestrator.state == ClaimState.FAILED


async def test_crypto_claim_without_any_challenge():
    h = _Harness()
    h.orders.order = _order()
    h.ledger.fund(h.address, [trustline_balance("USDC", ISSUER)])
    await h.orchestrator.load()

    with pytest.raises(NoChallengeAvailableError):
        await h.orchestrator.submit_crypto_claim()

    assert h.orders.claims == []
    assert isinstance(h.orchestrator.last_error, NoChallengeAvailableError)


async def test_crypto_claim_sign_decline_after_trustline():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.ledger.fund(h.address, [trustline_balance("USDC", ISSUER)])
    await h.orchestrator.load()
    h.wallet.decline = True

    with pytest.raises(SignatureRejectedError):
        await h.orchestrator.submit_crypto_claim()
    assert h.orders.claims == []


async def test_crypto_claim_prefers_requirements_with_builder():
    h = _Harness(with_builder=True)
    pay_to = Keypair.random().public_key
    h.orders.order = _order(
        xdrChallenge=_challenge_xdr(h.address),
        paymentRequirements={
            "payTo": pay_to,
            "maxAmountRequired": "215500000",
            "asset": f"USDC:{ISSUER}",
        },
    )
    h.ledger.fund(h.address, [trustline_balance("USDC", ISSUER)], sequence=9)
    await h.orchestrator.load()

    await h.orchestrator.submit_crypto_claim()

    decoded = payment_codec.decode(h.orders.claims[0][1]["xPayment"])
    tx = TransactionEnvelope.from_xdr(decoded.signed_xdr, PASSPHRASE).transaction
    assert tx.operations[0].destination.account_id == pay_to
    assert tx.sequence == 10


async def test_resubmit_prebuilt_header_skips_signing():
    h = _Harness(_order())
    await h.orchestrator.load()

    await h.orchestrator.submit_crypto_claim(x_payment="HEADER")

    assert h.orders.claims == [("ord-1", {"paymentType": "crypto", "xPayment": "HEADER"})]
    assert "sign_transaction" not in h.wallet.calls


# ─── Re-entrancy ───────────────────────────────────────────────

async def test_second_claim_while_in_flight_is_rejected(harness):
    await harness.orchestrator.load()
    harness.orders.claim_gate = asyncio.Event()
    proof = PaymentProofFiat(bank="BNB", reference="R")

    first = asyncio.create_task(harness.orchestrator.submit_fiat_claim(proof))
    await asyncio.sleep(0)
    assert harness.orchestrator.busy

    with pytest.raises(ClaimInProgressError):
        await harness.orchestrator.submit_fiat_claim(proof)

    harness.orders.claim_gate.set()
    await first
    assert len(harness.orders.claims) == 1
    assert not harness.orchestrator.busy


async def test_second_crypto_claim_while_in_flight_is_rejected():
    h = _Harness()
    h.orders.order = _order(xdrChallenge=_challenge_xdr(h.address))
    h.ledger.fund(h.address, [trustline_balance("USDC", ISSUER)])
    await h.orchestrator.load()
    h.orders.claim_gate = asyncio.Event()

    first = asyncio.create_task(h.orchestrator.submit_crypto_claim())
    await asyncio.sleep(0)
    assert h.orchestrator.busy

    with pytest.raises(ClaimInProgressError):
        await h.orchestrator.submit_crypto_claim()

    h.orders.claim_gate.set()
    result = await first
    assert len(h.orders.claims) == 1
    assert h.wallet.calls.count("sign_transaction") == 1
    assert result.state == ClaimState.SUBMITTED


# ─── Cleanup ───────────────────────────────────────────────────

class _Client:
    def __init__(self):
        self.closed = False

    async def aclose(self):
        self.closed = True


async def test_aclose_releases_owned_clients_once():
    clients = [_Client(), _Client()]
    h = _Harness(_order())
    h.orchestrator.owned_clients = tuple(clients)

    await h.orchestrator.aclose()
    await h.orchestrator.aclose()

    assert all(c.closed for c in clients)
    assert h.orchestrator.owned_clients == ()
