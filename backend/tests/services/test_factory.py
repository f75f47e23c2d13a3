"""Service Factory — flows assembled from settings, end to end over MockTransport."""

import httpx

from app.config import Settings
from app.core.domain_types import ClaimState
from app.services.factory import build_claim_orchestrator, build_onboarding_wizard
from app.services.wallet_session import WalletSessionManager
from tests.services.fakes import FakeStatusSource, FakeWallet


def _settings(**overrides) -> Settings:
    values = {
        "agent_be_url": "http://agent.test/",
        "whatsapp_agent_number": "59170000000",
        "verification_poll_interval_seconds": 0.01,
    }
    values.update(overrides)
    return Settings(**values)


def test_agent_url_trailing_slash_stripped():
    assert _settings().agent_be_url == "http://agent.test"


async def test_claim_orchestrator_shares_given_manager():
    manager = WalletSessionManager(FakeWallet(), selection_wait_ms=0)
    orchestrator = build_claim_orchestrator("ord-1", manager, _settings())
    assert orchestrator.wallet is manager
    assert orchestrator.trustlines.wallet is manager
    assert orchestrator.requirements_builder is not None
    assert orchestrator.asset.code == "USDC"


async def test_fiat_claim_through_built_orchestrator():
    posted = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json={"id": "ord-1", "status": "PENDING", "amountFiat": 150})
        posted.append(request.url.path)
        return httpx.Response(200, json={"success": True})

    from app.schemas.order import PaymentProofFiat

    orchestrator = build_claim_orchestrator(
        "ord-1", FakeWallet(), _settings(), transport=httpx.MockTransport(handler),
    )
    await orchestrator.load()
    await orchestrator.submit_fiat_claim(PaymentProofFiat(bank="BNB", reference="R"))

    assert posted == ["/api/orders/ord-1/claim"]
    assert orchestrator.state == ClaimState.SUBMITTED


async def test_onboarding_wizard_uses_settings():
    wizard = build_onboarding_wizard(FakeStatusSource(), _settings())
    assert wizard.poll_interval_seconds == 0.01
    assert wizard.whatsapp_agent_number == "59170000000"
    assert wizard.poll_timeout_seconds == 600.0


async def test_orchestrator_aclose_closes_its_http_clients():
    orchestrator = build_claim_orchestrator(
        "ord-1", FakeWallet(), _settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
    )
    await orchestrator.aclose()

    assert orchestrator.orders.client.is_closed
    assert orchestrator.trustlines.ledger.client.is_closed
    assert orchestrator.requirements_builder.ledger is orchestrator.trustlines.ledger


async def test_wizard_close_closes_its_http_client():
    wizard = build_onboarding_wizard(FakeStatusSource(), _settings())
    await wizard.close()
    assert wizard.onboarding.client.is_closed
