"""Service Factory — wires settings and infrastructure clients into the flows.

Invariants:
    - Every client is built from Settings; no endpoint is hardcoded here
    - Claim flows get the requirements builder so x402 requirements are
      preferred over the raw XDR challenge when the server sends both
    - The flows own the HTTP clients built here: orchestrator.aclose() and
      wizard.close() release them
"""

import httpx

from app.config import Settings, get_settings
from app.core.capability_protocols import VerificationStatusSource, WalletCapability
from app.infrastructure.agent_client import AgentServiceClient
from app.infrastructure.horizon_client import HorizonClient
from app.services.claim_orchestrator import OrderClaimOrchestrator
from app.services.onboarding_wizard import OnboardingWizard
from app.services.requirements_payment import LedgerRequirementsBuilder
from app.services.trustline_guard import SettlementAsset, TrustlineGuard
from app.services.wallet_session import WalletSessionManager


def settlement_asset(settings: Settings) -> SettlementAsset:
    return SettlementAsset(
        code=settings.usdc_asset_code, issuer=settings.usdc_asset_issuer,
    )


def build_claim_orchestrator(
    order_id: str,
    wallet: WalletCapability | WalletSessionManager,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OrderClaimOrchestrator:
    """Assemble an orchestrator for one order. Call aclose() when done.

    A bare wallet capability is wrapped in a fresh WalletSessionManager; pass
    an existing manager to share its connected session across claims.
    """
    settings = settings or get_settings()
    manager = (
        wallet if isinstance(wallet, WalletSessionManager)
        else WalletSessionManager(wallet, settings.wallet_selection_wait_ms)
    )
    orders = AgentServiceClient(
        settings.agent_be_url, settings.agent_timeout_seconds, transport=transport,
    )
    ledger = HorizonClient(
        settings.horizon_url, settings.horizon_timeout_seconds, transport=transport,
    )
    return OrderClaimOrchestrator(
        order_id,
        orders=orders,
        wallet=manager,
        trustlines=TrustlineGuard(ledger, manager),
        asset=settlement_asset(settings),
        requirements_builder=LedgerRequirementsBuilder(ledger),
        owned_clients=(orders, ledger),
    )


def build_onboarding_wizard(
    status_source: VerificationStatusSource,
    settings: Settings | None = None,
    on_redirect=None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OnboardingWizard:
    settings = settings or get_settings()
    onboarding = AgentServiceClient(
        settings.agent_be_url, settings.agent_timeout_seconds, transport=transport,
    )
    return OnboardingWizard(
        onboarding,
        status_source,
        poll_interval_seconds=settings.verification_poll_interval_seconds,
        poll_timeout_seconds=settings.verification_poll_timeout_seconds,
        redirect_delay_seconds=settings.onboarding_redirect_delay_seconds,
        on_redirect=on_redirect,
        whatsapp_agent_number=settings.whatsapp_agent_number,
        owned_clients=(onboarding,),
    )
