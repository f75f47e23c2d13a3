"""Boundary Protocols — contracts between the claim core and its external collaborators.

Invariants:
    - Services depend on these Protocols, never on a concrete wallet or HTTP client
    - Any wallet implementing the four wallet operations is interchangeable
    - Return shapes of external wallets are NOT trusted: the session manager
      normalizes them (services/wallet_session.py)

Design Decisions:
    - Protocol over ABC: structural subtyping, fakes in tests need no inheritance
    - Async methods: every implementation does IO (extension bridge, HTTP)
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from app.core.verification_registry import VerificationRecord

SignFn = Callable[[str], Awaitable[str]]


class WalletCapability(Protocol):
    """An external Stellar wallet (browser extension bridge, keypair, hardware)."""
    async def get_address(self) -> Any: ...
    async def open_selector(self) -> None: ...
    async def sign_transaction(
        self, xdr: str, *, network_passphrase: str, address: str | None,
    ) -> Any: ...
    async def get_network(self) -> Any: ...


class LedgerGateway(Protocol):
    """Read/submit access to the Stellar ledger — implemented by HorizonClient."""
    async def load_account(self, address: str) -> dict: ...
    async def submit_transaction(self, signed_xdr: str) -> dict: ...


class OrderService(Protocol):
    """The external order service — implemented by AgentServiceClient."""
    async def get_order(self, order_id: str) -> dict: ...
    async def submit_claim(self, order_id: str, body: dict) -> dict: ...


class OnboardingService(Protocol):
    """The external onboarding service — implemented by AgentServiceClient."""
    async def request_verification_code(self, phone: str) -> dict: ...
    async def create_group(self, body: dict) -> dict: ...


class RequirementsPaymentBuilder(Protocol):
    """Builds an X-PAYMENT header from a richer paymentRequirements object."""
    async def build(
        self,
        requirements: dict[str, Any],
        *,
        address: str,
        network_passphrase: str,
        sign: SignFn,
    ) -> str: ...


class VerificationStatusSource(Protocol):
    """Where the onboarding wizard polls for webhook confirmations."""
    async def lookup(self, phone: str) -> VerificationRecord | None: ...


class AsyncClosable(Protocol):
    """A client holding a connection pool, released with aclose()."""
    async def aclose(self) -> None: ...
