"""Domain Types — enums and constants shared by the claim and onboarding flows.

Invariants:
    - All valid states encoded as Enums — no raw string matching in domain logic
    - Network passphrases are the canonical Stellar strings (stellar_sdk.Network)
    - X402_VERSION / X402_SCHEME are the only recognized header literals

Design Decisions:
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum

from stellar_sdk import Network as StellarNetwork


# ─── Wire constants ──────────────────────────────────────────────

X402_VERSION = "x402-stellar-v1"
X402_SCHEME = "exact"

# Max ChangeTrust limit (int64 max in 7-decimal stroops)
MAX_TRUST_LIMIT = "922337203685.4775807"

VERIFICATION_TTL_MINUTES = 30
ONBOARDING_STAGE_COUNT = 5
CUSTOM_FREQUENCY = -1


# ─── Enums ───────────────────────────────────────────────────────

class Network(str, Enum):
    """Stellar networks a wallet can be attached to."""
    PUBLIC = "PUBLIC"
    TESTNET = "TESTNET"
    FUTURENET = "FUTURENET"
    STANDALONE = "STANDALONE"

    @property
    def passphrase(self) -> str:
        return NETWORK_PASSPHRASES[self]


NETWORK_PASSPHRASES: dict[Network, str] = {
    Network.PUBLIC: StellarNetwork.PUBLIC_NETWORK_PASSPHRASE,
    Network.TESTNET: StellarNetwork.TESTNET_NETWORK_PASSPHRASE,
    Network.FUTURENET: StellarNetwork.FUTURENET_NETWORK_PASSPHRASE,
    Network.STANDALONE: StellarNetwork.STANDALONE_NETWORK_PASSPHRASE,
}


class OrderStatus(str, Enum):
    """Order lifecycle owned by the order service — read-only here."""
    PENDING = "PENDING"
    CLAIMED_BY_USER = "CLAIMED_BY_USER"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


class PaymentType(str, Enum):
    """Payment rails behind a single order link."""
    FIAT = "fiat"
    CRYPTO = "crypto"


class ClaimState(str, Enum):
    """OrderClaimOrchestrator states."""
    LOADING = "loading"
    READY = "ready"
    FIAT_PENDING = "fiat_pending"
    CRYPTO_PENDING = "crypto_pending"
    SUBMITTED = "submitted"
    FAILED = "failed"


class Currency(str, Enum):
    """Group quota currency: local bolivianos or the USDC stablecoin."""
    BS = "BS"
    USDC = "USDC"


class OnboardingStage(int, Enum):
    """The five onboarding wizard stages."""
    BASICS = 1
    FREQUENCY = 2
    PHONE_REQUEST = 3
    CONFIRMATION = 4
    DONE = 5
