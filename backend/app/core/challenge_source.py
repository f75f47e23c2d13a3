"""Challenge Source — tagged variant for the two payment-challenge formats.

Invariants:
    - resolve_challenge() is called once per crypto claim
    - paymentRequirements wins over xdrChallenge when both are present
    - Neither present -> NoChallengeAvailableError (not retryable without new order state)

Design Decisions:
    - Requirements | RawXdr as frozen dataclasses: callers dispatch with
      isinstance, one code path per protocol version
"""

from dataclasses import dataclass
from typing import Any, Union

from app.core.errors import NoChallengeAvailableError


@dataclass(frozen=True)
class Requirements:
    """Richer x402 payment requirements object, satisfied by an external builder."""
    requirements: dict[str, Any]


@dataclass(frozen=True)
class RawXdr:
    """Bare unsigned transaction envelope to sign and wrap with the codec."""
    xdr: str


ChallengeSource = Union[Requirements, RawXdr]


def resolve_challenge(
    order_id: str,
    payment_requirements: dict[str, Any] | None,
    xdr_challenge: str | None,
    accept_requirements: bool = True,
) -> ChallengeSource:
    """Pick the challenge to satisfy. accept_requirements=False skips the
    requirements path (no builder configured) and falls back to the raw XDR."""
    if payment_requirements and accept_requirements:
        return Requirements(payment_requirements)
    if xdr_challenge:
        return RawXdr(xdr_challenge)
    raise NoChallengeAvailableError(order_id)
