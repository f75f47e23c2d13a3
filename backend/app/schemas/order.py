"""Order Schemas — wire contracts for the external order service.

Invariants:
    - Wire keys are camelCase; Python attributes are snake_case (alias_generator)
    - Order.status must be one of OrderStatus — unknown values fail validation
    - Order is read-only for this core: it never mutates status locally

Design Decisions:
    - Decimal for money fields: proof and order amounts are never floats in domain code
    - payment_requirements kept as an opaque dict (external protocol object)
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.core.domain_types import ClaimState, OrderStatus, PaymentType


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore",
    )


class Order(_CamelModel):
    """Order as returned by GET /api/orders/{id}."""
    id: str
    status: OrderStatus = OrderStatus.PENDING
    amount_fiat: Decimal
    currency_fiat: str | None = None
    amount_usdc: Decimal | None = None
    qr_payload_url: str | None = None
    xdr_challenge: str | None = None
    payment_requirements: dict[str, Any] | None = None
    group_id: int | None = None
    group_name: str | None = None
    round_number: int | None = None
    due_date: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def upper_status(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class PaymentProofFiat(_CamelModel):
    """Bank-transfer receipt metadata for the fiat rail."""
    bank: str = Field(min_length=1)
    amount: Decimal | None = Field(None, gt=0)
    reference: str = Field(min_length=1)
    screenshot_url: str | None = None

    def to_metadata(self, fallback_amount: Decimal) -> dict:
        """proofMetadata body — missing amount falls back to the order amount."""
        return {
            "bank": self.bank,
            "amount": float(self.amount or fallback_amount),
            "reference": self.reference,
            "screenshotUrl": self.screenshot_url or "",
        }


class ClaimResult(BaseModel):
    """Outcome of one claim submission."""
    order_id: str
    payment_type: PaymentType
    state: ClaimState
    message: str
    server_message: str | None = None
    server_status: str | None = None
    x_payment: str | None = None
