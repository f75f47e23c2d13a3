"""Verification Schemas — inbound WhatsApp-agent webhook and polling responses.

Invariants:
    - phone is required, non-blank and at most 32 characters (the column
      width); verified must be a real JSON boolean
      (StrictBool: "true" or 1 are rejected)
    - timestamp is epoch milliseconds; absent/0 means "now"
    - Unverified or unknown phones answer {verified: false, timestamp: null}
"""

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator
from pydantic.alias_generators import to_camel

from app.core.verification_registry import VerificationRecord


class VerificationWebhook(BaseModel):
    """POST /api/webhook/confirm_verification body."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    phone: str = Field(min_length=1, max_length=32)
    verified: StrictBool
    timestamp: int | None = Field(None, ge=0)
    whatsapp_username: str | None = None
    whatsapp_number: str | None = None
    signature: str | None = None

    @field_validator("phone")
    @classmethod
    def phone_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("phone cannot be empty or whitespace")
        return v


class WebhookAck(BaseModel):
    success: bool
    message: str


class VerificationStatus(BaseModel):
    """Polling response for GET confirm_verification / check_verification."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    verified: bool
    timestamp: int | None = None
    whatsapp_username: str | None = None
    whatsapp_number: str | None = None

    @classmethod
    def from_record(cls, record: VerificationRecord | None) -> "VerificationStatus":
        if record is None or not record.verified:
            return cls(verified=False, timestamp=None)
        return cls(
            verified=True,
            timestamp=record.timestamp,
            whatsapp_username=record.whatsapp_username,
            whatsapp_number=record.whatsapp_number,
        )

    def to_wire(self) -> dict:
        if not self.verified:
            return {"verified": False, "timestamp": None}
        return self.model_dump(by_alias=True)
