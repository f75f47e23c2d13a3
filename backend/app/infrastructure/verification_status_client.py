"""Verification Status Client — polls the webhook service's check_verification endpoint.

Invariants:
    - Returns a VerificationRecord only for verified phones; anything else is None
    - Transport and HTTP errors propagate as httpx errors (the wizard's poll
      loop logs them and keeps polling)
"""

import httpx

from app.core.verification_registry import VerificationRecord, normalize_phone
from app.schemas.verification import VerificationStatus


class VerificationStatusClient:
    """VerificationStatusSource over HTTP, for wizards running outside the webhook process."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout_seconds, transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def lookup(self, phone: str) -> VerificationRecord | None:
        response = await self.client.get(
            "/api/webhook/check_verification", params={"phone": phone},
        )
        response.raise_for_status()
        status = VerificationStatus.model_validate(response.json())
        if not status.verified or status.timestamp is None:
            return None
        return VerificationRecord(
            phone=normalize_phone(phone),
            verified=True,
            timestamp=status.timestamp,
            whatsapp_username=status.whatsapp_username,
            whatsapp_number=status.whatsapp_number,
        )
