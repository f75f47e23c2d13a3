"""Verification Webhook — inbound WhatsApp-agent confirmations and frontend polling.

Invariants:
    - POST confirm_verification writes the store (normalize, overwrite, sweep)
    - GET confirm_verification / check_verification only read; they never evict
    - Missing phone on GET -> 400 {verified: false, message}
    - Unknown or unverified phones -> {verified: false, timestamp: null}

Design Decisions:
    - check_verification reads the store directly instead of re-fetching
      confirm_verification over HTTP; both answer identically
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.infrastructure.verification_store import VerificationStore, get_verification_store
from app.schemas.verification import VerificationStatus, VerificationWebhook, WebhookAck

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhook", tags=["verification"])


@router.post("/confirm_verification", response_model=WebhookAck)
async def confirm_verification(
    body: VerificationWebhook,
    store: VerificationStore = Depends(get_verification_store),
):
    """Receive a verification outcome from the WhatsApp agent."""
    entry = await store.record(
        body.phone,
        body.verified,
        body.timestamp,
        whatsapp_username=body.whatsapp_username,
        whatsapp_number=body.whatsapp_number,
    )
    logger.info(
        f"Phone verification received: {'VERIFIED' if entry.verified else 'FAILED'}",
        extra={"phone": entry.phone},
    )
    return WebhookAck(
        success=True,
        message=(
            "Phone verification confirmed successfully"
            if entry.verified else "Phone verification failed"
        ),
    )


async def _status_response(phone: str | None, store: VerificationStore):
    if not phone or not phone.strip():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"verified": False, "message": "Phone parameter is required"},
        )
    record = await store.lookup(phone)
    return VerificationStatus.from_record(record).to_wire()


@router.get("/confirm_verification")
async def get_verification(
    phone: str | None = Query(None),
    store: VerificationStore = Depends(get_verification_store),
):
    """Polling read of the verification outcome for a phone."""
    return await _status_response(phone, store)


@router.get("/check_verification")
async def check_verification(
    phone: str | None = Query(None),
    store: VerificationStore = Depends(get_verification_store),
):
    """Alias of GET confirm_verification used by the onboarding poll."""
    return await _status_response(phone, store)
