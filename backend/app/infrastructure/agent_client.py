"""Agent Service Client — httpx wrapper for the external order and onboarding service.

Invariants:
    - Missing base URL raises ConfigMissingError before any request is made
    - Non-2xx responses surface the server's `message` when present, else a
      fixed human-readable fallback
    - All httpx failures mapped to typed PasaTandaError subclasses (core/errors.py)
    - No retries: retry policy belongs to the caller

Design Decisions:
    - One AsyncClient per instance, closed via aclose()/async with
    - Optional transport argument: tests inject httpx.MockTransport
"""

import logging

import httpx

from app.core.errors import (
    ClaimRejectedByServerError,
    CodeRequestFailedError,
    ConfigMissingError,
    ErrorContext,
    GroupCreationFailedError,
    OrderFetchFailedError,
    OrderNotFoundError,
)

logger = logging.getLogger(__name__)


def _json_or_empty(response: httpx.Response) -> dict:
    """Parse a JSON object body; anything else reads as {}."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _server_message(data: dict, fallback: str) -> str:
    message = data.get("message")
    return message if isinstance(message, str) and message else fallback


class AgentServiceClient:
    """Orders, claims and onboarding calls against AGENT_BE_URL."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds, transport=transport,
        )

    async def __aenter__(self) -> "AgentServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _url(self, path: str) -> str:
        if not self.base_url:
            raise ConfigMissingError("agent_be_url")
        return f"{self.base_url}{path}"

    # --- Orders ---------------------------------------------------------------

    async def get_order(self, order_id: str) -> dict:
        """GET /api/orders/{id}. Raises OrderNotFoundError / OrderFetchFailedError."""
        url = self._url(f"/api/orders/{order_id}")
        ctx = ErrorContext(order_id=order_id)
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            logger.warning(
                f"Order fetch transport error: {e}", extra={"order_id": order_id},
            )
            raise OrderFetchFailedError(f"Could not load the order: {e}", ctx)

        data = _json_or_empty(response)
        if response.status_code == httpx.codes.NOT_FOUND:
            raise OrderNotFoundError(order_id, ctx)
        if response.is_error:
            raise OrderFetchFailedError(
                _server_message(data, "Could not load the order"), ctx,
            )
        return data

    async def submit_claim(self, order_id: str, body: dict) -> dict:
        """POST /api/orders/{id}/claim. Raises ClaimRejectedByServerError."""
        url = self._url(f"/api/orders/{order_id}/claim")
        ctx = ErrorContext(order_id=order_id)
        try:
            response = await self.client.post(url, json=body)
        except httpx.HTTPError as e:
            logger.warning(
                f"Claim transport error: {e}", extra={"order_id": order_id},
            )
            raise ClaimRejectedByServerError(
                f"Could not submit the claim: {e}", context=ctx,
            )

        data = _json_or_empty(response)
        if response.is_error:
            raise ClaimRejectedByServerError(
                _server_message(data, "Could not submit the claim"),
                status_code=response.status_code,
                context=ctx,
            )
        logger.info(
            "Claim accepted by order service",
            extra={"order_id": order_id, "payment_type": body.get("paymentType")},
        )
        return data

    # --- Onboarding -----------------------------------------------------------

    async def request_verification_code(self, phone: str) -> dict:
        """POST /api/onboarding/verify?phone=. Raises CodeRequestFailedError."""
        url = self._url("/api/onboarding/verify")
        ctx = ErrorContext(phone=phone, stage=3)
        try:
            response = await self.client.post(url, params={"phone": phone})
        except httpx.HTTPError as e:
            raise CodeRequestFailedError(f"Could not send the code: {e}", ctx)

        data = _json_or_empty(response)
        if response.is_error:
            raise CodeRequestFailedError(
                _server_message(data, "Could not send the code"), ctx,
            )
        return data

    async def create_group(self, body: dict) -> dict:
        """POST /api/onboarding. Raises GroupCreationFailedError."""
        url = self._url("/api/onboarding")
        ctx = ErrorContext(phone=body.get("phoneNumber"), stage=4)
        try:
            response = await self.client.post(url, json=body)
        except httpx.HTTPError as e:
            raise GroupCreationFailedError(f"Could not create the group: {e}", ctx)

        data = _json_or_empty(response)
        if response.is_error:
            raise GroupCreationFailedError(
                _server_message(data, "Could not create the group"), ctx,
            )
        return data
