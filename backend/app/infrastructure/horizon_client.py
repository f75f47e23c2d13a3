"""Horizon Client — httpx access to the Stellar ledger (account reads, tx submission).

Invariants:
    - Every failure (transport, non-2xx, bad JSON) raises LedgerUnavailableError
    - Submission failures carry Horizon's result codes in the message
      (e.g. op_low_reserve, tx_bad_auth) so the payer sees the real reason

Design Decisions:
    - Plain REST over httpx: only two endpoints are needed; stellar_sdk is
      used for XDR building/signing only
"""

import logging

import httpx

from app.core.errors import LedgerUnavailableError

logger = logging.getLogger(__name__)


def _result_codes(data: dict) -> str | None:
    codes = (data.get("extras") or {}).get("result_codes") or {}
    parts = []
    if codes.get("transaction"):
        parts.append(codes["transaction"])
    parts.extend(codes.get("operations") or [])
    return ", ".join(parts) or None


class HorizonClient:
    """Minimal async Horizon client implementing the LedgerGateway protocol."""

    def __init__(
        self,
        horizon_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.horizon_url = horizon_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.horizon_url, timeout=timeout_seconds, transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def load_account(self, address: str) -> dict:
        """GET /accounts/{address} — includes balances and sequence."""
        try:
            response = await self.client.get(f"/accounts/{address}")
        except httpx.HTTPError as e:
            raise LedgerUnavailableError(str(e))
        if response.status_code == httpx.codes.NOT_FOUND:
            raise LedgerUnavailableError(
                f"account {address} not found (unfunded?)", status_code=404,
            )
        if response.is_error:
            raise LedgerUnavailableError(
                f"HTTP {response.status_code}", status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise LedgerUnavailableError(f"invalid account JSON: {e}")

    async def submit_transaction(self, signed_xdr: str) -> dict:
        """POST /transactions with form field tx. Returns Horizon's response (has `hash`)."""
        try:
            response = await self.client.post(
                "/transactions", data={"tx": signed_xdr},
            )
        except httpx.HTTPError as e:
            raise LedgerUnavailableError(str(e))

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            reason = _result_codes(data) or data.get("title") or f"HTTP {response.status_code}"
            logger.warning(f"Horizon rejected transaction: {reason}")
            raise LedgerUnavailableError(reason, status_code=response.status_code)
        return data
