"""Payment Challenge Codec — X-PAYMENT header encoding for the x402-stellar protocol.

Invariants:
    - encode() is deterministic: fixed field order, compact JSON, standard base64
    - decode(encode(x, n)) == DecodedPayment(X402_VERSION, X402_SCHEME, n, x)
    - decode() raises MalformedHeaderError on bad base64, non-JSON, non-object,
      unknown version/scheme, or a missing payload.signedXdr
    - Pure functions: no IO, no async

Design Decisions:
    - Orders that carry paymentRequirements bypass this codec entirely; the
      header then comes from a RequirementsPaymentBuilder
      (core/challenge_source.py)
"""

import base64
import binascii
import json
from dataclasses import dataclass

from app.core.domain_types import X402_SCHEME, X402_VERSION
from app.core.errors import MalformedHeaderError


@dataclass(frozen=True)
class DecodedPayment:
    version: str
    scheme: str
    network: str
    signed_xdr: str


def encode(signed_xdr: str, network: str) -> str:
    """Wrap a signed transaction envelope into a base64 X-PAYMENT header."""
    header = {
        "version": X402_VERSION,
        "scheme": X402_SCHEME,
        "network": network,
        "payload": {"signedXdr": signed_xdr},
    }
    raw = json.dumps(header, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode(header: str) -> DecodedPayment:
    """Inverse of encode(). Raises MalformedHeaderError."""
    try:
        raw = base64.b64decode(header, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedHeaderError(f"invalid base64 ({e})")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedHeaderError(f"invalid JSON ({e})")

    if not isinstance(data, dict):
        raise MalformedHeaderError("header is not a JSON object")
    if data.get("version") != X402_VERSION:
        raise MalformedHeaderError(f"unrecognized version {data.get('version')!r}")
    if data.get("scheme") != X402_SCHEME:
        raise MalformedHeaderError(f"unrecognized scheme {data.get('scheme')!r}")

    payload = data.get("payload")
    signed_xdr = payload.get("signedXdr") if isinstance(payload, dict) else None
    if not isinstance(signed_xdr, str) or not signed_xdr:
        raise MalformedHeaderError("payload.signedXdr missing")
    network = data.get("network")
    if not isinstance(network, str):
        raise MalformedHeaderError("network missing")

    return DecodedPayment(
        version=data["version"],
        scheme=data["scheme"],
        network=network,
        signed_xdr=signed_xdr,
    )
