"""
Sign and verify operations over client-supplied JSON payloads.

Both operations reduce the payload to bytes with the same
``canonicalize`` call; any divergence between the two paths would
silently break every verification.

Sign:
    raw body → parse → require object → inject ``timestamp``
    → canonicalize → facade.sign → (payload, base64 MAC)

Verify:
    raw envelope → parse → extract ``payload`` → canonicalize
    → decode base64 ``signature`` → facade.verify → bool
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from payload_signer.app.core.errors import (
    InvalidJSON,
    InvalidPayload,
    InvalidPayloadShape,
    InvalidSignatureEncoding,
    MalformedInput,
)
from payload_signer.app.services.mac_facade import MacFacade
from payload_signer.app.utils.canonical import (
    MAX_NESTING_DEPTH,
    JSONValue,
    canonicalize,
    parse_json,
)
from payload_signer.app.utils.timestamps import Clock, utc_now_rfc3339_nano

logger = logging.getLogger("payload_signer.payload_mac")

TIMESTAMP_FIELD = "timestamp"


@dataclass(frozen=True)
class SignedPayload:
    """Result of a sign operation."""

    payload: Dict[str, JSONValue]
    canonical_bytes: bytes
    signature: str


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

async def sign_payload(
    raw_body: bytes,
    *,
    facade: MacFacade,
    clock: Optional[Clock] = None,
    correlation_id: str = "-",
) -> SignedPayload:
    """
    Timestamp and MAC an arbitrary JSON object.

    Raises:
        InvalidJSON: body is not valid JSON.
        InvalidPayloadShape: top-level value is not an object.
        SigningBackendError: the key-management call failed.
    """
    try:
        payload = parse_json(raw_body)
    except MalformedInput as exc:
        raise InvalidJSON(f"Invalid JSON: {exc.message}") from exc

    if not isinstance(payload, dict):
        raise InvalidPayloadShape(
            "Payload must be a JSON object, "
            f"got {_json_type_name(payload)}"
        )

    payload[TIMESTAMP_FIELD] = utc_now_rfc3339_nano(clock)

    try:
        data = canonicalize(payload)
    except MalformedInput as exc:
        raise InvalidJSON(f"Invalid JSON: {exc.message}") from exc

    mac = await facade.sign(data, correlation_id=correlation_id)

    logger.info(
        "payload_signed",
        extra={
            "trace_id": correlation_id,
            "canonical_size": len(data),
        },
    )

    return SignedPayload(
        payload=payload,
        canonical_bytes=data,
        signature=base64.b64encode(mac).decode("ascii"),
    )


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------

def decode_signature(signature: Any) -> bytes:
    """
    Strictly decode a standard (padded) base64 MAC.

    Line breaks (CR, LF) are ignored, as for wrapped base64 text; any
    other character outside the base64 alphabet is rejected.

    Raises:
        InvalidSignatureEncoding: missing, non-string, empty, or invalid.
    """
    if not isinstance(signature, str) or not signature:
        raise InvalidSignatureEncoding(
            "Signature must be a non-empty base64 string"
        )
    try:
        mac = base64.b64decode(
            signature.replace("\r", "").replace("\n", ""),
            validate=True,
        )
    except (binascii.Error, ValueError) as exc:
        raise InvalidSignatureEncoding("Invalid base64 signature") from exc
    if not mac:
        raise InvalidSignatureEncoding("Invalid base64 signature")
    return mac


async def verify_payload(
    raw_body: bytes,
    *,
    facade: MacFacade,
    correlation_id: str = "-",
) -> bool:
    """
    Check a previously issued envelope ``{"payload": ..., "signature": ...}``.

    A MAC mismatch returns ``False``; it is not an error.

    Raises:
        InvalidJSON: body is not valid JSON.
        InvalidPayload: envelope malformed or payload not canonicalizable.
        InvalidSignatureEncoding: signature is not valid base64.
        VerificationBackendError: the key-management call failed.
    """
    try:
        # The envelope wraps the payload in one more level
        envelope = parse_json(raw_body, max_depth=MAX_NESTING_DEPTH + 1)
    except MalformedInput as exc:
        raise InvalidJSON(f"Invalid JSON: {exc.message}") from exc

    if not isinstance(envelope, dict) or "payload" not in envelope:
        raise InvalidPayload(
            "Request must be an object with 'payload' and 'signature'"
        )

    try:
        data = canonicalize(envelope["payload"])
    except MalformedInput as exc:
        raise InvalidPayload(f"Invalid payload: {exc.message}") from exc

    mac = decode_signature(envelope.get("signature"))

    valid = await facade.verify(data, mac, correlation_id=correlation_id)

    logger.info(
        "payload_verified",
        extra={
            "trace_id": correlation_id,
            "valid": valid,
        },
    )
    return valid


def _json_type_name(value: JSONValue) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return type(value).__name__
