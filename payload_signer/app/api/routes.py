import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Request

from payload_signer.app.api.responses import CanonicalJSONResponse
from payload_signer.app.core.context import AppContext
from payload_signer.app.services.mac_facade import MacFacade
from payload_signer.app.services.payload_mac import sign_payload, verify_payload

logger = logging.getLogger("payload_signer.api")

router = APIRouter(tags=["Payload MAC"])

_ERROR_RESPONSES = {
    400: {"description": "Malformed JSON, payload, or signature encoding"},
    405: {"description": "Only POST is allowed"},
    500: {"description": "Key-management backend failure"},
}

# =============================================================================
# Dependency providers
# =============================================================================

def resolve_correlation_id(request: Request) -> str:
    """
    Extract or generate the request's correlation ID.

    Resolved once and pinned on ``request.state``: route handlers, log
    records and exception handlers all see the same value.
    """
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id is None:
        supplied = request.headers.get("x-correlation-id")
        if supplied and len(supplied) <= 128:
            correlation_id = supplied
        else:
            correlation_id = str(uuid.uuid4())
        request.state.correlation_id = correlation_id
    return correlation_id


def get_correlation_id(
    request: Request,
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """
    Correlation ID dependency for end-to-end traceability.

    The header parameter only documents X-Correlation-ID in the OpenAPI
    schema; the value is read by ``resolve_correlation_id``.
    """
    return resolve_correlation_id(request)


def get_mac_facade(request: Request) -> MacFacade:
    """
    Return the process-wide facade built at startup.

    Never constructed per request.
    """
    context: Optional[AppContext] = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError("application context not initialized")
    return context.facade


# =============================================================================
# POST /sign
# =============================================================================

@router.post(
    "/sign",
    summary="Timestamp and MAC an arbitrary JSON object",
    response_class=CanonicalJSONResponse,
    responses={
        200: {"description": "Signed envelope {payload, signature}"},
        **_ERROR_RESPONSES,
    },
)
async def sign(
    request: Request,
    facade: Annotated[MacFacade, Depends(get_mac_facade)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> CanonicalJSONResponse:
    """
    Inject a UTC ``timestamp`` into the posted object and MAC its
    canonical encoding. The returned ``payload`` must be sent back
    unchanged (in content, not formatting) to /verify.
    """
    body = await request.body()

    signed = await sign_payload(
        body,
        facade=facade,
        correlation_id=correlation_id,
    )

    return CanonicalJSONResponse(
        content={
            "payload": signed.payload,
            "signature": signed.signature,
        },
        headers={"X-Correlation-ID": correlation_id},
    )


# =============================================================================
# POST /verify
# =============================================================================

@router.post(
    "/verify",
    summary="Verify a previously issued signed envelope",
    response_class=CanonicalJSONResponse,
    responses={
        200: {"description": "{valid: bool}; a mismatch is valid=false"},
        **_ERROR_RESPONSES,
    },
)
async def verify(
    request: Request,
    facade: Annotated[MacFacade, Depends(get_mac_facade)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
) -> CanonicalJSONResponse:
    """
    Re-canonicalize ``payload`` and check ``signature`` against it.
    """
    body = await request.body()

    valid = await verify_payload(
        body,
        facade=facade,
        correlation_id=correlation_id,
    )

    return CanonicalJSONResponse(
        content={"valid": valid},
        headers={"X-Correlation-ID": correlation_id},
    )
