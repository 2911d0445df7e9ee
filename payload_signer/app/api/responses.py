from typing import Any

from starlette.responses import Response

from payload_signer.app.core.errors import MalformedInput, SerializationError
from payload_signer.app.utils.canonical import canonicalize


class CanonicalJSONResponse(Response):
    """
    JSON response rendered with the canonical encoder.

    The ``payload`` returned by /sign is therefore byte-identical to the
    bytes that were signed.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        try:
            return canonicalize(content)
        except MalformedInput as exc:
            raise SerializationError() from exc


def error_response(
    message: str,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> CanonicalJSONResponse:
    return CanonicalJSONResponse(
        content={"error": message},
        status_code=status_code,
        headers=headers,
    )
