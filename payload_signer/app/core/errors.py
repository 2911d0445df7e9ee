"""
Error taxonomy for the payload signer.

Every error raised by the sign and verify operations derives from
PayloadSignerError and carries the HTTP status it maps to. A MAC
mismatch is not an error and has no class here.
"""


class PayloadSignerError(Exception):
    """Base class for errors surfaced to HTTP callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# -------------------------------------------------------------------------
# Client errors (400)
# -------------------------------------------------------------------------

class MalformedInput(PayloadSignerError):
    """Input could not be decoded as JSON or canonicalized."""

    status_code = 400
    default_message = "Malformed JSON input"


class InvalidJSON(MalformedInput):
    default_message = "Invalid JSON"


class InvalidPayload(MalformedInput):
    default_message = "Invalid payload"


class InvalidPayloadShape(MalformedInput):
    default_message = "Payload must be a JSON object"


class InvalidSignatureEncoding(PayloadSignerError):
    status_code = 400
    default_message = "Invalid base64 signature"


# -------------------------------------------------------------------------
# Server errors (500)
# -------------------------------------------------------------------------

class BackendError(PayloadSignerError):
    """The key-management collaborator call itself failed."""

    status_code = 500


class SigningBackendError(BackendError):
    default_message = "Signing failed"


class VerificationBackendError(BackendError):
    default_message = "Verification failed"


class SerializationError(PayloadSignerError):
    status_code = 500
    default_message = "Internal error while serializing payload"
