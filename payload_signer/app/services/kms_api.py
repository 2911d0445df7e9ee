import base64
import binascii
import logging
from typing import Annotated, Any, Optional

import anyio
import anyio.to_thread
import httpx
from google.auth.credentials import Credentials
from google.auth.transport.requests import Request as GoogleAuthRequest

logger = logging.getLogger("payload_signer.kms_api")


class KmsApiError(RuntimeError):
    """Raised when a Cloud KMS call fails or returns an unusable body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GoogleTokenProvider:
    """
    OAuth2 access tokens from Google Application Default Credentials.

    google-auth refreshes synchronously over ``requests``; refreshes run
    in a worker thread and are serialized so concurrent requests share
    a single refresh.
    """

    SCOPE = "https://www.googleapis.com/auth/cloudkms"

    def __init__(self, credentials: Credentials):
        self.credentials = credentials
        self._refresh_lock = anyio.Lock()
        self._auth_request = GoogleAuthRequest()

    async def get_token(self) -> str:
        if not self.credentials.valid:
            async with self._refresh_lock:
                if not self.credentials.valid:
                    await anyio.to_thread.run_sync(
                        self.credentials.refresh,
                        self._auth_request,
                    )
        return self.credentials.token


class CloudKmsClient:
    """
    Async client for the Cloud KMS MAC endpoints (REST, v1).

    HARD GUARANTEES:
    - Sends raw data to KMS; the key never leaves the HSM/software backend
    - One request per call, no retries
    - Safe to share across concurrent requests
    """

    API_VERSION = "v1"

    def __init__(
        self,
        token_provider: GoogleTokenProvider,
        http_client: Annotated[
            httpx.AsyncClient,
            "Persistent HTTP client",
        ],
        endpoint: str = "https://cloudkms.googleapis.com",
    ):
        self.token_provider = token_provider
        self.client = http_client
        self.base_url = str(endpoint).rstrip("/")

    # ------------------------------------------------------------------
    # Auth helpers
    # ------------------------------------------------------------------

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.token_provider.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def mac_sign(self, *, name: str, data: bytes) -> bytes:
        """
        Compute a MAC over ``data`` with the given CryptoKeyVersion.

        Returns:
            Raw MAC bytes (base64-decoded from the KMS response).
        """
        result = await self._call(
            name=name,
            method="macSign",
            payload={"data": _b64(data)},
        )

        mac_b64 = result.get("mac")
        if not isinstance(mac_b64, str) or not mac_b64:
            raise KmsApiError("Cloud KMS macSign response missing 'mac'")

        try:
            return base64.b64decode(mac_b64, validate=True)
        except binascii.Error as exc:
            raise KmsApiError(
                "Cloud KMS returned invalid base64 data"
            ) from exc

    async def mac_verify(self, *, name: str, data: bytes, mac: bytes) -> bool:
        """
        Ask Cloud KMS whether ``mac`` is valid for ``data``.

        NOTE:
        - A mismatch is reported as ``success: false`` (or the field
          omitted), never as an HTTP error.
        """
        result = await self._call(
            name=name,
            method="macVerify",
            payload={"data": _b64(data), "mac": _b64(mac)},
        )
        return result.get("success") is True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _method_url(self, name: str, method: str) -> str:
        return f"{self.base_url}/{self.API_VERSION}/{name}:{method}"

    async def _call(
        self,
        *,
        name: str,
        method: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            response = await self.client.post(
                self._method_url(name, method),
                headers=await self._auth_headers(),
                json=payload,
            )
        except httpx.TransportError as exc:
            raise KmsApiError(
                f"Cloud KMS {method} transport failure: {exc}"
            ) from exc

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.exception(
                "kms_request_failed",
                extra={
                    "method": method,
                    "status_code": response.status_code,
                    "key_version": name,
                },
            )
            raise KmsApiError(
                f"Cloud KMS {method} failed "
                f"(status={response.status_code}): "
                f"{_google_error_message(response)}",
                status_code=response.status_code,
            ) from exc

        try:
            result = response.json()
        except ValueError as exc:
            raise KmsApiError(
                f"Cloud KMS {method} returned a non-JSON body"
            ) from exc

        if not isinstance(result, dict):
            raise KmsApiError(
                f"Cloud KMS {method} returned an unexpected body"
            )
        return result


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _google_error_message(response: httpx.Response) -> str:
    """Extract ``error.message`` from a Google API error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:512]

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        return str(error.get("message") or error.get("status") or error)
    return response.text[:512]
