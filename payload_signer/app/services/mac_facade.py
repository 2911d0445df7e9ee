"""
Signing service facade.

Binds a single MAC backend to the fixed CryptoKeyVersion name resolved
at startup. Each call is independent: no retries, no caching, no
batching. Backend failures are surfaced as SigningBackendError or
VerificationBackendError; a MAC mismatch is a normal ``False`` result.
"""

import logging
from typing import Protocol

from payload_signer.app.core.errors import (
    SigningBackendError,
    VerificationBackendError,
)

logger = logging.getLogger("payload_signer.mac_facade")


class MacBackend(Protocol):
    """
    Key-management collaborator contract.

    Implementations must be safe for concurrent use; a single instance
    is shared by every request for the process lifetime.
    """

    async def mac_sign(self, *, name: str, data: bytes) -> bytes:
        ...

    async def mac_verify(self, *, name: str, data: bytes, mac: bytes) -> bool:
        ...


class MacFacade:
    """Pass-through to a MacBackend for one fixed key version."""

    def __init__(self, *, backend: MacBackend, key_version_name: str):
        self._backend = backend
        self.key_version_name = key_version_name

    async def sign(self, data: bytes, *, correlation_id: str = "-") -> bytes:
        try:
            return await self._backend.mac_sign(
                name=self.key_version_name,
                data=data,
            )
        except Exception as exc:
            logger.exception(
                "mac_sign_failed",
                extra={
                    "trace_id": correlation_id,
                    "key_version": self.key_version_name,
                    "error_type": type(exc).__name__,
                },
            )
            raise SigningBackendError(f"Signing failed: {exc}") from exc

    async def verify(
        self,
        data: bytes,
        mac: bytes,
        *,
        correlation_id: str = "-",
    ) -> bool:
        try:
            return bool(
                await self._backend.mac_verify(
                    name=self.key_version_name,
                    data=data,
                    mac=mac,
                )
            )
        except Exception as exc:
            logger.exception(
                "mac_verify_failed",
                extra={
                    "trace_id": correlation_id,
                    "key_version": self.key_version_name,
                    "error_type": type(exc).__name__,
                },
            )
            raise VerificationBackendError(
                f"Verification failed: {exc}"
            ) from exc
