"""
Local HMAC-SHA256 backend.

DEVELOPMENT ONLY.
The key lives in process memory (LOCAL_MAC_KEY). This mode does not
provide the custody guarantees of Cloud KMS and must never be selected
in production.
"""

import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

logger = logging.getLogger("payload_signer.local_mac")


class LocalHmacBackend:
    """MacBackend over an in-process secret; the key name is informational."""

    def __init__(self, key: bytes):
        if not key:
            raise ValueError("Local MAC key must not be empty")
        self._key = key

    def _hmac(self, data: bytes) -> hmac.HMAC:
        h = hmac.HMAC(self._key, hashes.SHA256())
        h.update(data)
        return h

    async def mac_sign(self, *, name: str, data: bytes) -> bytes:
        return self._hmac(data).finalize()

    async def mac_verify(self, *, name: str, data: bytes, mac: bytes) -> bool:
        try:
            self._hmac(data).verify(mac)
            return True
        except InvalidSignature:
            return False
