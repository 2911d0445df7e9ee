from typing import Optional

from payload_signer.app.services.local_mac import LocalHmacBackend

KEY_VERSION = (
    "projects/demo-project/locations/global/keyRings/test-ring"
    "/cryptoKeys/test-key/cryptoKeyVersions/1"
)

# 2023-11-14T22:13:20.123456789Z
FIXED_NS = 1_700_000_000_123_456_789


def fixed_clock() -> int:
    return FIXED_NS


class RecordingBackend:
    """
    MacBackend double backed by a real HMAC key.

    Records every call so tests can assert the collaborator was (or was
    not) reached, and can be switched to fail on demand.
    """

    def __init__(self, key: bytes = b"test-mac-key"):
        self._inner = LocalHmacBackend(key)
        self.calls: list[tuple[str, str, bytes]] = []
        self.fail_with: Optional[Exception] = None

    async def mac_sign(self, *, name: str, data: bytes) -> bytes:
        self.calls.append(("sign", name, data))
        if self.fail_with is not None:
            raise self.fail_with
        return await self._inner.mac_sign(name=name, data=data)

    async def mac_verify(self, *, name: str, data: bytes, mac: bytes) -> bool:
        self.calls.append(("verify", name, data))
        if self.fail_with is not None:
            raise self.fail_with
        return await self._inner.mac_verify(name=name, data=data, mac=mac)


class FakeCredentials:
    """Minimal google.auth Credentials stand-in."""

    def __init__(
        self,
        token: str = "access-token",
        error: Optional[Exception] = None,
    ):
        self.token = None
        self.valid = False
        self.refresh_calls = 0
        self._next_token = token
        self._error = error

    def refresh(self, request) -> None:
        self.refresh_calls += 1
        if self._error is not None:
            raise self._error
        self.token = self._next_token
        self.valid = True
