"""
Process-wide application context.

Built exactly once at startup and treated as immutable for the lifetime
of the process. Holds the fixed key-version name and the single shared
collaborator handle used by every request.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import google.auth
import httpx
from google.auth.exceptions import TransportError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from payload_signer.app.core.config import Settings
from payload_signer.app.services.kms_api import CloudKmsClient, GoogleTokenProvider
from payload_signer.app.services.local_mac import LocalHmacBackend
from payload_signer.app.services.mac_facade import MacFacade

logger = logging.getLogger("payload_signer.context")


@dataclass(frozen=True)
class AppContext:
    settings: Settings
    facade: MacFacade
    http_client: Optional[httpx.AsyncClient] = None

    @property
    def key_version_name(self) -> str:
        return self.facade.key_version_name

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


# ----------------------------------------------------------------------
# Credential self-test
# ----------------------------------------------------------------------

@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=1, max=5),
    retry=retry_if_exception_type(TransportError),
    reraise=True,
)
async def _verify_credentials(token_provider: GoogleTokenProvider) -> None:
    # Metadata server hiccups at cold start are the only retried case
    await token_provider.get_token()


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            timeout=settings.kms_timeout_seconds,
            connect=min(10.0, settings.kms_timeout_seconds),
        ),
        limits=httpx.Limits(
            max_keepalive_connections=50,
            max_connections=100,
        ),
        headers={"User-Agent": "payload-signer"},
    )


async def build_app_context(settings: Settings) -> AppContext:
    """
    Wire the MAC backend selected by ``settings``.

    Fails fast if Google credentials cannot be resolved or cannot mint
    an access token.
    """
    key_version_name = settings.key_version_name

    if settings.mac_backend == "local":
        logger.warning(
            "local_mac_backend_enabled",
            extra={"key_version": key_version_name},
        )
        backend = LocalHmacBackend(
            settings.local_mac_key.get_secret_value().encode("utf-8")
        )
        return AppContext(
            settings=settings,
            facade=MacFacade(
                backend=backend,
                key_version_name=key_version_name,
            ),
        )

    credentials, _ = google.auth.default(scopes=[GoogleTokenProvider.SCOPE])
    token_provider = GoogleTokenProvider(credentials)

    try:
        await _verify_credentials(token_provider)
    except Exception:
        logger.exception(
            "google_authentication_failed",
            extra={"project": settings.google_cloud_project},
        )
        raise

    logger.info(
        "google_authentication_verified",
        extra={
            "project": settings.google_cloud_project,
            "key_version": key_version_name,
        },
    )

    http_client = build_http_client(settings)
    backend = CloudKmsClient(
        token_provider=token_provider,
        http_client=http_client,
        endpoint=str(settings.kms_endpoint),
    )

    return AppContext(
        settings=settings,
        facade=MacFacade(backend=backend, key_version_name=key_version_name),
        http_client=http_client,
    )
