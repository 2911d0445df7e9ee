"""
Centralized configuration management for the payload signer.

Pydantic v2 settings management to enforce strict validation,
zero secret leakage, and fast-failure on invalid configuration.

A ``.env`` file in the working directory, when present, is read as a
local development override.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    StringConstraints,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(default=None, description="Sensitive credential, redacted from logs"),
]

# Cloud KMS resource ids: letters, digits, underscores and hyphens
KmsResourceID = Annotated[
    str,
    Field(
        pattern=r"^[a-zA-Z0-9_-]{1,63}$",
        description="Strict resource id validation to prevent path injection",
    ),
]

GcpProjectID = Optional[
    Annotated[
        str,
        StringConstraints(pattern=r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$"),
    ]
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if the key coordinates are missing or
    malformed for the selected MAC backend.
    """

    # ---------------------------------------------------------------------
    # Key coordinates
    # ---------------------------------------------------------------------

    google_cloud_project: GcpProjectID = None
    kms_location: KmsResourceID = "global"
    kms_key_ring: KmsResourceID = "EzeKeyRing"
    kms_key: KmsResourceID = "EzeKey"
    kms_key_version: Annotated[
        str,
        Field(pattern=r"^[0-9]{1,10}$", description="CryptoKeyVersion id"),
    ] = "1"

    # ---------------------------------------------------------------------
    # Cloud KMS transport
    # ---------------------------------------------------------------------

    kms_endpoint: Annotated[
        AnyHttpUrl,
        Field(description="Cloud KMS REST endpoint"),
    ] = "https://cloudkms.googleapis.com"

    kms_timeout_seconds: Annotated[
        float,
        Field(
            gt=0,
            le=600,
            description="Upper bound for a single outbound KMS call",
        ),
    ] = 60.0

    # ---------------------------------------------------------------------
    # MAC backend selection
    # ---------------------------------------------------------------------

    mac_backend: Annotated[
        Literal["cloudkms", "local"],
        Field(
            description=(
                "'cloudkms' delegates MAC operations to Cloud KMS. "
                "'local' uses an in-process HMAC key (DEVELOPMENT ONLY)."
            ),
        ),
    ] = "cloudkms"

    local_mac_key: SensitiveEnv

    # ---------------------------------------------------------------------
    # HTTP listener
    # ---------------------------------------------------------------------

    host: str = "0.0.0.0"
    port: Annotated[int, Field(ge=1, le=65535)] = 8080
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ---------------------------------------------------------------------
    # Validators
    # ---------------------------------------------------------------------

    @model_validator(mode="after")
    def backend_requirements(self) -> "Settings":
        if self.mac_backend == "cloudkms" and not self.google_cloud_project:
            raise ValueError(
                "GOOGLE_CLOUD_PROJECT is required when MAC_BACKEND=cloudkms."
            )
        if self.mac_backend == "local":
            if (
                self.local_mac_key is None
                or not self.local_mac_key.get_secret_value()
            ):
                raise ValueError(
                    "LOCAL_MAC_KEY is required when MAC_BACKEND=local."
                )
        return self

    # ---------------------------------------------------------------------
    # Derived values
    # ---------------------------------------------------------------------

    @property
    def key_version_name(self) -> str:
        """Fully-qualified CryptoKeyVersion resource name."""
        project = self.google_cloud_project or "local"
        return (
            f"projects/{project}"
            f"/locations/{self.kms_location}"
            f"/keyRings/{self.kms_key_ring}"
            f"/cryptoKeys/{self.kms_key}"
            f"/cryptoKeyVersions/{self.kms_key_version}"
        )


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process-wide settings singleton.

    Used by the CLI entry point; the application lifespan loads its own
    instance so startup failures surface there.
    """
    return Settings()
