import pytest
from pydantic import ValidationError

from payload_signer.app.core.config import Settings

CONFIG_ENV = (
    "GOOGLE_CLOUD_PROJECT",
    "KMS_LOCATION",
    "KMS_KEY_RING",
    "KMS_KEY",
    "KMS_KEY_VERSION",
    "KMS_ENDPOINT",
    "KMS_TIMEOUT_SECONDS",
    "MAC_BACKEND",
    "LOCAL_MAC_KEY",
    "HOST",
    "PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults_build_key_version_name():
    settings = Settings(_env_file=None, google_cloud_project="demo-project")

    assert settings.mac_backend == "cloudkms"
    assert settings.port == 8080
    assert settings.key_version_name == (
        "projects/demo-project/locations/global/keyRings/EzeKeyRing"
        "/cryptoKeys/EzeKey/cryptoKeyVersions/1"
    )


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "acme-prod")
    monkeypatch.setenv("KMS_LOCATION", "europe-west1")
    monkeypatch.setenv("KMS_KEY_RING", "payments")
    monkeypatch.setenv("KMS_KEY", "webhook-mac")
    monkeypatch.setenv("KMS_KEY_VERSION", "3")
    monkeypatch.setenv("PORT", "9090")

    settings = Settings(_env_file=None)

    assert settings.port == 9090
    assert settings.key_version_name == (
        "projects/acme-prod/locations/europe-west1/keyRings/payments"
        "/cryptoKeys/webhook-mac/cryptoKeyVersions/3"
    )


def test_dotenv_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("GOOGLE_CLOUD_PROJECT=from-dotenv\nKMS_KEY=dev-key\n")

    settings = Settings(_env_file=env_file)

    assert settings.google_cloud_project == "from-dotenv"
    assert settings.kms_key == "dev-key"


def test_cloudkms_requires_project():
    with pytest.raises(ValidationError, match="GOOGLE_CLOUD_PROJECT"):
        Settings(_env_file=None)


def test_local_backend_requires_key():
    with pytest.raises(ValidationError, match="LOCAL_MAC_KEY"):
        Settings(_env_file=None, mac_backend="local")


def test_local_backend_without_project():
    settings = Settings(
        _env_file=None,
        mac_backend="local",
        local_mac_key="dev-secret",
    )

    assert settings.local_mac_key.get_secret_value() == "dev-secret"
    assert "dev-secret" not in repr(settings)


@pytest.mark.parametrize(
    "field, value",
    [
        ("kms_key_ring", "ring/../../other"),
        ("kms_key", ""),
        ("kms_location", "us central"),
        ("kms_key_version", "latest"),
        ("mac_backend", "vault"),
    ],
)
def test_rejects_malformed_resource_ids(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, google_cloud_project="demo-project", **{field: value})


def test_settings_are_frozen():
    settings = Settings(_env_file=None, google_cloud_project="demo-project")

    with pytest.raises(ValidationError):
        settings.kms_key = "other"
