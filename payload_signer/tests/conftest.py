import httpx
import pytest

from payload_signer.app.core.config import Settings
from payload_signer.app.core.context import AppContext
from payload_signer.app.main import create_app
from payload_signer.app.services.mac_facade import MacFacade
from payload_signer.tests.helpers import KEY_VERSION, RecordingBackend


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def facade(backend: RecordingBackend) -> MacFacade:
    return MacFacade(backend=backend, key_version_name=KEY_VERSION)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        google_cloud_project="demo-project",
        kms_key_ring="test-ring",
        kms_key="test-key",
        mac_backend="local",
        local_mac_key="test-mac-key",
    )


@pytest.fixture
def app(settings: Settings, facade: MacFacade):
    return create_app(context=AppContext(settings=settings, facade=facade))


@pytest.fixture
def make_client(app):
    def _make() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        )

    return _make
