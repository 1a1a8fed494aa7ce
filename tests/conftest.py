import pytest

from apigee_provision.config import ENV_VARS, ProvisionSettings, Variant
from tests.fakes import FakeSession, make_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def legacy_settings() -> ProvisionSettings:
    return make_settings(Variant.LEGACY)


@pytest.fixture
def opdk_settings() -> ProvisionSettings:
    return make_settings(Variant.OPDK)


@pytest.fixture
def hybrid_settings() -> ProvisionSettings:
    return make_settings(Variant.HYBRID)
