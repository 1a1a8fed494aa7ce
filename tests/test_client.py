import pytest
import requests

from apigee_provision.client import ManagementClient, Outcome, create_or_adopt, ensure, json_object
from apigee_provision.errors import TransientRemoteFailure
from tests.fakes import API, FakeResponse


@pytest.mark.parametrize(
    "status, expected",
    [(201, Outcome.CREATED), (409, Outcome.ALREADY_EXISTS), (500, Outcome.FAILED)],
)
def test_create_or_adopt_outcomes(status, expected):
    outcome, response = create_or_adopt(lambda: FakeResponse(status), "widget")
    assert outcome == expected
    assert response.status_code == status


def test_ensure_raises_on_failure():
    with pytest.raises(TransientRemoteFailure) as exc_info:
        ensure(lambda: FakeResponse(503, text="unavailable"), "widget")
    assert exc_info.value.status == 503
    assert "unavailable" in str(exc_info.value)


def test_ensure_respects_created_statuses():
    with pytest.raises(TransientRemoteFailure):
        ensure(lambda: FakeResponse(200), "kvm", (201,))


def test_hybrid_client_uses_bearer_token(hybrid_settings, session):
    ManagementClient(hybrid_settings, session)
    assert session.headers["Authorization"] == "Bearer tok"
    assert session.auth is None


def test_legacy_client_uses_basic_auth(legacy_settings, session):
    client = ManagementClient(legacy_settings, session)
    assert session.auth == ("admin", "secret")
    assert client.url(client.env_path("caches")) == f"{API}/organizations/acme/environments/test/caches"
    assert client.url("https://elsewhere.example.com/x") == "https://elsewhere.example.com/x"


def test_request_applies_default_timeout(legacy_settings, session):
    client = ManagementClient(legacy_settings, session)
    client.get(client.org_path("apis"))
    assert session.calls[0][2]["timeout"] == legacy_settings.timeout


def test_transport_error_becomes_transient_failure(legacy_settings, session, monkeypatch):
    def boom(method, url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(session, "request", boom)
    client = ManagementClient(legacy_settings, session)

    with pytest.raises(TransientRemoteFailure) as exc_info:
        client.get(client.org_path())
    assert exc_info.value.status is None
    assert "connection refused" in str(exc_info.value)


def test_json_object():
    assert json_object(FakeResponse(200, {"revision": ["1"]}), "proxy") == {"revision": ["1"]}
    assert json_object(FakeResponse(201, text=""), "proxy") == {}

    with pytest.raises(TransientRemoteFailure):
        json_object(FakeResponse(200, text="<html/>"), "proxy")
    with pytest.raises(TransientRemoteFailure):
        json_object(FakeResponse(200, ["not", "an", "object"]), "proxy")


def test_close_only_owned_session(legacy_settings, session):
    ManagementClient(legacy_settings, session).close()
    assert not session.closed
