import requests

from apigee_provision.credentials import Credential
from apigee_provision.verify import VerificationProbe, VerificationReport
from tests.fakes import RUNTIME, FakeResponse, FakeSession

REMOTE = f"{RUNTIME}/remote-service"
CREDENTIAL = Credential("key", "secret")


def test_all_endpoints_checked_and_failures_accumulate(hybrid_settings, session):
    session.add("GET", f"{REMOTE}/certs", FakeResponse(200))
    session.add("GET", f"{REMOTE}/products", FakeResponse(500, text="broken"))
    session.add("POST", f"{REMOTE}/verifyApiKey", FakeResponse(401))
    # quotas is unrouted and answers 404

    report = VerificationProbe(hybrid_settings, session).verify(CREDENTIAL)

    assert report.attempted == ["certs", "products", "verifyApiKey", "quotas"]
    assert [failure.probe for failure in report.failures] == ["products", "quotas"]
    assert not report.ok
    assert report.failures[0].status == 500


def test_probes_authenticate_with_credential(hybrid_settings, session):
    VerificationProbe(hybrid_settings, session).verify(CREDENTIAL)

    for _, _, kwargs in session.calls:
        assert kwargs["auth"] == ("key", "secret")
    verify_call = session.called("POST", f"{REMOTE}/verifyApiKey")[0]
    assert verify_call["json"] == {"apiKey": "key"}


def test_legacy_also_probes_analytics(legacy_settings, session):
    probe = VerificationProbe(legacy_settings, session)

    probes = probe.probes(CREDENTIAL)

    assert probes[0].name == "analytics"
    assert probes[0].method == "GET"
    assert probes[0].url == "https://edgemicroservices.apigee.net/edgemicro/analytics/organization/acme/environment/test"
    assert probes[0].params["tenant"] == "acme~test"
    assert len(probes) == 5


def test_opdk_probes_axpublisher(opdk_settings, session):
    probes = VerificationProbe(opdk_settings, session).probes(CREDENTIAL)

    assert probes[0].method == "POST"
    assert probes[0].url == f"{RUNTIME}/edgemicro/axpublisher/organization/acme/environment/test"


def test_network_error_is_collected(hybrid_settings, session, monkeypatch):
    def unreachable(method, url, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(session, "request", unreachable)

    report = VerificationProbe(hybrid_settings, session).verify(CREDENTIAL)

    assert len(report.failures) == 4
    assert all(failure.status is None for failure in report.failures)
    assert "no response" in str(report.failures[0])


def test_insecure_disables_certificate_checks(hybrid_settings, session):
    hybrid_settings.insecure = True
    VerificationProbe(hybrid_settings, session)
    assert session.verify is False


def test_combine():
    first = VerificationReport(["a"], [])
    second = VerificationReport(["b"], ["failure"])
    combined = first.combine(second)
    assert combined.attempted == ["a", "b"]
    assert combined.failures == ["failure"]
    assert first.attempted == ["a"]


def test_close_releases_only_owned_session(hybrid_settings, session, monkeypatch):
    VerificationProbe(hybrid_settings, session).close()
    assert not session.closed

    owned = FakeSession()
    monkeypatch.setattr(requests, "Session", lambda: owned)
    VerificationProbe(hybrid_settings).close()
    assert owned.closed
