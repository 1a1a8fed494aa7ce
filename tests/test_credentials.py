import re

import pytest

from apigee_provision.client import ManagementClient
from apigee_provision.credentials import Credential, CredentialProvisioner, new_hash
from apigee_provision.errors import PartialProvisioningFailure, TransientRemoteFailure
from tests.fakes import ORG_API, FakeResponse

PRODUCTS = f"{ORG_API}/apiproducts"
DEVELOPERS = f"{ORG_API}/developers"
APPS = f"{ORG_API}/developers/dev@example.com/apps"
KEYS_CREATE = f"{APPS}/remote-service/keys/create"
LEGACY_CREDENTIAL = "https://edgemicroservices.apigee.net/edgemicro/credential/organization/acme/environment/test"


def provisioner(settings, session):
    return CredentialProvisioner(ManagementClient(settings, session), settings)


def test_new_app_returns_issued_credential(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(201))
    session.add("POST", DEVELOPERS, FakeResponse(201))
    session.add(
        "POST",
        APPS,
        FakeResponse(201, {"credentials": [{"consumerKey": "issued-key", "consumerSecret": "issued-secret"}]}),
    )

    credential = provisioner(hybrid_settings, session).provision()

    assert credential == Credential("issued-key", "issued-secret")
    product = session.called("POST", PRODUCTS)[0]["json"]
    assert product["name"] == "remote-service"
    assert product["environments"] == ["test"]
    assert session.called("POST", KEYS_CREATE) == []


def test_existing_app_gets_new_bound_key(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(409))
    session.add("POST", DEVELOPERS, FakeResponse(409))
    session.add("POST", APPS, FakeResponse(409))
    session.add("POST", KEYS_CREATE, FakeResponse(201, {"consumerKey": "k1", "consumerSecret": "s1"}))
    session.add("POST", f"{APPS}/remote-service/keys/k1", FakeResponse(200))

    credential = provisioner(hybrid_settings, session).provision()

    assert credential == Credential("k1", "s1")
    binding = session.called("POST", f"{APPS}/remote-service/keys/k1")
    assert binding[0]["json"] == {"apiProducts": ["remote-service"]}


def test_binding_failure_after_key_creation_is_partial(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(409))
    session.add("POST", DEVELOPERS, FakeResponse(409))
    session.add("POST", APPS, FakeResponse(409))
    session.add("POST", KEYS_CREATE, FakeResponse(201, {"consumerKey": "k1", "consumerSecret": "s1"}))
    session.add("POST", f"{APPS}/remote-service/keys/k1", FakeResponse(500, text="boom"))

    with pytest.raises(PartialProvisioningFailure) as exc_info:
        provisioner(hybrid_settings, session).provision()

    assert not isinstance(exc_info.value, TransientRemoteFailure)
    assert exc_info.value.key == "k1"
    assert exc_info.value.cause.status == 500


def test_key_creation_failure_is_transient(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(409))
    session.add("POST", DEVELOPERS, FakeResponse(409))
    session.add("POST", APPS, FakeResponse(409))
    session.add("POST", KEYS_CREATE, FakeResponse(500))

    with pytest.raises(TransientRemoteFailure):
        provisioner(hybrid_settings, session).provision()
    assert not any("/keys/" in call and not call.endswith("/create") for call in session.methods())


def test_product_failure_stops_before_app(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(500))

    with pytest.raises(TransientRemoteFailure):
        provisioner(hybrid_settings, session).provision()
    assert session.called("POST", APPS) == []


def test_legacy_credential_registered_with_internal_proxy(legacy_settings, session):
    session.add("POST", LEGACY_CREDENTIAL, FakeResponse(201))

    credential = provisioner(legacy_settings, session).provision()

    assert re.fullmatch(r"[0-9a-f]{64}", credential.key)
    assert credential.key != credential.secret
    (call,) = session.called("POST", LEGACY_CREDENTIAL)
    assert call["json"] == {"key": credential.key, "secret": credential.secret}


def test_legacy_credential_failure(legacy_settings, session):
    session.add("POST", LEGACY_CREDENTIAL, FakeResponse(403, text="forbidden"))

    with pytest.raises(TransientRemoteFailure) as exc_info:
        provisioner(legacy_settings, session).provision()
    assert exc_info.value.status == 403


def test_credential_repr_masks_secret():
    assert "hunter2" not in repr(Credential("key", "hunter2"))


def test_new_hash_is_unique():
    assert new_hash() != new_hash()


def test_new_app_without_json_body(hybrid_settings, session):
    session.add("POST", PRODUCTS, FakeResponse(201))
    session.add("POST", DEVELOPERS, FakeResponse(201))
    session.add("POST", APPS, FakeResponse(201, text="<html>created</html>"))

    with pytest.raises(TransientRemoteFailure) as exc_info:
        provisioner(hybrid_settings, session).provision()
    assert exc_info.value.status == 201
