"""
Credential provisioning.

Managed-cloud (hybrid) backends issue credentials through an API product,
developer and application. Legacy and OPDK backends accept a locally
generated key/secret pair through the internal proxy.
"""
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Dict

from .client import ManagementClient, Outcome, create_or_adopt, ensure, json_object, raise_for_status
from .config import ProvisionSettings
from .errors import PartialProvisioningFailure, TransientRemoteFailure

logger = logging.getLogger(__name__)

REMOTE_SERVICE_NAME = "remote-service"

API_PRODUCTS_PATH = "apiproducts"
DEVELOPERS_PATH = "developers"
APPLICATIONS_PATH_FORMAT = "developers/{email}/apps"
KEY_CREATE_PATH_FORMAT = "developers/{email}/apps/{app}/keys/create"
KEY_PATH_FORMAT = "developers/{email}/apps/{app}/keys/{key}"
LEGACY_CREDENTIAL_URL_FORMAT = "{internal}/credential/organization/{org}/environment/{env}"


@dataclass
class Credential:
    key: str
    secret: str

    def __repr__(self) -> str:
        return f"Credential(key={self.key!r}, secret='***')"


def new_hash() -> str:
    """Random hex string for a locally generated key or secret"""
    seed = f"{time.time_ns()}{secrets.randbits(64)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


class CredentialProvisioner:
    """Ensures a credential exists for the remote-service proxy"""

    def __init__(self, client: ManagementClient, settings: ProvisionSettings):
        self.client = client
        self.settings = settings
        self.rules = settings.rules

    def provision(self, developer_email: str = "") -> Credential:
        if self.rules.credential_flow == "app":
            return self.provision_app_credential(developer_email or self.settings.developer_email)
        return self.provision_legacy_credential()

    def provision_app_credential(self, developer_email: str) -> Credential:
        """Ensure product, developer and app exist; return a credential bound to the product"""
        product = {
            "name": REMOTE_SERVICE_NAME,
            "displayName": REMOTE_SERVICE_NAME,
            "approvalType": "auto",
            "attributes": [{"name": "access", "value": "internal"}],
            "description": f"{REMOTE_SERVICE_NAME} access",
            "apiResources": ["/**"],
            "environments": [self.settings.env],
            "proxies": [REMOTE_SERVICE_NAME],
        }
        ensure(
            lambda: self.client.post(self.client.org_path(API_PRODUCTS_PATH), json=product),
            f"product {REMOTE_SERVICE_NAME}",
        )

        developer = {
            "email": developer_email,
            "firstName": REMOTE_SERVICE_NAME,
            "lastName": REMOTE_SERVICE_NAME,
            "userName": REMOTE_SERVICE_NAME,
        }
        ensure(
            lambda: self.client.post(self.client.org_path(DEVELOPERS_PATH), json=developer),
            f"developer {developer_email}",
        )

        app = {"name": REMOTE_SERVICE_NAME, "apiProducts": [REMOTE_SERVICE_NAME]}
        apps_path = self.client.org_path(APPLICATIONS_PATH_FORMAT.format(email=developer_email))
        outcome, response = create_or_adopt(
            lambda: self.client.post(apps_path, json=app),
            f"app {REMOTE_SERVICE_NAME}",
        )

        if outcome == Outcome.CREATED:
            credentials = json_object(response, f"app {REMOTE_SERVICE_NAME}").get("credentials") or []
            if not credentials:
                raise TransientRemoteFailure(
                    f"app {REMOTE_SERVICE_NAME}", response.status_code, "no credentials in response"
                )
            first = credentials[0]
            credential = Credential(key=first["consumerKey"], secret=first["consumerSecret"])
            logger.info(f"credentials created: {credential}")
            return credential

        if outcome == Outcome.FAILED:
            raise TransientRemoteFailure(f"app {REMOTE_SERVICE_NAME}", response.status_code, response.text)

        return self.add_app_credential(developer_email)

    def add_app_credential(self, developer_email: str) -> Credential:
        """
        Issue a new key for an existing app and bind it to the product.

        Two remote calls with a single checkpoint between them: once the key
        is created it cannot be undone here, so a failure binding the product
        surfaces as PartialProvisioningFailure and a re-run is the remedy.
        """
        resource = f"app {REMOTE_SERVICE_NAME} credential"
        requested = {"consumerKey": new_hash(), "consumerSecret": new_hash()}
        create_path = self.client.org_path(
            KEY_CREATE_PATH_FORMAT.format(email=developer_email, app=REMOTE_SERVICE_NAME)
        )
        response = raise_for_status(self.client.post(create_path, json=requested), resource)
        created = self._credential_from(response, requested)
        logger.info(f"created key {created.key} for existing app {REMOTE_SERVICE_NAME}")

        # checkpoint: the key exists remotely from here on
        key_path = self.client.org_path(
            KEY_PATH_FORMAT.format(email=developer_email, app=REMOTE_SERVICE_NAME, key=created.key)
        )
        try:
            raise_for_status(
                self.client.post(key_path, json={"apiProducts": [REMOTE_SERVICE_NAME]}),
                f"{resource} product binding",
            )
        except TransientRemoteFailure as exc:
            raise PartialProvisioningFailure(resource, created.key, exc) from exc

        logger.info(f"credentials created: {created}")
        return created

    @staticmethod
    def _credential_from(response, requested: Dict[str, str]) -> Credential:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return Credential(
            key=body.get("consumerKey") or requested["consumerKey"],
            secret=body.get("consumerSecret") or requested["consumerSecret"],
        )

    def provision_legacy_credential(self) -> Credential:
        logger.info("creating credential...")
        credential = Credential(key=new_hash(), secret=new_hash())
        url = LEGACY_CREDENTIAL_URL_FORMAT.format(
            internal=self.settings.internal_proxy_url.rstrip("/"),
            org=self.settings.org,
            env=self.settings.env,
        )
        response = self.client.post(url, json={"key": credential.key, "secret": credential.secret})
        if response.status_code > 299:
            raise TransientRemoteFailure("credential", response.status_code, response.text)
        logger.info("credential created")
        return credential
