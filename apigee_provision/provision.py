"""
Provisioning orchestrator.

Runs every step in order against one org/environment. There is no rollback:
the first remote failure aborts the run and re-running is safe because each
creation step treats "already exists" as success.
"""
import logging
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from . import artifact, keys
from .artifact import CalloutProperties, ReplaceFirst, Transform
from .client import ManagementClient, Outcome
from .config import ProvisionSettings
from .credentials import Credential, CredentialProvisioner
from .deployer import DeployResult, ProxyDeployer
from .emit import render_config
from .storage import CacheProvisioner, KVMProvisioner
from .verify import VerificationProbe, VerificationReport

logger = logging.getLogger(__name__)

AUTH_PROXY_NAME = "remote-service"
INTERNAL_PROXY_NAME = "edgemicro-internal"
INTERNAL_PROXY_TEMPLATE = "internal"

LEGACY_AUTH_TARGET = "https://edgemicroservices.apigee.net"


@dataclass
class ProvisionResult:
    credential: Optional[Credential]
    verification: VerificationReport
    config: str = ""
    deployments: List[DeployResult] = field(default_factory=list)
    kvm: Optional[Outcome] = None
    cache: Optional[Outcome] = None

    @property
    def ok(self) -> bool:
        return self.verification.ok


class Provisioner:
    """Provisions an Apigee environment for remote services"""

    def __init__(
        self,
        settings: ProvisionSettings,
        client: Optional[ManagementClient] = None,
        probe_session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.rules = settings.rules
        self.owns_client = client is None
        self.client = client or ManagementClient(settings)
        self.deployer = ProxyDeployer(self.client, self.rules)
        self.credentials = CredentialProvisioner(self.client, settings)
        self.kvm = KVMProvisioner(self.client, self.rules)
        self.cache = CacheProvisioner(self.client)
        self.probe = VerificationProbe(settings, probe_session)

    def auth_proxy_transforms(self) -> Optional[List[Transform]]:
        if not self.rules.customize_auth_proxy:
            return None
        transforms: List[Transform] = [artifact.virtual_hosts(self.settings.virtual_hosts)]
        if self.rules.retarget_auth_callout:
            # OPDK must target the local internal proxy and flag noncps orgs
            transforms.append(
                ReplaceFirst("policies/Authenticate-Call.xml", LEGACY_AUTH_TARGET, self.settings.runtime_base)
            )
            transforms.append(CalloutProperties("policies/JavaCallout.xml", {"org.noncps": "true"}))
        return transforms

    def internal_proxy_transforms(self) -> List[Transform]:
        return [
            CalloutProperties(
                "policies/Callout.xml",
                {
                    "REGION_MAP": f"DN={self.settings.runtime_base}",
                    "MGMT_URL_PREFIX": self.settings.management_base,
                },
            ),
            artifact.virtual_hosts(self.settings.virtual_hosts),
        ]

    def deploy_proxies(self, temp_dir: str) -> List[DeployResult]:
        results: List[DeployResult] = []
        force = self.settings.force_proxy_install

        if self.rules.deploys_internal_proxy:
            template = artifact.restore_asset(INTERNAL_PROXY_TEMPLATE, temp_dir)
            bundle = artifact.customize(template, self.internal_proxy_transforms(), temp_dir, "internal-customized.zip")
            results.append(self.deployer.check_and_deploy(INTERNAL_PROXY_NAME, bundle, force))

        template = artifact.restore_asset(self.rules.proxy_template, temp_dir)
        bundle = artifact.customize(template, self.auth_proxy_transforms(), temp_dir)
        results.append(self.deployer.check_and_deploy(AUTH_PROXY_NAME, bundle, force))
        return results

    def provision_resources(self) -> ProvisionResult:
        """Every mutating step; the scratch directory is removed on all exit paths"""
        result = ProvisionResult(credential=None, verification=VerificationReport())
        material = keys.generate(self.settings.cert_key_strength, self.settings.cert_expiration_years)
        material.validate()

        with tempfile.TemporaryDirectory(prefix="apigee") as temp_dir:
            if self.rules.creates_cache:
                # referenced by the proxy, so created first
                result.cache = self.cache.ensure()
            result.deployments = self.deploy_proxies(temp_dir)

        result.credential = self.credentials.provision(self.settings.developer_email)
        result.kvm = self.kvm.ensure(entries=material.kvm_entries())
        if result.kvm == Outcome.CREATED and self.rules.seed_kvm_entries:
            logger.info("registered a new key and cert for JWTs")
            logger.debug(f"certificate:\n{material.certificate}")
        return result

    def close(self) -> None:
        """Release the HTTP sessions this provisioner created"""
        self.probe.close()
        if self.owns_client:
            self.client.close()

    def run(self) -> ProvisionResult:
        try:
            return self._run()
        finally:
            self.close()

    def _run(self) -> ProvisionResult:
        if self.settings.verify_only:
            credential = Credential(self.settings.provision_key, self.settings.provision_secret)
            result = ProvisionResult(credential=credential, verification=VerificationReport())
        else:
            result = self.provision_resources()

        logger.info("verifying proxies...")
        result.verification = self.probe.verify(result.credential)
        if not result.verification.ok:
            logger.warning("Apigee may not be provisioned properly. Unable to verify proxy endpoint(s):")
            for failure in result.verification.failures:
                logger.warning(f"  {failure}")
        else:
            logger.info("provisioning verified OK")

        if not self.settings.verify_only:
            result.config = render_config(self.settings, result.credential, result.verification)
        return result
