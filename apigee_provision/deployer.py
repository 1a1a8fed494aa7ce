"""
Proxy deployment.

Per (proxy, environment) the backend is either Absent or DeployedAt(revision).
A deployed proxy is left alone unless a forced install is requested; an
install always imports a new revision (max existing + 1) and deploys it,
undeploying the previous revision first where the backend requires it.
"""
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .client import ManagementClient, json_object, raise_for_status
from .config import VariantRules
from .errors import TransientRemoteFailure

logger = logging.getLogger(__name__)

NOT_FOUND = 404


@dataclass(frozen=True)
class DeployedState:
    revision: Optional[int] = None

    @property
    def is_absent(self) -> bool:
        return self.revision is None

    def __str__(self) -> str:
        return "absent" if self.is_absent else f"deployed at revision {self.revision}"


ABSENT = DeployedState()


class DeployAction(str, Enum):
    SKIP = "skip"
    INSTALL = "install"


@dataclass
class DeployResult:
    name: str
    action: DeployAction
    previous: DeployedState
    revision: Optional[int] = None


def decide(state: DeployedState, force_install: bool) -> DeployAction:
    if state.is_absent or force_install:
        return DeployAction.INSTALL
    return DeployAction.SKIP


def next_revision(revisions: List[int]) -> int:
    return max(revisions) + 1 if revisions else 1


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ProxyDeployer:
    """Checks, imports and deploys proxy revisions in one environment"""

    def __init__(self, client: ManagementClient, rules: VariantRules):
        self.client = client
        self.rules = rules
        self.env = client.env

    def check_status(self, name: str) -> DeployedState:
        """Currently deployed revision of a proxy in the target environment"""
        path = self.rules.deployed_revision_path.format(org=self.client.org, env=self.env, name=name)
        response = self.client.get(path)
        if response.status_code == NOT_FOUND:
            return ABSENT
        resource = f"deployments of proxy {name}"
        body = json_object(raise_for_status(response, resource), resource)

        if self.rules.filter_deployments_by_env:
            for deployment in body.get("deployments") or []:
                if deployment.get("environment") == self.env:
                    revision = _as_int(deployment.get("revision"))
                    if revision is not None:
                        return DeployedState(revision)
            return ABSENT

        for revision in body.get("revision") or []:
            if revision.get("state", "deployed") == "deployed":
                number = _as_int(revision.get("name"))
                if number is not None:
                    return DeployedState(number)
        return ABSENT

    def list_revisions(self, name: str) -> List[int]:
        response = self.client.get(self.client.org_path(f"apis/{name}"))
        if response.status_code == NOT_FOUND:
            return []
        body = json_object(raise_for_status(response, f"proxy {name}"), f"proxy {name}")
        revisions = [_as_int(value) for value in body.get("revision") or []]
        return sorted(revision for revision in revisions if revision is not None)

    def import_bundle(self, name: str, bundle: str) -> Optional[int]:
        with open(bundle, "rb") as handle:
            response = self.client.post(
                self.client.org_path("apis"),
                params={"action": "import", "name": name},
                files={"file": (os.path.basename(bundle), handle, "application/octet-stream")},
            )
        resource = f"importing proxy {name}"
        body = json_object(raise_for_status(response, resource), resource)
        return _as_int(body.get("revision"))

    def undeploy(self, name: str, revision: int) -> None:
        path = self.client.env_path(f"apis/{name}/revisions/{revision}/deployments")
        raise_for_status(self.client.delete(path), f"undeploying proxy {name} revision {revision}")

    def deploy(self, name: str, revision: int) -> None:
        path = self.client.env_path(f"apis/{name}/revisions/{revision}/deployments")
        params = dict(self.rules.deploy_params) or None
        raise_for_status(self.client.post(path, params=params), f"deploying proxy {name} revision {revision}")

    def install(self, name: str, bundle: str, previous: DeployedState = ABSENT) -> int:
        """Import bundle as a new revision and make it the deployed one"""
        existing = self.list_revisions(name)
        revision = next_revision(existing)
        if existing:
            logger.info(f"proxy {name} exists. highest revision is: {existing[-1]}")

        logger.info(f"creating new proxy {name} revision: {revision}...")
        imported = self.import_bundle(name, bundle)
        if imported is not None and imported != revision:
            logger.warning(f"proxy {name} imported as revision {imported}, expected {revision}")
            revision = imported

        if not previous.is_absent and self.rules.undeploy_before_deploy:
            logger.info(f"undeploying proxy {name} revision {previous.revision} on env {self.env}...")
            self.undeploy(name, previous.revision)

        logger.info(f"deploying proxy {name} revision {revision} to env {self.env}...")
        self.deploy(name, revision)
        return revision

    def check_and_deploy(self, name: str, bundle: str, force_install: bool = False) -> DeployResult:
        logger.info(f"checking if proxy {name} deployment exists...")
        state = self.check_status(name)
        action = decide(state, force_install)

        if action == DeployAction.SKIP:
            logger.info(f"proxy {name} revision {state.revision} already deployed to {self.env}")
            return DeployResult(name, action, state, state.revision)

        if not state.is_absent:
            logger.info(f"replacing proxy {name} revision {state.revision} in {self.env}")

        try:
            revision = self.install(name, bundle, state)
        except TransientRemoteFailure:
            logger.error(f"install of proxy {name} aborted; imported revisions are left for manual cleanup")
            raise
        return DeployResult(name, action, state, revision)
