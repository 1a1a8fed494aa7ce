"""
Apigee remote-service provisioning.

Customizes and deploys the remote-service proxy, creates credentials, KVM and
cache resources, and verifies the result against the live endpoints.
"""
from .client import Outcome, create_or_adopt
from .config import ProvisionSettings, Variant, VariantRules, VARIANT_RULES
from .credentials import Credential, CredentialProvisioner
from .deployer import ABSENT, DeployAction, DeployedState, ProxyDeployer, decide
from .errors import (
    ArtifactError,
    ConfigurationMissing,
    PartialProvisioningFailure,
    ProvisionError,
    TransientRemoteFailure,
)
from .keys import KeyMaterial
from .provision import ProvisionResult, Provisioner
from .storage import CacheProvisioner, KVMProvisioner
from .verify import VerificationFailure, VerificationProbe, VerificationReport

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "Provisioner",
    "ProvisionResult",
    "ProvisionSettings",
    "Variant",
    "VariantRules",
    "VARIANT_RULES",
    # Components
    "CredentialProvisioner",
    "Credential",
    "KVMProvisioner",
    "CacheProvisioner",
    "ProxyDeployer",
    "DeployedState",
    "DeployAction",
    "ABSENT",
    "decide",
    "KeyMaterial",
    "VerificationProbe",
    "VerificationReport",
    "VerificationFailure",
    # Remote outcomes and errors
    "Outcome",
    "create_or_adopt",
    "ProvisionError",
    "ConfigurationMissing",
    "TransientRemoteFailure",
    "PartialProvisioningFailure",
    "ArtifactError",
]
