"""
Provisioning settings and backend variant rules.

The backend variant is resolved once, up front, and every component consults
its ``VariantRules`` row instead of branching on the variant itself.
"""
import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationMissing


class Variant(str, Enum):
    """Backend deployment and management style"""

    LEGACY = "legacy"
    OPDK = "opdk"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class VariantRules:
    """Variant-specific behavior looked up by each component"""

    # org-scoped path for GCP, env-scoped path otherwise
    deployed_revision_path: str
    filter_deployments_by_env: bool
    undeploy_before_deploy: bool
    deploy_params: Dict[str, str]
    seed_kvm_entries: bool
    creates_cache: bool
    credential_flow: str  # "app" or "legacy"
    proxy_template: str
    customize_auth_proxy: bool
    retarget_auth_callout: bool
    deploys_internal_proxy: bool
    verifies_internal_proxy: bool
    legacy_analytics: bool
    bearer_auth: bool


VARIANT_RULES: Dict[Variant, VariantRules] = {
    Variant.LEGACY: VariantRules(
        deployed_revision_path="organizations/{org}/environments/{env}/apis/{name}/deployments",
        filter_deployments_by_env=False,
        undeploy_before_deploy=True,
        deploy_params={},
        seed_kvm_entries=True,
        creates_cache=True,
        credential_flow="legacy",
        proxy_template="remote-service-legacy",
        customize_auth_proxy=True,
        retarget_auth_callout=False,
        deploys_internal_proxy=False,
        verifies_internal_proxy=True,
        legacy_analytics=False,
        bearer_auth=False,
    ),
    Variant.OPDK: VariantRules(
        deployed_revision_path="organizations/{org}/environments/{env}/apis/{name}/deployments",
        filter_deployments_by_env=False,
        undeploy_before_deploy=True,
        deploy_params={},
        seed_kvm_entries=True,
        creates_cache=True,
        credential_flow="legacy",
        proxy_template="remote-service-legacy",
        customize_auth_proxy=True,
        retarget_auth_callout=True,
        deploys_internal_proxy=True,
        verifies_internal_proxy=True,
        legacy_analytics=True,
        bearer_auth=False,
    ),
    Variant.HYBRID: VariantRules(
        deployed_revision_path="organizations/{org}/apis/{name}/deployments",
        filter_deployments_by_env=True,
        undeploy_before_deploy=False,
        deploy_params={"override": "true"},
        # the GCP API rejects a KVM created with initial entries
        seed_kvm_entries=False,
        creates_cache=False,
        credential_flow="app",
        proxy_template="remote-service-gcp",
        customize_auth_proxy=False,
        retarget_auth_callout=False,
        deploys_internal_proxy=False,
        verifies_internal_proxy=False,
        legacy_analytics=False,
        bearer_auth=True,
    ),
}

DEFAULT_LEGACY_MANAGEMENT = "https://api.enterprise.apigee.com"
DEFAULT_HYBRID_MANAGEMENT = "https://apigee.googleapis.com"
LEGACY_RUNTIME_FORMAT = "https://{org}-{env}.apigee.net"
LEGACY_INTERNAL_PROXY_URL = "https://edgemicroservices.apigee.net/edgemicro"

# environment variable -> settings field
ENV_VARS = {
    "APIGEE_ORG": "org",
    "APIGEE_ENV": "env",
    "APIGEE_USERNAME": "username",
    "APIGEE_PASSWORD": "password",
    "APIGEE_TOKEN": "token",
    "APIGEE_MANAGEMENT": "management_base",
    "APIGEE_RUNTIME": "runtime_base",
    "APIGEE_DEVELOPER_EMAIL": "developer_email",
}


def load_env_file(path: str) -> Dict[str, str]:
    """Best-effort parser for a .env file."""
    values: Dict[str, str] = {}
    if not path or not os.path.exists(path):
        return values

    with open(path, "r", encoding="utf-8") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def load_settings_file(path: str) -> Dict[str, Any]:
    """Load provisioning settings from a YAML file"""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationMissing([f"settings file {path} ({exc.strerror})"]) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationMissing([f"settings file {path} (invalid YAML)"]) from exc
    if not isinstance(data, dict):
        raise ConfigurationMissing([f"settings file {path} (expected a mapping)"])
    return {str(key).replace("-", "_"): value for key, value in data.items()}


@dataclass
class ProvisionSettings:
    """Everything a provisioning run needs, resolved before any remote call"""

    org: str = ""
    env: str = ""
    variant: Variant = Variant.HYBRID
    management_base: str = ""
    runtime_base: str = ""
    internal_proxy_url: str = ""
    remote_service_proxy_url: str = ""
    username: str = ""
    password: str = ""
    token: str = ""
    developer_email: str = ""
    cert_expiration_years: int = 1
    cert_key_strength: int = 2048
    force_proxy_install: bool = False
    virtual_hosts: str = "default,secure"
    verify_only: bool = False
    provision_key: str = ""
    provision_secret: str = ""
    namespace: str = ""
    insecure: bool = False
    timeout: float = 60.0

    @property
    def rules(self) -> VariantRules:
        return VARIANT_RULES[self.variant]

    @classmethod
    def from_sources(
        cls,
        overrides: Optional[Dict[str, Any]] = None,
        env_file: str = ".env",
        settings_file: Optional[str] = None,
    ) -> "ProvisionSettings":
        """
        Merge settings from (lowest to highest precedence) a YAML settings
        file, a .env file, process environment and explicit overrides.
        Empty or None override values never mask a lower source.
        """
        known = {f.name for f in fields(cls)}
        merged: Dict[str, Any] = {}

        if settings_file:
            merged.update(load_settings_file(settings_file))

        env_from_file = load_env_file(env_file)
        for env_name, attr in ENV_VARS.items():
            value = os.getenv(env_name, env_from_file.get(env_name))
            if value:
                merged[attr] = value

        for key, value in (overrides or {}).items():
            if value is None or value == "":
                continue
            merged[key] = value

        values = {key: value for key, value in merged.items() if key in known}
        if "variant" in values:
            try:
                values["variant"] = Variant(values["variant"])
            except ValueError as exc:
                choices = ", ".join(variant.value for variant in Variant)
                raise ConfigurationMissing([f"variant (one of {choices}, got {values['variant']!r})"]) from exc
        return cls(**values)

    def resolve(self) -> "ProvisionSettings":
        """Fill derived URLs and check required values for the variant"""
        resolved = replace(self)
        if self.variant == Variant.LEGACY:
            resolved.management_base = self.management_base or DEFAULT_LEGACY_MANAGEMENT
            resolved.runtime_base = self.runtime_base or (
                LEGACY_RUNTIME_FORMAT.format(org=self.org, env=self.env) if self.org and self.env else ""
            )
            resolved.internal_proxy_url = self.internal_proxy_url or LEGACY_INTERNAL_PROXY_URL
        elif self.variant == Variant.OPDK:
            if self.runtime_base and not self.internal_proxy_url:
                resolved.internal_proxy_url = f"{self.runtime_base.rstrip('/')}/edgemicro"
        else:
            resolved.management_base = self.management_base or DEFAULT_HYBRID_MANAGEMENT

        resolved.management_base = resolved.management_base.rstrip("/")
        resolved.runtime_base = resolved.runtime_base.rstrip("/")
        if resolved.runtime_base and not self.remote_service_proxy_url:
            resolved.remote_service_proxy_url = f"{resolved.runtime_base}/remote-service"

        missing = resolved.missing_fields()
        if missing:
            raise ConfigurationMissing(missing)
        return resolved

    def missing_fields(self) -> List[str]:
        missing: List[str] = []
        required = {"org": self.org, "env": self.env, "runtime": self.runtime_base}
        if self.verify_only:
            required.update({"key": self.provision_key, "secret": self.provision_secret})
        else:
            required["management"] = self.management_base
            if self.rules.bearer_auth:
                required.update({"token": self.token, "developer-email": self.developer_email})
            else:
                required.update({"username": self.username, "password": self.password})
        for name, value in required.items():
            if not value:
                missing.append(name)
        return missing
