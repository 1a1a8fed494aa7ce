"""
Configuration for the apigee-remote-service-envoy adapter.

Rendered as YAML; with a namespace the document is wrapped in a Kubernetes
ConfigMap so it can be applied directly.
"""
import datetime
from typing import Any, Dict, Optional

import yaml

from .config import ProvisionSettings, Variant
from .credentials import Credential
from .verify import VerificationReport

CONFIG_MAP_NAME = "apigee-remote-service-envoy"
FLUENTD_INTERNAL_FORMAT = "apigee-udca-{org}-{env}.{namespace}:20001"
DEFAULT_FLUENTD_NAMESPACE = "apigee"
DEFAULT_CA_FILE = "/opt/apigee/tls/ca.crt"
DEFAULT_CERT_FILE = "/opt/apigee/tls/tls.crt"
DEFAULT_KEY_FILE = "/opt/apigee/tls/tls.key"


def build_config(settings: ProvisionSettings, credential: Credential) -> Dict[str, Any]:
    tenant = {
        "internal_api": settings.internal_proxy_url,
        "remote_service_api": settings.remote_service_proxy_url,
        "org_name": settings.org,
        "env_name": settings.env,
        "key": credential.key,
        "secret": credential.secret,
    }
    analytics: Dict[str, Any] = {}

    if settings.variant == Variant.HYBRID:
        # no internal API for GCP; assumes the mesh TLS files are mounted
        tenant["internal_api"] = ""
        analytics["collection_interval"] = "10s"
        analytics["fluentd_endpoint"] = FLUENTD_INTERNAL_FORMAT.format(
            org=settings.org,
            env=settings.env,
            namespace=settings.namespace or DEFAULT_FLUENTD_NAMESPACE,
        )
        analytics["tls"] = {
            "ca_file": DEFAULT_CA_FILE,
            "cert_file": DEFAULT_CERT_FILE,
            "key_file": DEFAULT_KEY_FILE,
        }

    if settings.rules.legacy_analytics:
        analytics["legacy_endpoint"] = True

    config: Dict[str, Any] = {"tenant": tenant}
    if analytics:
        config["analytics"] = analytics
    return config


class _BlockDumper(yaml.SafeDumper):
    """Safe dumper that writes multi-line strings as literal blocks"""


def _represent_str(dumper, data):
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


_BlockDumper.add_representer(str, _represent_str)


def dump_yaml(document: Dict[str, Any]) -> str:
    return yaml.dump(document, Dumper=_BlockDumper, indent=2, sort_keys=False, default_flow_style=False)


def config_map(config_yaml: str, namespace: str) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": CONFIG_MAP_NAME, "namespace": namespace},
        "data": {"config.yaml": config_yaml},
    }


def render_config(
    settings: ProvisionSettings,
    credential: Credential,
    verification: Optional[VerificationReport] = None,
    now: Optional[datetime.datetime] = None,
) -> str:
    """YAML text for the adapter, with header comments"""
    document = dump_yaml(build_config(settings, credential))
    if settings.namespace:
        document = dump_yaml(config_map(document, settings.namespace))

    now = now or datetime.datetime.now()
    lines = [
        "# Configuration for apigee-remote-service-envoy",
        f"# generated by apigee-provision on {now.strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if verification is not None and not verification.ok:
        lines.append("# WARNING: verification of provision failed. May not be valid.")
    return "\n".join(lines) + "\n" + document
