"""
Post-provisioning verification.

Every probe always runs. Failures are collected into a VerificationReport
rather than raised, so the caller can still emit a (flagged) configuration.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from .config import ProvisionSettings
from .credentials import Credential

logger = logging.getLogger(__name__)

CERTS_URL_FORMAT = "{}/certs"
PRODUCTS_URL_FORMAT = "{}/products"
VERIFY_API_KEY_URL_FORMAT = "{}/verifyApiKey"
QUOTAS_URL_FORMAT = "{}/quotas"
ANALYTICS_URL_FORMAT = "{}/analytics/organization/{}/environment/{}"
LEGACY_ANALYTICS_URL_FORMAT = "{}/axpublisher/organization/{}/environment/{}"


@dataclass(frozen=True)
class Probe:
    name: str
    method: str
    url: str
    body: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, str]] = None
    accepted: Tuple[int, ...] = ()


@dataclass(frozen=True)
class VerificationFailure:
    probe: str
    url: str
    status: Optional[int]
    detail: str = ""

    def __str__(self) -> str:
        status = f"status {self.status}" if self.status is not None else "no response"
        text = f"{self.probe} ({self.url}): {status}"
        return f"{text} - {self.detail[:200]}" if self.detail else text


@dataclass
class VerificationReport:
    attempted: List[str] = field(default_factory=list)
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def combine(self, other: "VerificationReport") -> "VerificationReport":
        return VerificationReport(self.attempted + other.attempted, self.failures + other.failures)


def remote_service_probes(remote_service_url: str, credential: Credential) -> List[Probe]:
    base = remote_service_url.rstrip("/")
    return [
        Probe("certs", "GET", CERTS_URL_FORMAT.format(base)),
        Probe("products", "GET", PRODUCTS_URL_FORMAT.format(base)),
        # 401 is expected: there is no valid API key to test with
        Probe(
            "verifyApiKey",
            "POST",
            VERIFY_API_KEY_URL_FORMAT.format(base),
            body={"apiKey": credential.key},
            accepted=(401,),
        ),
        Probe("quotas", "POST", QUOTAS_URL_FORMAT.format(base), body={}),
    ]


def internal_proxy_probes(settings: ProvisionSettings) -> List[Probe]:
    internal = settings.internal_proxy_url.rstrip("/")
    if settings.rules.legacy_analytics:
        url = LEGACY_ANALYTICS_URL_FORMAT.format(internal, settings.org, settings.env)
        return [Probe("analytics", "POST", url, body={})]
    url = ANALYTICS_URL_FORMAT.format(internal, settings.org, settings.env)
    params = {
        "tenant": f"{settings.org}~{settings.env}",
        "relative_file_path": "fake",
        "file_content_type": "application/x-gzip",
        "encrypt": "true",
    }
    return [Probe("analytics", "GET", url, params=params)]


class VerificationProbe:
    """Issues synthetic requests against the deployed proxies"""

    def __init__(self, settings: ProvisionSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.owns_session = session is None
        self.session = session or requests.Session()
        self.session.verify = not settings.insecure

    def close(self) -> None:
        if self.owns_session:
            self.session.close()

    def probes(self, credential: Credential) -> List[Probe]:
        probes: List[Probe] = []
        if self.settings.rules.verifies_internal_proxy:
            probes.extend(internal_proxy_probes(self.settings))
        probes.extend(remote_service_probes(self.settings.remote_service_proxy_url, credential))
        return probes

    def verify(self, credential: Credential, probes: Optional[List[Probe]] = None) -> VerificationReport:
        report = VerificationReport()
        for probe in probes if probes is not None else self.probes(credential):
            report = report.combine(self.run_probe(probe, credential))
        return report

    def run_probe(self, probe: Probe, credential: Credential) -> VerificationReport:
        logger.info(f"verifying {probe.name}: {probe.method} {probe.url}")
        failure = None
        try:
            response = self.session.request(
                probe.method,
                probe.url,
                json=probe.body,
                params=probe.params,
                auth=(credential.key, credential.secret),
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            failure = VerificationFailure(probe.name, probe.url, None, str(exc))
        else:
            status = response.status_code
            if not (200 <= status < 300 or status in probe.accepted):
                failure = VerificationFailure(probe.name, probe.url, status, response.text)

        if failure:
            logger.debug(f"probe failed: {failure}")
            return VerificationReport([probe.name], [failure])
        return VerificationReport([probe.name], [])
