"""
Apigee management API client.

Thin wrapper over ``requests.Session``: builds organization scoped URLs,
applies the variant's authentication and turns transport errors into
``TransientRemoteFailure``. Status handling is left to callers.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from urllib3.exceptions import InsecureRequestWarning

from .config import ProvisionSettings
from .errors import TransientRemoteFailure

logger = logging.getLogger(__name__)

CONFLICT = 409


class Outcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


def is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def raise_for_status(response: requests.Response, resource: str) -> requests.Response:
    """Raise TransientRemoteFailure for any non-2xx response"""
    if not is_success(response):
        raise TransientRemoteFailure(resource, response.status_code, response.text)
    return response


def json_object(response: requests.Response, resource: str) -> Dict[str, Any]:
    """Decode a JSON object body; anything else is a TransientRemoteFailure"""
    try:
        body = response.json()
    except ValueError:
        body = None
    if body is None and not response.text.strip():
        return {}
    if not isinstance(body, dict):
        raise TransientRemoteFailure(resource, response.status_code, f"expected a JSON object: {response.text}")
    return body


def create_or_adopt(
    create_call: Callable[[], requests.Response],
    resource: str,
    created_statuses: Tuple[int, ...] = (200, 201),
) -> Tuple[Outcome, requests.Response]:
    """
    Run a creation call, treating a conflict as "already satisfied".

    Returns the outcome together with the response so callers can read a
    created resource's body or report a failure with its status.
    """
    response = create_call()
    if response.status_code == CONFLICT:
        logger.info(f"{resource} already exists")
        return Outcome.ALREADY_EXISTS, response
    if response.status_code in created_statuses:
        logger.info(f"{resource} created")
        return Outcome.CREATED, response
    return Outcome.FAILED, response


def ensure(
    create_call: Callable[[], requests.Response],
    resource: str,
    created_statuses: Tuple[int, ...] = (200, 201),
) -> Tuple[Outcome, requests.Response]:
    """create_or_adopt that raises on FAILED"""
    outcome, response = create_or_adopt(create_call, resource, created_statuses)
    if outcome == Outcome.FAILED:
        raise TransientRemoteFailure(resource, response.status_code, response.text)
    return outcome, response


class ManagementClient:
    """Apigee management REST API client"""

    def __init__(self, settings: ProvisionSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.org = settings.org
        self.env = settings.env
        self.timeout = settings.timeout
        self.api_base = f"{settings.management_base}/v1"

        self.owns_session = session is None
        self.session = session or requests.Session()
        self.session.verify = not settings.insecure
        if settings.insecure:
            requests.packages.urllib3.disable_warnings(category=InsecureRequestWarning)

        if settings.rules.bearer_auth:
            self.session.headers.update({"Authorization": f"Bearer {settings.token}"})
        else:
            self.session.auth = (settings.username, settings.password)
        self.session.headers.update({"Accept": "application/json"})

    def url(self, path: str) -> str:
        """Absolute URL for a path relative to the management API, or an absolute URL unchanged"""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.api_base}/{path.lstrip('/')}"

    def org_path(self, path: str = "") -> str:
        base = f"organizations/{self.org}"
        return f"{base}/{path}" if path else base

    def env_path(self, path: str = "") -> str:
        base = f"organizations/{self.org}/environments/{self.env}"
        return f"{base}/{path}" if path else base

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self.url(path)
        kwargs.setdefault("timeout", self.timeout)
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise TransientRemoteFailure(f"{method} {url}", None, str(exc)) from exc
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> requests.Response:
        return self.request("POST", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs) -> requests.Response:
        return self.request("DELETE", path, **kwargs)

    def close(self) -> None:
        if self.owns_session:
            self.session.close()
