import json
from typing import Any, Dict, List, Optional, Tuple

from apigee_provision.config import ProvisionSettings, Variant

MANAGEMENT = "https://mgmt.example.com"
API = f"{MANAGEMENT}/v1"
RUNTIME = "https://rt.example.com"
ORG_API = f"{API}/organizations/acme"
ENV_API = f"{ORG_API}/environments/test"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeSession:
    """Stand-in for requests.Session that answers from a route table.

    Routes map (METHOD, url) to one or more responses; they are returned in
    order and the last one repeats. Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[FakeResponse]] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.headers: Dict[str, str] = {}
        self.auth = None
        self.verify = True
        self.closed = False

    def add(self, method: str, url: str, *responses: FakeResponse) -> "FakeSession":
        self.routes[(method, url)] = list(responses)
        return self

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url))
        if not queue:
            return FakeResponse(404, text=f"no route for {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def called(self, method: str, url: str) -> List[Dict[str, Any]]:
        return [kwargs for m, u, kwargs in self.calls if m == method and u == url]

    def methods(self) -> List[str]:
        return [f"{method} {url}" for method, url, _ in self.calls]


def make_settings(variant: Variant, **overrides) -> ProvisionSettings:
    values: Dict[str, Any] = {"org": "acme", "env": "test", "variant": variant, "management_base": MANAGEMENT}
    if variant == Variant.HYBRID:
        values.update(runtime_base=RUNTIME, token="tok", developer_email="dev@example.com")
    elif variant == Variant.OPDK:
        values.update(runtime_base=RUNTIME, username="admin", password="secret")
    else:
        values.update(username="admin", password="secret")
    values.update(overrides)
    return ProvisionSettings(**values).resolve()
