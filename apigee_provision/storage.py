"""
Key-value map and cache provisioning.

Both resources are created once; a conflict means they already exist.
"""
import logging
from typing import Dict, List, Optional

from .client import ManagementClient, Outcome, ensure
from .config import VariantRules

logger = logging.getLogger(__name__)

KVM_NAME = "remote-service"
CACHE_NAME = "remote-service"
ENCRYPT_KVM = True

# Edge answers 201, the managed-cloud API 200
CREATED = (200, 201)


class KVMProvisioner:
    """Ensures the encrypted remote-service key-value map exists"""

    def __init__(self, client: ManagementClient, rules: VariantRules):
        self.client = client
        self.rules = rules

    def ensure(self, name: str = KVM_NAME, entries: Optional[List[Dict[str, str]]] = None) -> Outcome:
        kvm = {"name": name, "encrypted": ENCRYPT_KVM}
        if entries and self.rules.seed_kvm_entries:
            kvm["entry"] = entries
        elif entries:
            logger.debug(f"kvm {name}: omitting initial entries for this backend")

        outcome, _ = ensure(
            lambda: self.client.post(self.client.env_path("keyvaluemaps"), json=kvm),
            f"kvm {name}",
            CREATED,
        )
        return outcome


class CacheProvisioner:
    """Ensures the remote-service cache exists"""

    def __init__(self, client: ManagementClient):
        self.client = client

    def ensure(self, name: str = CACHE_NAME) -> Outcome:
        outcome, _ = ensure(
            lambda: self.client.post(self.client.env_path("caches"), json={"name": name}, params={"name": name}),
            f"cache {name}",
            CREATED,
        )
        return outcome
