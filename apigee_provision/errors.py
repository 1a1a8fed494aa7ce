"""
Error kinds raised while provisioning.

A conflict on creation is never an error: it is reported as
``Outcome.ALREADY_EXISTS`` by ``client.create_or_adopt``. Verification
failures are collected as values (see ``verify.VerificationFailure``).
"""
from typing import List, Optional


class ProvisionError(Exception):
    """Base class for provisioning errors"""


class ConfigurationMissing(ProvisionError):
    """Required settings or secret material are absent; raised before any remote mutation"""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"missing required value(s): {', '.join(self.missing)}")


class TransientRemoteFailure(ProvisionError):
    """A non-conflict, non-2xx response (or network error) from the management API"""

    def __init__(self, resource: str, status: Optional[int] = None, detail: str = ""):
        self.resource = resource
        self.status = status
        self.detail = detail
        message = f"{resource}: "
        message += f"status {status}" if status is not None else "request failed"
        if detail:
            message += f" - {detail[:300]}"
        super().__init__(message)


class PartialProvisioningFailure(ProvisionError):
    """
    A multi-step remote sequence failed after its checkpoint.

    Remote state may be inconsistent (e.g. a credential exists that is not
    bound to its product). Re-running provisioning is the remedy.
    """

    def __init__(self, resource: str, key: str, cause: ProvisionError):
        self.resource = resource
        self.key = key
        self.cause = cause
        super().__init__(
            f"{resource}: credential {key} was created but not completed ({cause}); re-run provisioning"
        )


class ArtifactError(ProvisionError):
    """A proxy bundle could not be customized"""
