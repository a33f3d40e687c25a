"""Exception taxonomy for a reconciliation pass.

Every error that escapes :meth:`TLSReconciler.reconcile` derives from
:class:`ReconcileError`; the hosting substrate treats any of them as a
request to retry the pass with backoff. Parse and validation failures of
the stored certificate never surface here, they are routed to reissuance.
"""
from __future__ import annotations


class ReconcileError(Exception):
    """Base class for errors that abort a reconciliation pass."""


class FetchError(ReconcileError):
    """Raised when the watched record cannot be read from the store."""


class AuthorityError(FetchError):
    """Raised when the Certificate Authority cannot be resolved."""


class IssuanceError(ReconcileError):
    """Raised when the authority fails to generate a leaf certificate."""


class WriteError(ReconcileError):
    """Raised when the upsert of the certificate record fails."""


class RestartError(Exception):
    """A single instance could not be terminated during a restart.

    Never raised out of a pass: the orchestrator logs it and collects it
    in :attr:`RestartReport.failures`.

    Parameters
    ----------
    instance:
        Name of the instance whose deletion failed.
    cause:
        The underlying store error.
    """

    def __init__(self, instance: str, cause: BaseException) -> None:
        super().__init__(f"cannot delete instance {instance!r}: {cause}")
        self.instance = instance
        self.cause = cause


__all__ = [
    "AuthorityError",
    "FetchError",
    "IssuanceError",
    "ReconcileError",
    "RestartError",
    "WriteError",
]
