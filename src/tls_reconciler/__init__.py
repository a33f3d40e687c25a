"""tls-reconciler — keeps a TLS leaf certificate valid inside a watched record.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick start
-----------
::

    from tls_reconciler import (
        CertificateAuthority, InMemoryClusterStore, RecordId,
        ReconcilerSettings, TLSReconciler,
    )

    settings = ReconcilerSettings(namespace="system", hostname="server-0")
    store = InMemoryClusterStore()
    store.create_or_update(
        settings.ca_record_id,
        lambda data: data.update(CertificateAuthority.generate_ca().to_record_data()),
    )
    result = TLSReconciler.from_settings(settings, store).reconcile(settings.tls_record_id)
    print(result.write_outcome, result.requeue_after)
"""
from __future__ import annotations

__version__: str = "0.1.0"

from tls_reconciler.certificates import (
    Authority,
    CertificateAuthority,
    CertificateValidationError,
    CertOptions,
    StoreAuthorityResolver,
    ValidationFailure,
)
from tls_reconciler.config import ReconcilerSettings
from tls_reconciler.decision import (
    DEFAULT_LIFETIME,
    Invalidate,
    Issue,
    Keep,
    RotationDecision,
    decide,
)
from tls_reconciler.errors import (
    AuthorityError,
    FetchError,
    IssuanceError,
    ReconcileError,
    RestartError,
    WriteError,
)
from tls_reconciler.evaluator import Absent, Evaluation, Invalid, Valid, evaluate
from tls_reconciler.models import (
    CERTIFICATE_KEY,
    PRIVATE_KEY_KEY,
    CertificateRecord,
    ProcessInstance,
    RecordId,
    WriteOutcome,
)
from tls_reconciler.reconciler import ReconcileResult, TLSReconciler
from tls_reconciler.restart import RestartOrchestrator, RestartReport
from tls_reconciler.store import (
    ClusterStore,
    FilesystemClusterStore,
    InMemoryClusterStore,
    InstanceNotFoundError,
    RecordNotFoundError,
)
from tls_reconciler.writer import RecordWriter

__all__ = [
    "Absent",
    "Authority",
    "AuthorityError",
    "CERTIFICATE_KEY",
    "CertOptions",
    "CertificateAuthority",
    "CertificateRecord",
    "CertificateValidationError",
    "ClusterStore",
    "DEFAULT_LIFETIME",
    "Evaluation",
    "FetchError",
    "FilesystemClusterStore",
    "InMemoryClusterStore",
    "InstanceNotFoundError",
    "Invalid",
    "Invalidate",
    "Issue",
    "IssuanceError",
    "Keep",
    "PRIVATE_KEY_KEY",
    "ProcessInstance",
    "ReconcileError",
    "ReconcileResult",
    "ReconcilerSettings",
    "RecordId",
    "RecordNotFoundError",
    "RecordWriter",
    "RestartError",
    "RestartOrchestrator",
    "RestartReport",
    "RotationDecision",
    "StoreAuthorityResolver",
    "TLSReconciler",
    "Valid",
    "ValidationFailure",
    "WriteError",
    "WriteOutcome",
    "__version__",
    "decide",
    "evaluate",
]
