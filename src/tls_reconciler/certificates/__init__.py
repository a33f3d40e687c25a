"""Certificate Authority contract and the bundled self-signed authority."""
from __future__ import annotations

from tls_reconciler.certificates.authority import (
    Authority,
    CertificateValidationError,
    CertOptions,
    ValidationFailure,
)
from tls_reconciler.certificates.ca import (
    CA_CERTIFICATE_KEY,
    CA_PRIVATE_KEY_KEY,
    CertificateAuthority,
    StoreAuthorityResolver,
)

__all__ = [
    "Authority",
    "CA_CERTIFICATE_KEY",
    "CA_PRIVATE_KEY_KEY",
    "CertOptions",
    "CertificateAuthority",
    "CertificateValidationError",
    "StoreAuthorityResolver",
    "ValidationFailure",
]
