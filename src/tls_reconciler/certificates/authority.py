"""Certificate Authority contract consumed by the reconciler."""
from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from cryptography import x509


@dataclass(frozen=True)
class CertOptions:
    """Issuance parameters for a single leaf certificate.

    Parameters
    ----------
    not_after:
        Expiry instant of the certificate (timezone-aware).
    dns_name:
        DNS name the certificate is issued for; used as common name and
        as the only Subject Alternative Name.
    """

    not_after: datetime.datetime
    dns_name: str


class ValidationFailure(str, Enum):
    """Why a leaf certificate was rejected by its authority."""

    EXPIRED = "expired"
    CHAIN_MISMATCH = "chain-mismatch"
    OTHER = "other"


class CertificateValidationError(Exception):
    """Raised by :meth:`Authority.validate_cert` when a certificate is rejected."""

    def __init__(self, kind: ValidationFailure, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class Authority(ABC):
    """Abstract signer able to issue and validate leaf certificates."""

    @abstractmethod
    def generate_certificate(
        self,
        options: CertOptions,
        now: datetime.datetime | None = None,
    ) -> tuple[bytes, bytes]:
        """Issue a leaf certificate.

        Returns
        -------
        tuple[bytes, bytes]
            PEM-encoded certificate and PEM-encoded private key.
        """

    @abstractmethod
    def validate_cert(
        self,
        cert: x509.Certificate,
        dns_name: str | None = None,
        now: datetime.datetime | None = None,
    ) -> None:
        """Check that *cert* was issued by this authority and is current.

        Raises
        ------
        CertificateValidationError
            If the signature, issuer, validity window or subject is wrong.
        """
