"""Validity evaluation of a stored certificate/key pair.

:func:`evaluate` classifies the pair held by a record as absent, invalid
or valid. It never raises for bad certificate material: unparseable,
mismatched, expired or foreign certificates all come back as
:class:`Invalid` so the caller can route them to reissuance.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509 import load_pem_x509_certificate

from tls_reconciler.certificates.authority import Authority, CertificateValidationError
from tls_reconciler.models import CertificateRecord


class Evaluation:
    """Base class of the evaluator's results."""


@dataclass(frozen=True)
class Absent(Evaluation):
    """One or both managed fields are missing."""


@dataclass(frozen=True)
class Invalid(Evaluation):
    """The stored pair cannot be used.

    Parameters
    ----------
    reason:
        Human-readable description of the defect.
    error:
        The parse or validation error that was recovered from.
    """

    reason: str
    error: Exception | None = None


@dataclass(frozen=True)
class Valid(Evaluation):
    """The stored pair is usable until *not_after*."""

    not_after: datetime.datetime


def evaluate(
    record: CertificateRecord,
    authority: Authority,
    dns_name: str | None = None,
    now: datetime.datetime | None = None,
) -> Evaluation:
    """Classify the certificate/key pair stored in *record*.

    Parameters
    ----------
    record:
        The record to inspect; may have empty fields.
    authority:
        Authority the certificate must have been issued by.
    dns_name:
        If given, the certificate must be issued for this DNS name.
    now:
        Reference time (defaults to UTC now).

    Returns
    -------
    Evaluation
        :class:`Absent`, :class:`Invalid` or :class:`Valid`.
    """
    cert_pem, key_pem = record.certificate, record.private_key
    if cert_pem is None or key_pem is None:
        return Absent()

    try:
        cert = load_pem_x509_certificate(cert_pem)
    except ValueError as exc:
        return Invalid(reason=f"cannot parse certificate: {exc}", error=exc)

    try:
        _check_key_matches(cert, key_pem)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        return Invalid(reason=f"private key does not belong to certificate: {exc}", error=exc)

    try:
        authority.validate_cert(cert, dns_name=dns_name, now=now)
    except CertificateValidationError as exc:
        return Invalid(reason=f"{exc.kind.value}: {exc}", error=exc)

    return Valid(not_after=cert.not_valid_after_utc)


def _check_key_matches(cert: x509.Certificate, key_pem: bytes) -> None:
    key = serialization.load_pem_private_key(key_pem, password=None)
    cert_public = cert.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    key_public = key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    if cert_public != key_public:
        raise ValueError("public keys differ")


__all__ = ["Absent", "Evaluation", "Invalid", "Valid", "evaluate"]
