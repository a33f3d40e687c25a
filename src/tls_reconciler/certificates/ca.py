"""Self-signed Certificate Authority and its per-pass resolution.

CertificateAuthority issues TLS server leaf certificates and validates
them against its own certificate. Intended for development and in-cluster
webhook serving; an enterprise PKI can be plugged in by implementing
:class:`~tls_reconciler.certificates.authority.Authority`.

StoreAuthorityResolver loads the authority from a well-known record on
every call, so CA material rotated externally is picked up by the next
reconciliation pass.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from tls_reconciler.certificates.authority import (
    Authority,
    CertificateValidationError,
    CertOptions,
    ValidationFailure,
)
from tls_reconciler.errors import AuthorityError
from tls_reconciler.models import RecordId
from tls_reconciler.store import ClusterStore, RecordNotFoundError

logger = logging.getLogger(__name__)

CA_CERTIFICATE_KEY = "ca.crt"
CA_PRIVATE_KEY_KEY = "ca.key"


@dataclass
class CertificateAuthority(Authority):
    """Self-signed Certificate Authority for leaf certificate issuance.

    Parameters
    ----------
    ca_cert:
        The CA's own X.509 certificate.
    ca_key:
        The CA's RSA private key.
    organization:
        Organization written into issued leaf subjects.
    leaf_key_size:
        RSA key size for issued leaf certificates.
    """

    ca_cert: x509.Certificate
    ca_key: RSAPrivateKey
    organization: str = "tls-reconciler"
    leaf_key_size: int = 2048

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def generate_ca(
        cls,
        common_name: str = "tls-reconciler CA",
        organization: str = "tls-reconciler",
        validity_days: int = 3650,
        ca_key_size: int = 3072,
    ) -> "CertificateAuthority":
        """Generate a new self-signed Certificate Authority.

        Parameters
        ----------
        common_name:
            Common name for the CA certificate subject.
        organization:
            Organization name for the CA and issued leaf subjects.
        validity_days:
            How long the CA certificate should be valid (default 10 years).
        ca_key_size:
            RSA key size in bits for the CA key pair. Must be at least 2048.

        Raises
        ------
        ValueError
            If ``ca_key_size`` is less than 2048.
        """
        if ca_key_size < 2048:
            raise ValueError(f"ca_key_size must be at least 2048 bits, got {ca_key_size}")
        ca_key: RSAPrivateKey = rsa.generate_private_key(
            public_exponent=65537,
            key_size=ca_key_size,
        )

        now = datetime.datetime.now(datetime.timezone.utc)

        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            ]
        )

        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
                critical=False,
            )
            .sign(ca_key, hashes.SHA256())
        )

        return cls(ca_cert=ca_cert, ca_key=ca_key, organization=organization)

    # ------------------------------------------------------------------
    # Authority interface
    # ------------------------------------------------------------------

    def generate_certificate(
        self,
        options: CertOptions,
        now: datetime.datetime | None = None,
    ) -> tuple[bytes, bytes]:
        """Issue a TLS server certificate for ``options.dns_name``.

        The certificate is valid from *now* (default: current UTC time)
        until ``options.not_after`` and carries the DNS name both as common
        name and as Subject Alternative Name.

        Raises
        ------
        ValueError
            If ``options.not_after`` does not lie after *now*.
        """
        not_before = now or datetime.datetime.now(datetime.timezone.utc)
        if options.not_after <= not_before:
            raise ValueError(
                f"not_after {options.not_after.isoformat()} must be after "
                f"not_before {not_before.isoformat()}"
            )

        leaf_key: RSAPrivateKey = rsa.generate_private_key(
            public_exponent=65537,
            key_size=self.leaf_key_size,
        )

        subject = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, options.dns_name),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
            ]
        )

        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(self.ca_cert.subject)
            .public_key(leaf_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(options.not_after)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(options.dns_name)]),
                critical=False,
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=True,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
                ),
                critical=False,
            )
            .sign(self.ca_key, hashes.SHA256())
        )

        cert_pem = cert.public_bytes(serialization.Encoding.PEM)
        key_pem = leaf_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cert_pem, key_pem

    def validate_cert(
        self,
        cert: x509.Certificate,
        dns_name: str | None = None,
        now: datetime.datetime | None = None,
    ) -> None:
        """Check issuer, signature, validity window and optionally the subject."""
        try:
            cert.verify_directly_issued_by(self.ca_cert)
        except (ValueError, TypeError, InvalidSignature) as exc:
            raise CertificateValidationError(
                ValidationFailure.CHAIN_MISMATCH,
                f"certificate is not signed by this authority: {exc or type(exc).__name__}",
            ) from exc

        reference = now or datetime.datetime.now(datetime.timezone.utc)
        if reference >= cert.not_valid_after_utc:
            raise CertificateValidationError(
                ValidationFailure.EXPIRED,
                f"certificate expired at {cert.not_valid_after_utc.isoformat()}",
            )
        if reference < cert.not_valid_before_utc:
            raise CertificateValidationError(
                ValidationFailure.OTHER,
                f"certificate is not yet valid (valid from {cert.not_valid_before_utc.isoformat()})",
            )

        if dns_name is None:
            return
        # Extensions are decoded lazily; a malformed SAN surfaces here.
        try:
            names = _dns_names(cert)
        except ValueError as exc:
            raise CertificateValidationError(
                ValidationFailure.OTHER,
                f"cannot read subject alternative names: {exc}",
            ) from exc
        if dns_name not in names:
            raise CertificateValidationError(
                ValidationFailure.OTHER,
                f"certificate is not issued for {dns_name!r}",
            )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def ca_cert_pem(self) -> bytes:
        """Return PEM-encoded CA certificate bytes."""
        return self.ca_cert.public_bytes(serialization.Encoding.PEM)

    def ca_key_pem(self) -> bytes:
        """Return PEM-encoded CA private key bytes (unencrypted)."""
        return self.ca_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )

    @classmethod
    def from_pem(
        cls,
        cert_pem: bytes,
        key_pem: bytes,
        leaf_key_size: int = 2048,
    ) -> "CertificateAuthority":
        """Reconstruct a CertificateAuthority from PEM-encoded bytes.

        Raises
        ------
        ValueError
            If either PEM block cannot be parsed.
        TypeError
            If the key is not an RSA private key.
        """
        from cryptography.hazmat.primitives.serialization import load_pem_private_key
        from cryptography.x509 import load_pem_x509_certificate

        ca_cert = load_pem_x509_certificate(cert_pem)
        ca_key = load_pem_private_key(key_pem, password=None)
        if not isinstance(ca_key, RSAPrivateKey):
            raise TypeError("CA key must be an RSA private key")

        org_attrs = ca_cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
        organization = str(org_attrs[0].value) if org_attrs else "tls-reconciler"

        return cls(
            ca_cert=ca_cert,
            ca_key=ca_key,
            organization=organization,
            leaf_key_size=leaf_key_size,
        )

    def to_record_data(self) -> dict[str, bytes]:
        """Return the record fields under which this CA is stored."""
        return {CA_CERTIFICATE_KEY: self.ca_cert_pem(), CA_PRIVATE_KEY_KEY: self.ca_key_pem()}


class StoreAuthorityResolver:
    """Loads the Certificate Authority from its record on every call.

    Parameters
    ----------
    store:
        Store client holding the CA record.
    ca_record_id:
        Identity of the record with ``ca.crt`` and ``ca.key`` fields.
    leaf_key_size:
        RSA key size for leaf certificates issued by the resolved CA.
    """

    def __init__(self, store: ClusterStore, ca_record_id: RecordId, leaf_key_size: int = 2048) -> None:
        self._store = store
        self._ca_record_id = ca_record_id
        self._leaf_key_size = leaf_key_size

    def __call__(self) -> CertificateAuthority:
        """Return the current authority.

        Raises
        ------
        AuthorityError
            If the CA record is missing, incomplete or unparseable.
        """
        try:
            record = self._store.get_record(self._ca_record_id)
        except RecordNotFoundError as exc:
            raise AuthorityError(f"CA record {str(self._ca_record_id)!r} does not exist") from exc
        except Exception as exc:
            raise AuthorityError(f"cannot read CA record {str(self._ca_record_id)!r}: {exc}") from exc

        cert_pem = record.data.get(CA_CERTIFICATE_KEY)
        key_pem = record.data.get(CA_PRIVATE_KEY_KEY)
        if not cert_pem or not key_pem:
            raise AuthorityError(
                f"CA record {str(self._ca_record_id)!r} lacks {CA_CERTIFICATE_KEY!r} or {CA_PRIVATE_KEY_KEY!r}"
            )

        try:
            ca = CertificateAuthority.from_pem(cert_pem, key_pem, leaf_key_size=self._leaf_key_size)
        except (ValueError, TypeError) as exc:
            raise AuthorityError(f"cannot load CA from {str(self._ca_record_id)!r}: {exc}") from exc

        logger.debug("Resolved certificate authority from %s", self._ca_record_id)
        return ca


def _dns_names(cert: x509.Certificate) -> list[str]:
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)
