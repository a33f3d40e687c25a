"""Records, instances and write outcomes shared by the store and the engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Field names of the two managed entries inside a certificate record.
CERTIFICATE_KEY = "tls.crt"
PRIVATE_KEY_KEY = "tls.key"

MANAGED_KEYS: tuple[str, str] = (CERTIFICATE_KEY, PRIVATE_KEY_KEY)


@dataclass(frozen=True)
class RecordId:
    """Namespaced name of a record or a process instance."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class CertificateRecord:
    """A namespaced key/value bag holding a certificate and its key.

    Parameters
    ----------
    record_id:
        Identity of the record.
    data:
        Field name to raw bytes. Only :data:`CERTIFICATE_KEY` and
        :data:`PRIVATE_KEY_KEY` are managed; other entries are preserved.
    resource_version:
        Incremented by the store on every persisted change; 0 for a record
        that does not exist yet.
    """

    record_id: RecordId
    data: dict[str, bytes] = field(default_factory=dict)
    resource_version: int = 0

    @property
    def certificate(self) -> bytes | None:
        return self.data.get(CERTIFICATE_KEY) or None

    @property
    def private_key(self) -> bytes | None:
        return self.data.get(PRIVATE_KEY_KEY) or None

    def has_pair(self) -> bool:
        """Return True when both managed fields are present and non-empty."""
        return self.certificate is not None and self.private_key is not None


@dataclass(frozen=True)
class ProcessInstance:
    """A running server instance that loads the certificate at start-up.

    Parameters
    ----------
    namespace:
        Namespace the instance runs in.
    name:
        Instance name; for the executing instance this is its hostname.
    labels:
        Group-identifying labels shared by sibling instances.
    """

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict, hash=False)

    @property
    def instance_id(self) -> RecordId:
        return RecordId(self.namespace, self.name)

    def matches(self, selector: dict[str, str]) -> bool:
        """Return True if every selector label is present with the same value."""
        return all(self.labels.get(key) == value for key, value in selector.items())


class WriteOutcome(str, Enum):
    """Result of an upsert against the store."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


__all__ = [
    "CERTIFICATE_KEY",
    "CertificateRecord",
    "MANAGED_KEYS",
    "PRIVATE_KEY_KEY",
    "ProcessInstance",
    "RecordId",
    "WriteOutcome",
]
