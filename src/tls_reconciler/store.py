"""Cluster store — abstract client interface and two implementations.

ClusterStore defines the contract the reconciler consumes: reading and
upserting certificate records, and reading, listing and deleting process
instances. InMemoryClusterStore backs tests and embedding; FilesystemClusterStore
persists records and instance manifests under a base directory and backs
the CLI.
"""
from __future__ import annotations

import json
import os
import shutil
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, Field

from tls_reconciler.models import CertificateRecord, ProcessInstance, RecordId, WriteOutcome

Mutation = Callable[[dict[str, bytes]], None]


class RecordNotFoundError(KeyError):
    """Raised when a record is not present in the store."""

    def __init__(self, record_id: RecordId) -> None:
        super().__init__(f"Record {str(record_id)!r} does not exist.")
        self.record_id = record_id


class InstanceNotFoundError(KeyError):
    """Raised when a process instance is not present in the store."""

    def __init__(self, instance_id: RecordId) -> None:
        super().__init__(f"Instance {str(instance_id)!r} does not exist.")
        self.instance_id = instance_id


class ClusterStore(ABC):
    """Abstract base class for the backing store client."""

    @abstractmethod
    def get_record(self, record_id: RecordId) -> CertificateRecord:
        """Return a copy of the record.

        Raises
        ------
        RecordNotFoundError
            If no record exists under *record_id*.
        """

    @abstractmethod
    def create_or_update(self, record_id: RecordId, mutate: Mutation) -> WriteOutcome:
        """Create the record if absent, else apply *mutate* to its data.

        *mutate* receives a mutable copy of the record's data (empty when
        creating). Nothing is persisted when an existing record's data is
        left unchanged.

        Returns
        -------
        WriteOutcome
            ``CREATED``, ``UPDATED`` or ``UNCHANGED``.
        """

    @abstractmethod
    def get_instance(self, instance_id: RecordId) -> ProcessInstance:
        """Return the process instance.

        Raises
        ------
        InstanceNotFoundError
            If no instance exists under *instance_id*.
        """

    @abstractmethod
    def list_instances(self, namespace: str, labels: dict[str, str]) -> list[ProcessInstance]:
        """Return instances in *namespace* carrying all of *labels*."""

    @abstractmethod
    def delete_instance(self, instance_id: RecordId) -> None:
        """Terminate and remove a process instance.

        Raises
        ------
        InstanceNotFoundError
            If no instance exists under *instance_id*.
        """


class InMemoryClusterStore(ClusterStore):
    """Thread-safe in-memory store.

    Example
    -------
    ::

        store = InMemoryClusterStore()
        store.add_instance(ProcessInstance("system", "server-0", {"app": "server"}))
        outcome = store.create_or_update(RecordId("system", "tls"), lambda d: d.update(a=b"1"))
    """

    def __init__(self) -> None:
        self._records: dict[RecordId, CertificateRecord] = {}
        self._instances: dict[RecordId, ProcessInstance] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, record_id: RecordId) -> CertificateRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            return CertificateRecord(
                record_id=record.record_id,
                data=dict(record.data),
                resource_version=record.resource_version,
            )

    def create_or_update(self, record_id: RecordId, mutate: Mutation) -> WriteOutcome:
        with self._lock:
            existing = self._records.get(record_id)
            data = dict(existing.data) if existing is not None else {}
            mutate(data)

            if existing is None:
                self._records[record_id] = CertificateRecord(record_id, data, 1)
                return WriteOutcome.CREATED

            if data == existing.data:
                return WriteOutcome.UNCHANGED

            self._records[record_id] = CertificateRecord(
                record_id, data, existing.resource_version + 1
            )
            return WriteOutcome.UPDATED

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def add_instance(self, instance: ProcessInstance) -> None:
        """Register a running instance."""
        with self._lock:
            self._instances[instance.instance_id] = instance

    def get_instance(self, instance_id: RecordId) -> ProcessInstance:
        with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)
            return instance

    def list_instances(self, namespace: str, labels: dict[str, str]) -> list[ProcessInstance]:
        with self._lock:
            return sorted(
                (
                    i
                    for i in self._instances.values()
                    if i.namespace == namespace and i.matches(labels)
                ),
                key=lambda i: i.name,
            )

    def delete_instance(self, instance_id: RecordId) -> None:
        with self._lock:
            if instance_id not in self._instances:
                raise InstanceNotFoundError(instance_id)
            del self._instances[instance_id]


class InstanceManifest(BaseModel):
    """On-disk JSON form of a process instance."""

    namespace: str
    name: str
    labels: dict[str, str] = Field(default_factory=dict)

    def to_instance(self) -> ProcessInstance:
        return ProcessInstance(namespace=self.namespace, name=self.name, labels=dict(self.labels))


class FilesystemClusterStore(ClusterStore):
    """Filesystem-backed store.

    Records live under ``records/<namespace>/<name>/``. Each version of a
    record is written to its own ``v<resource_version>/`` directory with
    one file per data field, and becomes visible only when ``meta.json``
    is atomically replaced to point at it. A failed write therefore
    leaves the previous version intact. Instances are JSON manifests at
    ``instances/<namespace>/<name>.json``.

    Parameters
    ----------
    base_dir:
        Root directory of the store.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, record_id: RecordId) -> CertificateRecord:
        with self._lock:
            return self._read_record(record_id)

    def create_or_update(self, record_id: RecordId, mutate: Mutation) -> WriteOutcome:
        with self._lock:
            try:
                existing: CertificateRecord | None = self._read_record(record_id)
            except RecordNotFoundError:
                existing = None

            data = dict(existing.data) if existing is not None else {}
            mutate(data)

            if existing is None:
                self._write_record(CertificateRecord(record_id, data, 1))
                return WriteOutcome.CREATED

            if data == existing.data:
                return WriteOutcome.UNCHANGED

            self._write_record(
                CertificateRecord(record_id, data, existing.resource_version + 1)
            )
            return WriteOutcome.UPDATED

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def add_instance(self, instance: ProcessInstance) -> None:
        """Write an instance manifest."""
        path = self._instance_path(instance.instance_id)
        manifest = InstanceManifest(
            namespace=instance.namespace, name=instance.name, labels=dict(instance.labels)
        )
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")

    def get_instance(self, instance_id: RecordId) -> ProcessInstance:
        path = self._instance_path(instance_id)
        with self._lock:
            if not path.exists():
                raise InstanceNotFoundError(instance_id)
            raw = path.read_text(encoding="utf-8")
        return InstanceManifest.model_validate_json(raw).to_instance()

    def list_instances(self, namespace: str, labels: dict[str, str]) -> list[ProcessInstance]:
        ns_dir = self._base_dir / "instances" / _safe(namespace)
        with self._lock:
            if not ns_dir.is_dir():
                return []
            raw = [p.read_text(encoding="utf-8") for p in sorted(ns_dir.glob("*.json"))]
        instances = [InstanceManifest.model_validate_json(r).to_instance() for r in raw]
        return [i for i in instances if i.matches(labels)]

    def delete_instance(self, instance_id: RecordId) -> None:
        path = self._instance_path(instance_id)
        with self._lock:
            if not path.exists():
                raise InstanceNotFoundError(instance_id)
            path.unlink()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record_dir(self, record_id: RecordId) -> Path:
        return self._base_dir / "records" / _safe(record_id.namespace) / _safe(record_id.name)

    def _instance_path(self, instance_id: RecordId) -> Path:
        return (
            self._base_dir
            / "instances"
            / _safe(instance_id.namespace)
            / f"{_safe(instance_id.name)}.json"
        )

    def _read_record(self, record_id: RecordId) -> CertificateRecord:
        record_dir = self._record_dir(record_id)
        meta_path = record_dir / "meta.json"
        if not meta_path.exists():
            raise RecordNotFoundError(record_id)

        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        version = int(meta["resource_version"])
        data_dir = record_dir / f"v{version}"
        data = {key: (data_dir / filename).read_bytes() for filename, key in meta["fields"].items()}
        return CertificateRecord(record_id=record_id, data=data, resource_version=version)

    def _write_record(self, record: CertificateRecord) -> None:
        record_dir = self._record_dir(record.record_id)
        fields = {_safe(key): key for key in record.data}
        if len(fields) != len(record.data):
            raise ValueError(f"record {str(record.record_id)!r} has field names that collide on disk")

        data_dir = record_dir / f"v{record.resource_version}"
        if data_dir.exists():
            shutil.rmtree(data_dir)
        data_dir.mkdir(parents=True)

        try:
            for filename, key in fields.items():
                (data_dir / filename).write_bytes(record.data[key])
            meta = {"resource_version": record.resource_version, "fields": fields}
            staged = record_dir / "meta.json.tmp"
            staged.write_text(json.dumps(meta, indent=2), encoding="utf-8")
            os.replace(staged, record_dir / "meta.json")
        except Exception:
            shutil.rmtree(data_dir, ignore_errors=True)
            raise

        for old in record_dir.glob("v*"):
            if old.is_dir() and old != data_dir:
                shutil.rmtree(old, ignore_errors=True)


def _safe(name: str) -> str:
    """Return *name* with path separators neutralised."""
    return name.replace("/", "_").replace("\\", "_")


__all__ = [
    "ClusterStore",
    "FilesystemClusterStore",
    "InMemoryClusterStore",
    "InstanceManifest",
    "InstanceNotFoundError",
    "Mutation",
    "RecordNotFoundError",
]
