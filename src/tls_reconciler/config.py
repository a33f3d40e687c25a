"""Reconciler configuration via Pydantic Settings.

Values are read from ``TLS_RECONCILER_*`` environment variables or a
``.env`` file. The namespace and hostname also honour the plain
``NAMESPACE`` and ``HOSTNAME`` variables a pod exposes. Settings are
loaded once by the caller and handed to the engine; nothing in the engine
reads the environment itself.
"""
from __future__ import annotations

import datetime
import socket

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tls_reconciler.decision import service_dns_name
from tls_reconciler.models import RecordId


class ReconcilerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TLS_RECONCILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    namespace: str = Field(
        default="default",
        validation_alias=AliasChoices("TLS_RECONCILER_NAMESPACE", "NAMESPACE", "namespace"),
    )
    hostname: str = Field(
        default_factory=socket.gethostname,
        validation_alias=AliasChoices("TLS_RECONCILER_HOSTNAME", "HOSTNAME", "hostname"),
    )

    # Name of the record whose update restarts the serving instances.
    tls_record_name: str = "tls"
    ca_record_name: str = "ca"
    service_name: str = "webhook-service"

    certificate_lifetime_hours: int = 6 * 30 * 24
    key_size: int = 2048

    @field_validator("certificate_lifetime_hours")
    @classmethod
    def validate_lifetime(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("certificate_lifetime_hours must be positive")
        return v

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        if v < 2048:
            raise ValueError(f"key_size must be at least 2048 bits, got {v}")
        return v

    @property
    def certificate_lifetime(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self.certificate_lifetime_hours)

    @property
    def dns_name(self) -> str:
        return service_dns_name(self.service_name, self.namespace)

    @property
    def tls_record_id(self) -> RecordId:
        return RecordId(self.namespace, self.tls_record_name)

    @property
    def ca_record_id(self) -> RecordId:
        return RecordId(self.namespace, self.ca_record_name)
