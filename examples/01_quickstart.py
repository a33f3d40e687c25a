#!/usr/bin/env python3
"""Example: Quickstart

Bootstraps a serving certificate in an in-memory store, then expires it
and shows the rotation restarting the serving instances, self last.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install tls-reconciler
"""
from __future__ import annotations

import datetime

import tls_reconciler
from tls_reconciler import (
    CertificateAuthority,
    CertOptions,
    InMemoryClusterStore,
    ProcessInstance,
    ReconcilerSettings,
    TLSReconciler,
)
from tls_reconciler.models import CERTIFICATE_KEY, PRIVATE_KEY_KEY


def main() -> None:
    print(f"tls-reconciler version: {tls_reconciler.__version__}")

    settings = ReconcilerSettings(namespace="system", hostname="server-0")
    store = InMemoryClusterStore()
    ca = CertificateAuthority.generate_ca()
    store.create_or_update(settings.ca_record_id, lambda data: data.update(ca.to_record_data()))
    for name in ("server-0", "server-1", "server-2"):
        store.add_instance(ProcessInstance(settings.namespace, name, {"app": "server"}))

    reconciler = TLSReconciler.from_settings(settings, store)

    # Step 1: first pass issues a certificate; nothing is restarted
    result = reconciler.reconcile(settings.tls_record_id)
    print(f"Bootstrap: {result.write_outcome.value}, next pass in {result.requeue_after}")

    # Step 2: replace it with an expired certificate
    now = datetime.datetime.now(datetime.timezone.utc)
    cert, key = ca.generate_certificate(
        CertOptions(not_after=now - datetime.timedelta(hours=1), dns_name=settings.dns_name),
        now=now - datetime.timedelta(days=2),
    )
    store.create_or_update(
        settings.tls_record_id,
        lambda data: data.update({CERTIFICATE_KEY: cert, PRIVATE_KEY_KEY: key}),
    )

    # Step 3: the next pass rotates it and restarts the servers
    result = reconciler.reconcile(settings.tls_record_id)
    print(f"Rotation: {result.write_outcome.value}")
    if result.restart is not None:
        print(f"Restarted (in order): {', '.join(result.restart.terminated)}")


if __name__ == "__main__":
    main()
