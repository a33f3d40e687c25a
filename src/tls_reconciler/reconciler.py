"""TLS record reconciler — the single entry point invoked per change event.

A pass fetches the record, evaluates the stored pair against the current
authority, issues a replacement when the pair is missing or invalid,
writes the result back and, when the serving certificate record really
changed, restarts the serving instances. It returns the delay after which
the hosting substrate must run it again; it never sleeps or spawns work.

Passes for the same record are expected to be serialized by the caller.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from tls_reconciler.certificates.authority import Authority, CertOptions
from tls_reconciler.decision import DEFAULT_LIFETIME, Invalidate, Issue, RotationDecision, decide
from tls_reconciler.errors import AuthorityError, FetchError, IssuanceError
from tls_reconciler.evaluator import evaluate
from tls_reconciler.models import (
    CERTIFICATE_KEY,
    PRIVATE_KEY_KEY,
    CertificateRecord,
    RecordId,
    WriteOutcome,
)
from tls_reconciler.restart import RestartOrchestrator, RestartReport
from tls_reconciler.store import ClusterStore, RecordNotFoundError
from tls_reconciler.writer import RecordWriter

if TYPE_CHECKING:
    from tls_reconciler.config import ReconcilerSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful pass.

    Parameters
    ----------
    record_id:
        The reconciled record.
    decision:
        What was decided for the stored pair.
    write_outcome:
        Final outcome of the record upsert.
    requeue_after:
        Delay after which the record must be reconciled again.
    restart:
        Report of the restart orchestration, or None if it did not run.
    """

    record_id: RecordId
    decision: RotationDecision
    write_outcome: WriteOutcome
    requeue_after: datetime.timedelta
    restart: RestartReport | None = None


class TLSReconciler:
    """Keeps the certificate/key pair of watched records valid.

    Parameters
    ----------
    store:
        Store client holding the records and process instances.
    authority_resolver:
        Called once per pass to obtain the current authority.
    dns_name:
        DNS name issued certificates are bound to.
    reserved_record:
        The record whose update triggers a restart of the serving instances.
    orchestrator:
        Restart orchestrator for the serving instances.
    lifetime:
        Lifetime requested for newly issued certificates.
    """

    def __init__(
        self,
        store: ClusterStore,
        authority_resolver: Callable[[], Authority],
        dns_name: str,
        reserved_record: RecordId,
        orchestrator: RestartOrchestrator,
        lifetime: datetime.timedelta = DEFAULT_LIFETIME,
    ) -> None:
        self._store = store
        self._resolve_authority = authority_resolver
        self._dns_name = dns_name
        self._reserved_record = reserved_record
        self._orchestrator = orchestrator
        self._lifetime = lifetime
        self._writer = RecordWriter(store)

    @classmethod
    def from_settings(cls, settings: "ReconcilerSettings", store: ClusterStore) -> "TLSReconciler":
        """Wire a reconciler whose authority is loaded from the CA record."""
        from tls_reconciler.certificates.ca import StoreAuthorityResolver

        return cls(
            store=store,
            authority_resolver=StoreAuthorityResolver(
                store, settings.ca_record_id, leaf_key_size=settings.key_size
            ),
            dns_name=settings.dns_name,
            reserved_record=settings.tls_record_id,
            orchestrator=RestartOrchestrator(store, settings.namespace, settings.hostname),
            lifetime=settings.certificate_lifetime,
        )

    def reconcile(self, record_id: RecordId, now: datetime.datetime | None = None) -> ReconcileResult:
        """Run one reconciliation pass for *record_id*.

        Parameters
        ----------
        record_id:
            The record named by the change event.
        now:
            Reference time (defaults to UTC now).

        Returns
        -------
        ReconcileResult
            Outcome of the pass, including the requeue delay.

        Raises
        ------
        FetchError
            If the record or the authority cannot be read.
        IssuanceError
            If the authority fails to issue a certificate.
        WriteError
            If the record cannot be written.
        """
        reference = now or datetime.datetime.now(datetime.timezone.utc)
        logger.info("Reconciling TLS record %s", record_id)

        record = self._fetch(record_id)
        authority = self._authority()

        evaluation = evaluate(record, authority, dns_name=self._dns_name, now=reference)
        decision = decide(evaluation, lifetime=self._lifetime, now=reference)

        if isinstance(decision, Invalidate):
            logger.info(
                "TLS record %s is expired or invalid (%s), cleaning to obtain a new one",
                record_id,
                decision.reason,
            )
            outcome = self._writer.clear(record_id)
            outcome = _merge(outcome, self._issue(record_id, authority, reference))
        elif isinstance(decision, Issue):
            logger.info("Missing TLS certificate in record %s", record_id)
            outcome = self._issue(record_id, authority, reference)
        else:
            outcome = self._writer.write(
                record_id, record.data[CERTIFICATE_KEY], record.data[PRIVATE_KEY_KEY]
            )

        restart: RestartReport | None = None
        if record_id == self._reserved_record and outcome is WriteOutcome.UPDATED:
            logger.info(
                "TLS certificate in %s has been updated, serving instances must be "
                "restarted to load it",
                record_id,
            )
            restart = self._orchestrator.restart()

        requeue_after = decision.requeue_after
        logger.info(
            "Reconciliation of %s completed (%s), processing back in %s",
            record_id,
            outcome.value,
            requeue_after,
        )
        return ReconcileResult(
            record_id=record_id,
            decision=decision,
            write_outcome=outcome,
            requeue_after=requeue_after,
            restart=restart,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fetch(self, record_id: RecordId) -> CertificateRecord:
        try:
            return self._store.get_record(record_id)
        except RecordNotFoundError:
            return CertificateRecord(record_id=record_id)
        except Exception as exc:
            raise FetchError(f"cannot read record {str(record_id)!r}: {exc}") from exc

    def _authority(self) -> Authority:
        try:
            return self._resolve_authority()
        except AuthorityError:
            raise
        except Exception as exc:
            raise AuthorityError(f"cannot resolve certificate authority: {exc}") from exc

    def _issue(
        self,
        record_id: RecordId,
        authority: Authority,
        now: datetime.datetime,
    ) -> WriteOutcome:
        options = CertOptions(not_after=now + self._lifetime, dns_name=self._dns_name)
        try:
            certificate, private_key = authority.generate_certificate(options, now=now)
        except Exception as exc:
            logger.error("Cannot generate new TLS certificate for %s: %s", record_id, exc)
            raise IssuanceError(f"cannot generate certificate for {options.dns_name!r}: {exc}") from exc
        return self._writer.write(record_id, certificate, private_key)


def _merge(first: WriteOutcome, second: WriteOutcome) -> WriteOutcome:
    """Combine the outcomes of two consecutive writes to the same record."""
    if first is WriteOutcome.CREATED or second is WriteOutcome.CREATED:
        return WriteOutcome.CREATED
    if first is WriteOutcome.UNCHANGED:
        return second
    return WriteOutcome.UPDATED


__all__ = ["ReconcileResult", "TLSReconciler"]
