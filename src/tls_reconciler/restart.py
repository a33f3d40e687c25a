"""Restart orchestration after the serving certificate has been rotated.

Server instances load the certificate once at start-up, so a rotated
certificate only takes effect once they are recreated. The orchestrator
deletes every sibling of the executing ("self") instance and then self,
relying on the cluster to bring fresh instances back. This is a
best-effort disruption, not a rolling restart: deletion failures are
logged and collected, never raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tls_reconciler.errors import RestartError
from tls_reconciler.models import ProcessInstance, RecordId
from tls_reconciler.store import ClusterStore

logger = logging.getLogger(__name__)


@dataclass
class RestartReport:
    """What a restart attempt did.

    Parameters
    ----------
    skipped:
        Why the restart was not attempted, or an empty string if it was.
    terminated:
        Names of the instances deleted, in deletion order. Self, when
        deleted, is always last.
    failures:
        One error per instance that could not be deleted.
    self_terminated:
        Whether the executing instance was deleted.
    """

    skipped: str = ""
    terminated: list[str] = field(default_factory=list)
    failures: list[RestartError] = field(default_factory=list)
    self_terminated: bool = False


class RestartOrchestrator:
    """Deletes the instance group of the executing process, self last.

    Parameters
    ----------
    store:
        Store client used to read and delete instances.
    namespace:
        Namespace the executing instance runs in.
    hostname:
        Name of the executing instance (its host identity).
    """

    def __init__(self, store: ClusterStore, namespace: str, hostname: str) -> None:
        self._store = store
        self._namespace = namespace
        self._hostname = hostname

    def restart(self) -> RestartReport:
        """Delete every sibling of the executing instance, then the instance itself.

        Returns
        -------
        RestartReport
            Outcome of the attempt; ``skipped`` is set when self or its
            siblings cannot be resolved, e.g. when running outside the
            managed cluster.
        """
        report = RestartReport()
        self_id = RecordId(self._namespace, self._hostname)

        try:
            leader = self._store.get_instance(self_id)
        except Exception as exc:
            logger.error(
                "Cannot retrieve the leader instance %s, probably running out of the cluster: %s",
                self_id,
                exc,
            )
            report.skipped = f"leader instance {str(self_id)!r} not found"
            return report

        try:
            group = self._store.list_instances(leader.namespace, dict(leader.labels))
        except Exception as exc:
            logger.error("Cannot list instances requiring restart upon TLS update: %s", exc)
            report.skipped = f"cannot list instances: {exc}"
            return report

        for instance in group:
            # self is deleted last
            if instance.name == leader.name:
                continue
            self._delete(instance, report)

        report.self_terminated = self._delete(leader, report)
        return report

    def _delete(self, instance: ProcessInstance, report: RestartReport) -> bool:
        try:
            self._store.delete_instance(instance.instance_id)
        except Exception as exc:
            error = RestartError(instance.name, exc)
            logger.error("%s due to TLS update", error)
            report.failures.append(error)
            return False
        logger.info("Deleted instance %s to reload the TLS certificate", instance.instance_id)
        report.terminated.append(instance.name)
        return True


__all__ = ["RestartOrchestrator", "RestartReport"]
