"""Record writer — applies a certificate/key pair to the backing record."""
from __future__ import annotations

import logging

from tls_reconciler.errors import WriteError
from tls_reconciler.models import CERTIFICATE_KEY, PRIVATE_KEY_KEY, RecordId, WriteOutcome
from tls_reconciler.store import ClusterStore, Mutation

logger = logging.getLogger(__name__)


class RecordWriter:
    """Upserts the two managed fields of a certificate record.

    Both fields are always set or removed together; any other field on
    the record is left untouched.

    Parameters
    ----------
    store:
        Store client the record lives in.
    """

    def __init__(self, store: ClusterStore) -> None:
        self._store = store

    def write(self, record_id: RecordId, certificate: bytes, private_key: bytes) -> WriteOutcome:
        """Store *certificate* and *private_key* in the record.

        Raises
        ------
        WriteError
            If the store rejects the upsert.
        """

        def mutate(data: dict[str, bytes]) -> None:
            data[CERTIFICATE_KEY] = certificate
            data[PRIVATE_KEY_KEY] = private_key

        return self._apply(record_id, mutate)

    def clear(self, record_id: RecordId) -> WriteOutcome:
        """Remove both managed fields from the record.

        Raises
        ------
        WriteError
            If the store rejects the upsert.
        """

        def mutate(data: dict[str, bytes]) -> None:
            data.pop(CERTIFICATE_KEY, None)
            data.pop(PRIVATE_KEY_KEY, None)

        return self._apply(record_id, mutate)

    def _apply(self, record_id: RecordId, mutate: Mutation) -> WriteOutcome:
        try:
            outcome = self._store.create_or_update(record_id, mutate)
        except Exception as exc:
            raise WriteError(f"cannot update certificate record {str(record_id)!r}: {exc}") from exc
        logger.debug("Record %s write outcome: %s", record_id, outcome.value)
        return outcome
