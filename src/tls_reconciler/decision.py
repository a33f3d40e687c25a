"""Rotation decisions and the next re-check delay.

The reconciler never polls: each decision carries the delay after which
the record must be looked at again. For a fresh issuance that is the
requested lifetime; for a kept certificate it is the time left until its
expiry, so the next pass lands on the expiry instant.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass

from tls_reconciler.evaluator import Absent, Evaluation, Invalid, Valid

# Six months, counted as 6 * 30 days.
DEFAULT_LIFETIME = datetime.timedelta(hours=6 * 30 * 24)


class RotationDecision:
    """Base class of the decisions taken for a record."""

    @property
    def requeue_after(self) -> datetime.timedelta:
        raise NotImplementedError


@dataclass(frozen=True)
class Issue(RotationDecision):
    """No usable pair exists; issue one valid for *lifetime*."""

    reason: str
    lifetime: datetime.timedelta

    @property
    def requeue_after(self) -> datetime.timedelta:
        return self.lifetime


@dataclass(frozen=True)
class Invalidate(RotationDecision):
    """The stored pair is unusable; clear it, then issue one valid for *lifetime*."""

    reason: str
    lifetime: datetime.timedelta

    @property
    def requeue_after(self) -> datetime.timedelta:
        return self.lifetime


@dataclass(frozen=True)
class Keep(RotationDecision):
    """The stored pair stays; it expires after *remaining*."""

    remaining: datetime.timedelta

    @property
    def requeue_after(self) -> datetime.timedelta:
        return self.remaining


def decide(
    evaluation: Evaluation,
    lifetime: datetime.timedelta = DEFAULT_LIFETIME,
    now: datetime.datetime | None = None,
) -> RotationDecision:
    """Map an evaluation onto a rotation decision.

    Parameters
    ----------
    evaluation:
        Result of :func:`~tls_reconciler.evaluator.evaluate`.
    lifetime:
        Lifetime requested for newly issued certificates.
    now:
        Reference time (defaults to UTC now).

    Raises
    ------
    TypeError
        If *evaluation* is not one of the known results.
    """
    if isinstance(evaluation, Absent):
        return Issue(reason="missing", lifetime=lifetime)
    if isinstance(evaluation, Invalid):
        return Invalidate(reason=evaluation.reason, lifetime=lifetime)
    if isinstance(evaluation, Valid):
        reference = now or datetime.datetime.now(datetime.timezone.utc)
        return Keep(remaining=evaluation.not_after - reference)
    raise TypeError(f"unknown evaluation {evaluation!r}")


def service_dns_name(service_name: str, namespace: str) -> str:
    """Return the in-cluster DNS name certificates are issued for."""
    return f"{service_name}.{namespace}.svc"


__all__ = [
    "DEFAULT_LIFETIME",
    "Invalidate",
    "Issue",
    "Keep",
    "RotationDecision",
    "decide",
    "service_dns_name",
]
