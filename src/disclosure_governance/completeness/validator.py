"""Completeness prerequisites for data point status changes.

Pure functions, no storage access. Only entry into ``complete`` has
prerequisites: a value, a reporting period or deadline, a methodology or
source, and an owner. An active completion exception covering the data
point waives all of them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime

from disclosure_governance.models import (
    CompletenessStatus,
    CompletionException,
    DataPoint,
    MissingField,
)

FIELD_VALUE = "value"
FIELD_PERIOD = "period/deadline"
FIELD_SOURCE = "methodology/source"
FIELD_OWNER = "owner"


def _present(*values: str | None) -> bool:
    return any(v is not None and v.strip() != "" for v in values)


# Evaluated in this order so the missing-field list is stable.
REQUIRED_FIELDS: list[tuple[str, str, Callable[[DataPoint], bool]]] = [
    (
        FIELD_VALUE,
        "A reported value is required before the data point can be marked complete.",
        lambda dp: _present(dp.value),
    ),
    (
        FIELD_PERIOD,
        "A reporting period or deadline is required before the data point can be marked complete.",
        lambda dp: _present(dp.period, dp.deadline),
    ),
    (
        FIELD_SOURCE,
        "A methodology or data source is required before the data point can be marked complete.",
        lambda dp: _present(dp.methodology, dp.source),
    ),
    (
        FIELD_OWNER,
        "An owner is required before the data point can be marked complete.",
        lambda dp: _present(dp.owner_id),
    ),
]


def missing_fields(data_point: DataPoint) -> list[MissingField]:
    """Every completeness prerequisite the data point lacks, in fixed order."""
    return [
        MissingField(field=name, reason=reason)
        for name, reason, check in REQUIRED_FIELDS
        if not check(data_point)
    ]


def covering_exceptions(
    data_point: DataPoint,
    exceptions: Iterable[CompletionException],
    now: datetime,
) -> list[CompletionException]:
    """Exceptions that are active at ``now`` and cover ``data_point``."""
    return [e for e in exceptions if e.is_active(now) and e.covers(data_point)]


def validate(
    data_point: DataPoint,
    target_status: CompletenessStatus,
    exceptions: Iterable[CompletionException],
    now: datetime,
) -> list[MissingField]:
    """Decide whether ``data_point`` may enter ``target_status``.

    Returns an empty list when the transition is allowed, otherwise the
    missing prerequisites.
    """
    if target_status != CompletenessStatus.COMPLETE:
        return []
    if covering_exceptions(data_point, exceptions, now):
        return []
    return missing_fields(data_point)
