"""
Monthly Aggregator for payroll reconciliation.

Turns one employee's monthly salary observations into an aggregate record:
the sum over the rolling window plus a projected estimate for the trailing
(not yet reported) period. Per-employee override policies decide how zero and
missing months are treated and whether an estimate is computed at all.

Key Functions:
    - aggregate_employee(): Aggregate one employee series under its policy
    - aggregate_population(): Aggregate every series of one source population
    - merge(): Fold two aggregates of the same identity (Staff metadata wins)
    - fold_populations(): Merge several population aggregates into one mapping

Absent vs zero:
    A month missing from ``EmployeeSeries.months`` was not reported. A month
    present with 0.0 was reported as zero. The default policy drops both from
    the sum and the divisor; ``include_zeros`` counts every window month;
    ``exclude_zeros_but_count_months`` counts every reported month.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from payrecon.core.policies.models import PolicyRegistry

logger = logging.getLogger(__name__)

STAFF = "Staff"
WORKER = "Worker"
UNKNOWN = "Unknown"


@dataclass
class EmployeeSeries:
    """
    Observations for one identity from one source population.

    A month key missing from ``months`` was not reported; 0.0 means reported as zero.

    Built by the sheet adapter; several rows for the same month are summed.
    """
    identity: int
    name: str
    department: str
    months: Dict[str, float] = field(default_factory=dict)
    date_of_joining: Any = None

    def observe(self, month_key: str, amount: float) -> None:
        self.months[month_key] = self.months.get(month_key, 0.0) + amount


@dataclass(frozen=True)
class AggregateRecord:
    """
    Per-identity aggregate for one reconciliation run.

    Attributes:
        identity: Employee identifier
        name: Display name (Staff-sourced when both populations report it)
        department: Population label (Staff / Worker / Unknown)
        included_months: (month_key, amount) pairs that counted, chronological
        base_sum: Sum of included amounts
        estimate: Projected trailing-period amount (0 when ineligible)
        total: base_sum + estimate
        date_of_joining: Raw start-of-service cell, first non-empty seen
        sources: Populations folded into this record, in fold order
        estimate_suppressed: Estimate forced to zero by policy
    """
    identity: int
    name: str
    department: str
    included_months: Tuple[Tuple[str, float], ...]
    base_sum: float
    estimate: float
    total: float
    date_of_joining: Any = None
    sources: Tuple[str, ...] = ()
    estimate_suppressed: bool = False

    @property
    def included_count(self) -> int:
        return len(self.included_months)

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "name": self.name,
            "department": self.department,
            "included_months": dict(self.included_months),
            "base_sum": self.base_sum,
            "estimate": self.estimate,
            "total": self.total,
            "sources": list(self.sources),
            "estimate_suppressed": self.estimate_suppressed,
        }


def aggregate_employee(
    series: EmployeeSeries,
    registry: PolicyRegistry,
    honor_suppressed_estimate: bool = False,
) -> AggregateRecord:
    """
    Aggregate one employee series over its effective window.

    Args:
        series: Observations for one identity from one population
        registry: Override policies and the rolling window
        honor_suppressed_estimate: Apply ``suppress_estimate_month`` (the
            reimbursement variant sets this; the gross variant ignores it)

    Returns:
        Immutable AggregateRecord

    Examples:
        >>> registry = PolicyRegistryBuilder().with_window(["2025-08", "2025-09"]).build()
        >>> series = EmployeeSeries(1, "A", "Staff", {"2025-08": 100.0, "2025-09": 300.0})
        >>> aggregate_employee(series, registry).total
        600.0
    """
    policy = registry.lookup(series.identity)
    window = registry.effective_window(series.identity)

    included: List[Tuple[str, float]] = []
    for month_key in window:
        amount = series.months.get(month_key)
        if policy.include_zeros:
            included.append((month_key, amount if amount is not None else 0.0))
        elif policy.exclude_zeros_but_count_months:
            if amount is not None:
                included.append((month_key, amount))
        elif amount is not None and amount > 0:
            included.append((month_key, amount))

    base_sum = 0.0
    for _, amount in included:
        base_sum += amount

    anchor_amount = series.months.get(registry.anchor_month)
    eligible = (
        not policy.hard_exclude_from_estimate
        and anchor_amount is not None
        and anchor_amount > 0
    )
    suppressed = honor_suppressed_estimate and policy.suppress_estimate_month

    estimate = 0.0
    if eligible and not suppressed:
        if policy.include_zeros:
            if window:
                estimate = base_sum / len(window)
        elif included:
            estimate = base_sum / len(included)

    record = AggregateRecord(
        identity=series.identity,
        name=series.name,
        department=series.department,
        included_months=tuple(included),
        base_sum=base_sum,
        estimate=estimate,
        total=base_sum + estimate,
        date_of_joining=series.date_of_joining,
        sources=(series.department,),
        estimate_suppressed=suppressed,
    )

    logger.debug(
        f"Emp {record.identity} ({record.department}): {record.included_count} months, "
        f"base={record.base_sum:.2f} est={record.estimate:.2f} total={record.total:.2f}"
    )
    return record


def aggregate_population(
    series_by_identity: Mapping[int, EmployeeSeries],
    registry: PolicyRegistry,
    honor_suppressed_estimate: bool = False,
) -> Dict[int, AggregateRecord]:
    """Aggregate every series of one population, keyed by identity."""
    return {
        identity: aggregate_employee(series, registry, honor_suppressed_estimate)
        for identity, series in sorted(series_by_identity.items())
    }


def merge(existing: AggregateRecord, incoming: AggregateRecord) -> AggregateRecord:
    """
    Fold ``incoming`` into ``existing`` for the same identity.

    Amounts (per month, base sum, estimate, total) are summed. Name and
    department come from ``incoming`` only when it is Staff and ``existing``
    is not; otherwise ``existing`` keeps its metadata. The first non-empty
    date of joining is retained.

    Raises:
        ValueError: If the identities differ
    """
    if existing.identity != incoming.identity:
        raise ValueError(
            f"Cannot merge aggregates of different identities: "
            f"{existing.identity} and {incoming.identity}"
        )

    months: Dict[str, float] = dict(existing.included_months)
    for month_key, amount in incoming.included_months:
        months[month_key] = months.get(month_key, 0.0) + amount

    if incoming.department == STAFF and existing.department != STAFF:
        name, department = incoming.name, incoming.department
    else:
        name, department = existing.name, existing.department

    sources = existing.sources + tuple(s for s in incoming.sources if s not in existing.sources)

    return AggregateRecord(
        identity=existing.identity,
        name=name,
        department=department,
        included_months=tuple(sorted(months.items())),
        base_sum=existing.base_sum + incoming.base_sum,
        estimate=existing.estimate + incoming.estimate,
        total=existing.total + incoming.total,
        date_of_joining=_first_present(existing.date_of_joining, incoming.date_of_joining),
        sources=sources,
        estimate_suppressed=existing.estimate_suppressed or incoming.estimate_suppressed,
    )


def fold_populations(populations: Iterable[Mapping[int, AggregateRecord]]) -> Dict[int, AggregateRecord]:
    """
    Merge population aggregates in the given order into one identity-sorted mapping.

    Example:
        >>> combined = fold_populations([worker_aggregates, staff_aggregates])
    """
    combined: Dict[int, AggregateRecord] = {}
    for population in populations:
        for identity, record in population.items():
            if identity in combined:
                combined[identity] = merge(combined[identity], record)
            else:
                combined[identity] = record
    return dict(sorted(combined.items()))


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None and not (isinstance(value, str) and not value.strip()):
            return value
    return None


__all__ = [
    "STAFF",
    "WORKER",
    "UNKNOWN",
    "EmployeeSeries",
    "AggregateRecord",
    "aggregate_employee",
    "aggregate_population",
    "merge",
    "fold_populations",
]
