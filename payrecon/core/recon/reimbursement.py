"""
Cross-Source Reconciliator (reimbursement variant).

The reimbursement figure is the gap between a register amount at the fixed
register rate and the amount actually due at the employee's effective
percentage. The effective percentage is a custom override when one exists,
otherwise a tenure tier derived from the date of joining.

Formula (rate = register percentage, pct = effective percentage):
    register  = gross * rate / 100
    pct == rate:  secondary = gross,        actual = gross * pct / 100
    pct >  rate:  secondary = gross * 0.6,  actual = secondary * pct / 100
    pct <  rate:  secondary = 0,            actual = 0
    reim      = register - actual

The three branches are intentional; the equal branch always gives reim == 0.

Key Functions:
    - months_of_service(): Whole months from date of joining to the reference date
    - tenure_percentage(): Tier lookup for a tenure in months
    - compute_reimbursement(): Register/secondary/actual/reim for one gross total
    - reconcile_reimbursement(): Reimbursement rows for the union of identities
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, List, Mapping, Optional, Tuple

from payrecon.core.policies.models import PolicyRegistry, ReconciliationSettings
from payrecon.core.recon.aggregator import UNKNOWN, AggregateRecord
from payrecon.core.recon.comparison import MATCH, compare_totals, reported_amount
from payrecon.utils.date_utils import months_between, parse_service_date

logger = logging.getLogger(__name__)

CUSTOM = "Custom"
CALCULATED = "Calculated"


@dataclass(frozen=True)
class ReimbursementFigures:
    register_amount: float
    secondary_gross: float
    actual_amount: float
    reim_computed: float


@dataclass(frozen=True)
class ReimbursementRow:
    """One identity's reimbursement verdict, with every intermediate figure for review."""
    identity: int
    name: str
    department: str
    gross_total: float
    months_of_service: int
    register_percentage: float
    effective_percentage: float
    percentage_source: str
    register_amount: float
    secondary_gross: float
    actual_amount: float
    reim_computed: float
    reim_reported: float
    difference: float
    status: str
    estimate_suppressed: bool = False
    in_computed: bool = True
    in_reported: bool = True

    @property
    def is_match(self) -> bool:
        return self.status == MATCH

    def to_dict(self) -> dict:
        return asdict(self)


def months_of_service(raw_date_of_joining: Any, reference_date) -> int:
    """
    Whole elapsed months of service at ``reference_date``.

    An empty or unreadable date of joining counts as 0 months.

    Examples:
        >>> months_of_service("15.03.24", pd.Timestamp("2025-10-30"))
        19
        >>> months_of_service(None, pd.Timestamp("2025-10-30"))
        0
    """
    joined = parse_service_date(raw_date_of_joining)
    if joined is None:
        return 0
    return months_between(joined, reference_date)


def tenure_percentage(months: int, settings: ReconciliationSettings) -> float:
    """Percentage of the first tier whose bound exceeds ``months``; the register rate past the last tier."""
    for upper_bound, percentage in settings.tenure_tiers:
        if months < upper_bound:
            return percentage
    return settings.register_percentage


def effective_percentage(
    identity: int,
    months: int,
    registry: PolicyRegistry,
    settings: ReconciliationSettings,
) -> Tuple[float, str]:
    """(percentage, source) where source is "Custom" or "Calculated"."""
    custom = registry.lookup(identity).custom_percentage
    if custom is not None:
        return custom, CUSTOM
    return tenure_percentage(months, settings), CALCULATED


def compute_reimbursement(
    gross_total: float,
    percentage: float,
    settings: ReconciliationSettings,
) -> ReimbursementFigures:
    """
    Apply the register/actual formula to one gross total.

    Examples:
        >>> figures = compute_reimbursement(12000.0, 8.33, settings)
        >>> figures.reim_computed
        0.0
    """
    rate = settings.register_percentage
    register_amount = gross_total * rate / 100

    if percentage == rate:
        secondary_gross = gross_total
        actual_amount = gross_total * percentage / 100
    elif percentage > rate:
        secondary_gross = gross_total * settings.secondary_gross_factor
        actual_amount = secondary_gross * percentage / 100
    else:
        secondary_gross = 0.0
        actual_amount = 0.0

    return ReimbursementFigures(
        register_amount=register_amount,
        secondary_gross=secondary_gross,
        actual_amount=actual_amount,
        reim_computed=register_amount - actual_amount,
    )


def reconcile_reimbursement(
    computed: Mapping[int, AggregateRecord],
    reported: Mapping[int, Any],
    registry: PolicyRegistry,
    settings: ReconciliationSettings,
) -> List[ReimbursementRow]:
    """
    Build reimbursement rows for every identity seen on either side.

    Args:
        computed: Identity -> AggregateRecord (gross totals, dates of joining)
        reported: Identity -> HR reimbursement record (``amount``, ``name``,
                  ``department``)
        registry: Custom percentages
        settings: Register rate, tiers, reference date, tolerance

    Returns:
        Rows sorted ascending by identity
    """
    rows: List[ReimbursementRow] = []
    for identity in sorted(set(computed) | set(reported)):
        aggregate: Optional[AggregateRecord] = computed.get(identity)
        hr_record = reported.get(identity)

        if aggregate is not None:
            gross_total = aggregate.total
            name, department = aggregate.name, aggregate.department
            months = months_of_service(aggregate.date_of_joining, settings.reference_date)
        else:
            gross_total = 0.0
            name = getattr(hr_record, "name", "")
            department = getattr(hr_record, "department", UNKNOWN)
            months = 0

        percentage, source = effective_percentage(identity, months, registry, settings)
        figures = compute_reimbursement(gross_total, percentage, settings)
        reim_reported = reported_amount(hr_record)
        difference, status = compare_totals(figures.reim_computed, reim_reported, settings.tolerance)

        rows.append(
            ReimbursementRow(
                identity=identity,
                name=name,
                department=department,
                gross_total=gross_total,
                months_of_service=months,
                register_percentage=settings.register_percentage,
                effective_percentage=percentage,
                percentage_source=source,
                register_amount=figures.register_amount,
                secondary_gross=figures.secondary_gross,
                actual_amount=figures.actual_amount,
                reim_computed=figures.reim_computed,
                reim_reported=reim_reported,
                difference=difference,
                status=status,
                estimate_suppressed=aggregate.estimate_suppressed if aggregate is not None else False,
                in_computed=aggregate is not None,
                in_reported=hr_record is not None,
            )
        )

        logger.debug(
            f"Emp {identity} [{source} {percentage}%]: gross={gross_total:.2f} "
            f"register={figures.register_amount:.2f} actual={figures.actual_amount:.2f} "
            f"reim={figures.reim_computed:.2f} hr={reim_reported:.2f} {status}"
        )

    mismatches = sum(1 for row in rows if not row.is_match)
    logger.info(
        f"Reimbursement compared for {len(rows)} identities: "
        f"{len(rows) - mismatches} match, {mismatches} mismatch"
    )
    return rows


__all__ = [
    "CUSTOM",
    "CALCULATED",
    "ReimbursementFigures",
    "ReimbursementRow",
    "months_of_service",
    "tenure_percentage",
    "effective_percentage",
    "compute_reimbursement",
    "reconcile_reimbursement",
]
