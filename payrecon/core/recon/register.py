"""
Register and unpaid reconciliators.

The register amount is the share of an employee's gross total set aside at
their register percentage: a custom percentage when the policy carries one,
the fixed register rate otherwise.

Formula (pct = register percentage for the identity):
    register = gross * pct / 100
    unpaid   = due voucher   when eligible
             = register      when not eligible

Only Worker employees carry an eligibility rule: they need at least
``unpaid_min_service_months`` of service at the reference date. Staff are
always eligible.

Key Functions:
    - register_percentage_for(): (percentage, source) for one identity
    - compute_register(): Register amount for one gross total
    - is_unpaid_eligible(): Service-length eligibility for the unpaid check
    - reconcile_register(): Register rows for the union of identities
    - reconcile_unpaid(): Unpaid rows for the union of identities
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, List, Mapping, Optional, Tuple

from payrecon.core.policies.models import PolicyRegistry, ReconciliationSettings
from payrecon.core.recon.aggregator import UNKNOWN, WORKER, AggregateRecord
from payrecon.core.recon.comparison import MATCH, compare_totals, reported_amount
from payrecon.core.recon.reimbursement import CUSTOM, months_of_service

logger = logging.getLogger(__name__)

DEFAULT = "Default"


@dataclass(frozen=True)
class RegisterRow:
    """One identity's register verdict."""
    identity: int
    name: str
    department: str
    gross_total: float
    percentage: float
    percentage_source: str
    register_computed: float
    register_reported: float
    difference: float
    status: str
    in_computed: bool = True
    in_reported: bool = True

    @property
    def is_match(self) -> bool:
        return self.status == MATCH

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class UnpaidRow:
    """One identity's unpaid verdict, with the register and eligibility it was derived from."""
    identity: int
    name: str
    department: str
    gross_total: float
    percentage: float
    register_computed: float
    months_of_service: int
    eligible: bool
    due_voucher: float
    unpaid_computed: float
    unpaid_reported: float
    difference: float
    status: str
    in_computed: bool = True
    in_reported: bool = True

    @property
    def is_match(self) -> bool:
        return self.status == MATCH

    def to_dict(self) -> dict:
        return asdict(self)


def register_percentage_for(
    identity: int,
    registry: PolicyRegistry,
    settings: ReconciliationSettings,
) -> Tuple[float, str]:
    """(percentage, source) where source is "Custom" or "Default"."""
    custom = registry.lookup(identity).custom_percentage
    if custom is not None:
        return custom, CUSTOM
    return settings.register_percentage, DEFAULT


def compute_register(gross_total: float, percentage: float) -> float:
    """
    Examples:
        >>> compute_register(12000.0, 12.0)
        1440.0
    """
    return gross_total * percentage / 100


def is_unpaid_eligible(department: str, months: int, settings: ReconciliationSettings) -> bool:
    if department == WORKER:
        return months >= settings.unpaid_min_service_months
    return True


def _metadata(aggregate: Optional[AggregateRecord], hr_record: Any) -> Tuple[float, str, str]:
    if aggregate is not None:
        return aggregate.total, aggregate.name, aggregate.department
    return 0.0, getattr(hr_record, "name", ""), getattr(hr_record, "department", UNKNOWN)


def reconcile_register(
    computed: Mapping[int, AggregateRecord],
    reported: Mapping[int, Any],
    registry: PolicyRegistry,
    settings: ReconciliationSettings,
) -> List[RegisterRow]:
    """
    Build register rows for every identity seen on either side.

    Args:
        computed: Identity -> AggregateRecord (Staff + Worker gross totals)
        reported: Identity -> HR register record or a plain amount
        registry: Custom percentages
        settings: Register rate and tolerance

    Returns:
        Rows sorted ascending by identity
    """
    rows: List[RegisterRow] = []
    for identity in sorted(set(computed) | set(reported)):
        aggregate = computed.get(identity)
        hr_record = reported.get(identity)
        gross_total, name, department = _metadata(aggregate, hr_record)

        percentage, source = register_percentage_for(identity, registry, settings)
        register_computed = compute_register(gross_total, percentage)
        register_reported = reported_amount(hr_record)
        difference, status = compare_totals(register_computed, register_reported, settings.tolerance)

        rows.append(
            RegisterRow(
                identity=identity,
                name=name,
                department=department,
                gross_total=gross_total,
                percentage=percentage,
                percentage_source=source,
                register_computed=register_computed,
                register_reported=register_reported,
                difference=difference,
                status=status,
                in_computed=aggregate is not None,
                in_reported=hr_record is not None,
            )
        )
        logger.debug(
            f"Emp {identity}: gross={gross_total:.2f}, {percentage}% -> register={register_computed:.2f} "
            f"hr={register_reported:.2f} {status}"
        )

    mismatches = sum(1 for row in rows if not row.is_match)
    logger.info(f"Register compared for {len(rows)} identities: {len(rows) - mismatches} match, {mismatches} mismatch")
    return rows


def reconcile_unpaid(
    computed: Mapping[int, AggregateRecord],
    reported: Mapping[int, Any],
    due_vouchers: Mapping[int, float],
    registry: PolicyRegistry,
    settings: ReconciliationSettings,
) -> List[UnpaidRow]:
    """
    Build unpaid rows for every identity seen on the computed or HR side.

    An eligible employee's unpaid amount is their due voucher (0 when the
    voucher list does not name them); an ineligible employee's is their
    register amount. HR-only identities have no date of joining and so count
    0 months of service.

    Args:
        computed: Identity -> AggregateRecord (Staff + Worker gross totals)
        reported: Identity -> HR unpaid record or a plain amount
        due_vouchers: Identity -> due-voucher amount
        registry: Custom percentages
        settings: Register rate, reference date, service threshold, tolerance
    """
    rows: List[UnpaidRow] = []
    for identity in sorted(set(computed) | set(reported)):
        aggregate = computed.get(identity)
        hr_record = reported.get(identity)
        gross_total, name, department = _metadata(aggregate, hr_record)

        percentage, _ = register_percentage_for(identity, registry, settings)
        register_computed = compute_register(gross_total, percentage)
        months = 0
        if aggregate is not None:
            months = months_of_service(aggregate.date_of_joining, settings.reference_date)
        eligible = is_unpaid_eligible(department, months, settings)
        due_voucher = float(due_vouchers.get(identity, 0.0))
        unpaid_computed = due_voucher if eligible else register_computed

        unpaid_reported = reported_amount(hr_record)
        difference, status = compare_totals(unpaid_computed, unpaid_reported, settings.tolerance)

        rows.append(
            UnpaidRow(
                identity=identity,
                name=name,
                department=department,
                gross_total=gross_total,
                percentage=percentage,
                register_computed=register_computed,
                months_of_service=months,
                eligible=eligible,
                due_voucher=due_voucher,
                unpaid_computed=unpaid_computed,
                unpaid_reported=unpaid_reported,
                difference=difference,
                status=status,
                in_computed=aggregate is not None,
                in_reported=hr_record is not None,
            )
        )

    ineligible = sum(1 for row in rows if not row.eligible)
    mismatches = sum(1 for row in rows if not row.is_match)
    logger.info(
        f"Unpaid compared for {len(rows)} identities ({ineligible} not eligible): "
        f"{len(rows) - mismatches} match, {mismatches} mismatch"
    )
    return rows


__all__ = [
    "DEFAULT",
    "RegisterRow",
    "UnpaidRow",
    "register_percentage_for",
    "compute_register",
    "is_unpaid_eligible",
    "reconcile_register",
    "reconcile_unpaid",
]
