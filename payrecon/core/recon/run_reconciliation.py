"""
Headless Reconciliation Engine (run_reconciliation)

Entry points for complete reconciliation passes over in-memory sheets.

Usage:
    from payrecon.core.recon.run_reconciliation import run_gross_reconciliation

    result = run_gross_reconciliation(
        staff_sheets=load_csv_sheets("data/staff"),
        worker_sheets=load_csv_sheets("data/worker"),
        hr_sheets=load_csv_sheets("data/hr"),
        audit_service=AuditTrailService(JsonlAuditStore("audit.jsonl")),
    )

    # Result contains:
    # - rows: comparison rows in identity order
    # - aggregates: per-identity AggregateRecord values
    # - diagnostics: recoverable skips raised while reading sources
    # - summary: match/mismatch metrics overall and per population
    # - audit_batch_id: batch the summary and mismatches were written to

Ordering:
    Both source sides are fully read and aggregated before any comparison;
    configuration and missing-input errors are raised before rows exist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd

from payrecon.core.audit.service import MAX_STEP, MIN_STEP, AuditTrailService, is_valid_step
from payrecon.core.errors import ConfigurationError, InputMissingError
from payrecon.core.logging_config import bind_run
from payrecon.core.policies.models import PolicyRegistry, PolicyTable
from payrecon.core.policies.registry import get_policy_table
from payrecon.core.recon.aggregator import (
    STAFF,
    WORKER,
    AggregateRecord,
    aggregate_population,
    fold_populations,
)
from payrecon.core.recon.comparison import (
    comparison_rows_to_frame,
    export_comparison_csv,
    reconcile_totals,
)
from payrecon.core.recon.register import reconcile_register, reconcile_unpaid
from payrecon.core.recon.reimbursement import reconcile_reimbursement
from payrecon.core.recon.summary_builder import (
    GROSS,
    REGISTER,
    REIMBURSEMENT,
    UNPAID,
    SummaryBuilder,
    build_audit_items,
)
from payrecon.core.sources import (
    Diagnostic,
    PercentageOverrides,
    Rows,
    collect_population,
    read_due_vouchers,
    read_hr_report,
)

logger = logging.getLogger(__name__)

GROSS_STEP = 3
REGISTER_STEP = 5
UNPAID_STEP = 6
REIMBURSEMENT_STEP = 8


@dataclass
class ReconciliationResult:
    """Output of one reconciliation pass."""
    variant: str
    step: int
    rows: List[Any]
    aggregates: Dict[int, AggregateRecord]
    diagnostics: List[Diagnostic]
    summary: Dict[str, Any]
    policy: PolicyTable
    audit_batch_id: Optional[str] = None
    audit_inserted: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def mismatches(self) -> List[Any]:
        return [row for row in self.rows if not row.is_match]

    def to_frame(self) -> pd.DataFrame:
        return comparison_rows_to_frame(self.rows)

    def export_csv(self, path: Union[str, Path]) -> Path:
        return export_comparison_csv(self.rows, path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant,
            "step": self.step,
            "summary": self.summary,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "audit_batch_id": self.audit_batch_id,
            "audit_inserted": self.audit_inserted,
            "warnings": list(self.warnings),
        }


def _require(dataset: str, sheets: Optional[Mapping[str, Rows]]) -> Mapping[str, Rows]:
    if not sheets:
        raise InputMissingError(dataset)
    return sheets


def _check_step(step: Any) -> None:
    if not is_valid_step(step):
        raise ConfigurationError(f"step must be an integer between {MIN_STEP} and {MAX_STEP}, got {step!r}")


def _layered_registry(policy: PolicyTable, percentage_overrides: Optional[PercentageOverrides]) -> PolicyRegistry:
    registry = policy.registry
    if percentage_overrides is not None:
        registry = registry.with_percentage_overrides(
            percentage_overrides.custom_percentages,
            percentage_overrides.suppressed_estimates,
        )
    return registry


def _gross_aggregates(
    staff_sheets: Mapping[str, Rows],
    worker_sheets: Mapping[str, Rows],
    registry: PolicyRegistry,
    warnings: List[str],
):
    """Staff + Worker aggregates folded per identity, with the read diagnostics."""
    staff = collect_population(staff_sheets, STAFF, registry)
    worker = collect_population(worker_sheets, WORKER, registry)
    aggregates = fold_populations([
        aggregate_population(staff.series, registry),
        aggregate_population(worker.series, registry),
    ])
    if not staff.series and not worker.series:
        warnings.append("no payroll rows were read from the Staff or Worker extracts")
    return aggregates, staff.diagnostics + worker.diagnostics


def _emit_audit(
    result: ReconciliationResult,
    audit_service: Optional[AuditTrailService],
    batch_id: Optional[str],
) -> None:
    if audit_service is None:
        return
    items = build_audit_items(
        result.summary,
        result.rows,
        result.diagnostics,
        step=result.step,
        tolerance=result.policy.settings.tolerance,
    )
    ingest = audit_service.ingest(items, step=result.step, batch_id=batch_id)
    result.audit_batch_id = ingest.batch_id
    result.audit_inserted = ingest.inserted


def _finish(
    variant: str,
    step: int,
    rows: List[Any],
    aggregates: Dict[int, AggregateRecord],
    diagnostics: List[Diagnostic],
    policy: PolicyTable,
    warnings: List[str],
    audit_service: Optional[AuditTrailService],
    batch_id: Optional[str],
) -> ReconciliationResult:
    summary = SummaryBuilder(
        rows, variant, policy.settings.tolerance, contract=policy.to_dict(), diagnostics=diagnostics
    ).build()
    result = ReconciliationResult(
        variant=variant,
        step=step,
        rows=rows,
        aggregates=aggregates,
        diagnostics=diagnostics,
        summary=summary,
        policy=policy,
        warnings=warnings,
    )
    _emit_audit(result, audit_service, batch_id)
    return result


def run_gross_reconciliation(
    staff_sheets: Optional[Mapping[str, Rows]],
    worker_sheets: Optional[Mapping[str, Rows]],
    hr_sheets: Optional[Mapping[str, Rows]],
    policy_table: Optional[PolicyTable] = None,
    audit_service: Optional[AuditTrailService] = None,
    step: int = GROSS_STEP,
    batch_id: Optional[str] = None,
) -> ReconciliationResult:
    """
    Compare Staff + Worker gross totals against the HR gross report.

    Args:
        staff_sheets: Sheet name -> rows of the Staff payroll extract
        worker_sheets: Sheet name -> rows of the Worker payroll extract
        hr_sheets: Sheet name -> rows of the HR gross report
        policy_table: Loaded policy contract (cached default when omitted)
        audit_service: When given, summary/mismatch/diagnostic messages are ingested
        step: Pipeline step recorded on audit messages
        batch_id: Audit batch to append to (fresh when omitted)

    Returns:
        ReconciliationResult

    Raises:
        InputMissingError: If any of the three datasets is absent or empty
        ConfigurationError: If the policy contract or ``step`` is invalid
    """
    _check_step(step)
    staff_sheets = _require(STAFF, staff_sheets)
    worker_sheets = _require(WORKER, worker_sheets)
    hr_sheets = _require("HR", hr_sheets)
    policy = policy_table or get_policy_table()
    run_log = bind_run(logger, variant=GROSS, step=step)

    run_log.info(f"Gross reconciliation started (contract v{policy.version}, hash {policy.contract_hash[:8]})")

    warnings: List[str] = []
    aggregates, diagnostics = _gross_aggregates(staff_sheets, worker_sheets, policy.registry, warnings)
    hr = read_hr_report(hr_sheets, amount_kind="gross")
    diagnostics += hr.diagnostics

    rows = reconcile_totals(aggregates, hr.records, policy.settings.tolerance)
    result = _finish(GROSS, step, rows, aggregates, diagnostics, policy, warnings, audit_service, batch_id)

    totals = result.summary["totals"]
    run_log.info(
        f"Gross reconciliation finished: {totals['total']} rows, {totals['matches']} match, "
        f"{totals['mismatches']} mismatch, {len(diagnostics)} diagnostics"
    )
    return result


def run_reimbursement_reconciliation(
    staff_sheets: Optional[Mapping[str, Rows]],
    hr_sheets: Optional[Mapping[str, Rows]],
    policy_table: Optional[PolicyTable] = None,
    percentage_overrides: Optional[PercentageOverrides] = None,
    audit_service: Optional[AuditTrailService] = None,
    step: int = REIMBURSEMENT_STEP,
    batch_id: Optional[str] = None,
) -> ReconciliationResult:
    """
    Compare computed Staff reimbursements against the HR reimbursement report.

    Args:
        staff_sheets: Sheet name -> rows of the Staff payroll extract
        hr_sheets: Sheet name -> rows of the HR reimbursement report
        policy_table: Loaded policy contract (cached default when omitted)
        percentage_overrides: Per-run custom percentages / suppressed estimates
                              layered over the contract
        audit_service: When given, summary/mismatch/diagnostic messages are ingested
        step: Pipeline step recorded on audit messages
        batch_id: Audit batch to append to (fresh when omitted)

    Raises:
        InputMissingError: If the Staff or HR dataset is absent or empty
        ConfigurationError: If the policy contract or ``step`` is invalid
    """
    _check_step(step)
    staff_sheets = _require(STAFF, staff_sheets)
    hr_sheets = _require("HR", hr_sheets)
    policy = policy_table or get_policy_table()
    registry = _layered_registry(policy, percentage_overrides)
    run_log = bind_run(logger, variant=REIMBURSEMENT, step=step)

    run_log.info(
        f"Reimbursement reconciliation started (contract v{policy.version}, "
        f"register {policy.settings.register_percentage}%)"
    )

    staff = collect_population(staff_sheets, STAFF, registry)
    hr = read_hr_report(hr_sheets, amount_kind="reimbursement")

    aggregates = aggregate_population(staff.series, registry, honor_suppressed_estimate=True)
    diagnostics = staff.diagnostics + hr.diagnostics
    warnings: List[str] = []
    if not staff.series:
        warnings.append("no payroll rows were read from the Staff extract")

    rows = reconcile_reimbursement(aggregates, hr.records, registry, policy.settings)
    result = _finish(REIMBURSEMENT, step, rows, aggregates, diagnostics, policy, warnings, audit_service, batch_id)

    totals = result.summary["totals"]
    run_log.info(
        f"Reimbursement reconciliation finished: {totals['total']} rows, "
        f"{totals['custom_percentage_count']} custom percentages, {totals['mismatches']} mismatch"
    )
    return result


def run_register_reconciliation(
    staff_sheets: Optional[Mapping[str, Rows]],
    worker_sheets: Optional[Mapping[str, Rows]],
    hr_sheets: Optional[Mapping[str, Rows]],
    policy_table: Optional[PolicyTable] = None,
    percentage_overrides: Optional[PercentageOverrides] = None,
    audit_service: Optional[AuditTrailService] = None,
    step: int = REGISTER_STEP,
    batch_id: Optional[str] = None,
) -> ReconciliationResult:
    """
    Compare register amounts (gross x register percentage) against the HR register column.

    Args:
        staff_sheets: Sheet name -> rows of the Staff payroll extract
        worker_sheets: Sheet name -> rows of the Worker payroll extract
        hr_sheets: Sheet name -> rows of the HR bonus report (REGISTER column)
        policy_table: Loaded policy contract (cached default when omitted)
        percentage_overrides: Per-run custom percentages layered over the contract
        audit_service: When given, summary/mismatch/diagnostic messages are ingested
        step: Pipeline step recorded on audit messages
        batch_id: Audit batch to append to (fresh when omitted)

    Raises:
        InputMissingError: If any of the three datasets is absent or empty
        ConfigurationError: If the policy contract or ``step`` is invalid
    """
    _check_step(step)
    staff_sheets = _require(STAFF, staff_sheets)
    worker_sheets = _require(WORKER, worker_sheets)
    hr_sheets = _require("HR", hr_sheets)
    policy = policy_table or get_policy_table()
    registry = _layered_registry(policy, percentage_overrides)
    run_log = bind_run(logger, variant=REGISTER, step=step)

    run_log.info(
        f"Register reconciliation started (contract v{policy.version}, "
        f"register {policy.settings.register_percentage}%)"
    )

    warnings: List[str] = []
    aggregates, diagnostics = _gross_aggregates(staff_sheets, worker_sheets, registry, warnings)
    hr = read_hr_report(hr_sheets, amount_kind="register")
    diagnostics += hr.diagnostics

    rows = reconcile_register(aggregates, hr.records, registry, policy.settings)
    result = _finish(REGISTER, step, rows, aggregates, diagnostics, policy, warnings, audit_service, batch_id)

    totals = result.summary["totals"]
    run_log.info(
        f"Register reconciliation finished: {totals['total']} rows, "
        f"{totals['custom_percentage_count']} custom percentages, {totals['mismatches']} mismatch"
    )
    return result


def run_unpaid_reconciliation(
    staff_sheets: Optional[Mapping[str, Rows]],
    worker_sheets: Optional[Mapping[str, Rows]],
    hr_sheets: Optional[Mapping[str, Rows]],
    due_voucher_sheets: Optional[Mapping[str, Rows]],
    policy_table: Optional[PolicyTable] = None,
    percentage_overrides: Optional[PercentageOverrides] = None,
    audit_service: Optional[AuditTrailService] = None,
    step: int = UNPAID_STEP,
    batch_id: Optional[str] = None,
) -> ReconciliationResult:
    """
    Compare computed unpaid amounts against the HR unpaid (DUE VC) column.

    Args:
        staff_sheets: Sheet name -> rows of the Staff payroll extract
        worker_sheets: Sheet name -> rows of the Worker payroll extract
        hr_sheets: Sheet name -> rows of the HR bonus report (UNPAID / DUE VC column)
        due_voucher_sheets: Sheet name -> rows of the due-voucher list
        policy_table: Loaded policy contract (cached default when omitted)
        percentage_overrides: Per-run custom percentages layered over the contract
        audit_service: When given, summary/mismatch/diagnostic messages are ingested
        step: Pipeline step recorded on audit messages
        batch_id: Audit batch to append to (fresh when omitted)

    Raises:
        InputMissingError: If any of the four datasets is absent or empty
        ConfigurationError: If the policy contract or ``step`` is invalid
    """
    _check_step(step)
    staff_sheets = _require(STAFF, staff_sheets)
    worker_sheets = _require(WORKER, worker_sheets)
    hr_sheets = _require("HR", hr_sheets)
    due_voucher_sheets = _require("Due voucher", due_voucher_sheets)
    policy = policy_table or get_policy_table()
    registry = _layered_registry(policy, percentage_overrides)
    run_log = bind_run(logger, variant=UNPAID, step=step)

    run_log.info(
        f"Unpaid reconciliation started (contract v{policy.version}, "
        f"Worker eligibility {policy.settings.unpaid_min_service_months} months)"
    )

    warnings: List[str] = []
    aggregates, diagnostics = _gross_aggregates(staff_sheets, worker_sheets, registry, warnings)
    hr = read_hr_report(hr_sheets, amount_kind="unpaid")
    vouchers = read_due_vouchers(due_voucher_sheets)
    diagnostics += hr.diagnostics + vouchers.diagnostics

    rows = reconcile_unpaid(aggregates, hr.records, vouchers.amounts, registry, policy.settings)
    result = _finish(UNPAID, step, rows, aggregates, diagnostics, policy, warnings, audit_service, batch_id)

    totals = result.summary["totals"]
    run_log.info(
        f"Unpaid reconciliation finished: {totals['total']} rows, "
        f"{totals['ineligible_count']} not eligible, {totals['mismatches']} mismatch"
    )
    return result


__all__ = [
    "GROSS_STEP",
    "REGISTER_STEP",
    "UNPAID_STEP",
    "REIMBURSEMENT_STEP",
    "ReconciliationResult",
    "run_gross_reconciliation",
    "run_reimbursement_reconciliation",
    "run_register_reconciliation",
    "run_unpaid_reconciliation",
]
