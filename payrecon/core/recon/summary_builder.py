"""
Summary Builder Module

Builds run summaries and audit trail messages from reconciliation rows.

This module is responsible for:
- Counting matches and mismatches overall and per population
- Summing computed and reported amounts per population
- Turning the summary, each mismatch and each diagnostic into audit items
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from payrecon.core.recon.aggregator import STAFF, WORKER
from payrecon.core.recon.register import RegisterRow, UnpaidRow
from payrecon.core.recon.reimbursement import CUSTOM, ReimbursementRow

logger = logging.getLogger(__name__)

GROSS = "gross"
REIMBURSEMENT = "reimbursement"
REGISTER = "register"
UNPAID = "unpaid"

SCOPE_BY_DEPARTMENT = {STAFF: "staff", WORKER: "worker"}

GROSS_SUMS = ("computed_sum", "reported_sum")
REIMBURSEMENT_SUMS = ("gross_sum", "register_sum", "actual_sum", "computed_sum", "reported_sum")
REGISTER_SUMS = ("gross_sum", "computed_sum", "reported_sum")
UNPAID_SUMS = ("register_sum", "due_voucher_sum", "computed_sum", "reported_sum")
SUM_KEYS = {
    GROSS: GROSS_SUMS,
    REIMBURSEMENT: REIMBURSEMENT_SUMS,
    REGISTER: REGISTER_SUMS,
    UNPAID: UNPAID_SUMS,
}


def scope_for(department: Optional[str]) -> str:
    """Audit scope for a department or population label; anything else is global."""
    return SCOPE_BY_DEPARTMENT.get(department or "", "global")


def _amounts(row) -> Dict[str, float]:
    if isinstance(row, ReimbursementRow):
        return {
            "gross_sum": row.gross_total,
            "register_sum": row.register_amount,
            "actual_sum": row.actual_amount,
            "computed_sum": row.reim_computed,
            "reported_sum": row.reim_reported,
        }
    if isinstance(row, RegisterRow):
        return {
            "gross_sum": row.gross_total,
            "computed_sum": row.register_computed,
            "reported_sum": row.register_reported,
        }
    if isinstance(row, UnpaidRow):
        return {
            "register_sum": row.register_computed,
            "due_voucher_sum": row.due_voucher,
            "computed_sum": row.unpaid_computed,
            "reported_sum": row.unpaid_reported,
        }
    return {"computed_sum": row.computed_total, "reported_sum": row.reported_total}


class SummaryBuilder:
    """
    Build the summary of one reconciliation run.

    Example:
        >>> builder = SummaryBuilder(rows, variant="gross", tolerance=12.0)
        >>> summary = builder.build()
        >>> summary["totals"]["mismatches"]
        3
    """

    def __init__(
        self,
        rows: Sequence,
        variant: str,
        tolerance: float,
        contract: Optional[Dict[str, Any]] = None,
        diagnostics: Sequence = (),
    ):
        """
        Initialize the summary builder.

        Args:
            rows: ComparisonRow, ReimbursementRow, RegisterRow or UnpaidRow values
            variant: "gross", "reimbursement", "register" or "unpaid"
            tolerance: Tolerance the rows were compared under
            contract: Policy contract metadata (version, hash)
            diagnostics: Recoverable skips raised while reading sources
        """
        self.rows = list(rows)
        self.variant = variant
        self.tolerance = tolerance
        self.contract = contract or {}
        self.diagnostics = list(diagnostics)

    def build(self) -> Dict[str, Any]:
        """
        Build the summary metrics.

        Returns:
            {
                'variant': str,
                'totals': {total, matches, mismatches, tolerance, missing_in_hr,
                           missing_in_computed, diagnostics[, custom_percentage_count,
                           estimate_suppressed_count, ineligible_count]},
                'staff' / 'worker' / 'unknown': {count, mismatches, *_sum},
                'contract': {version, contract_hash},
            }
        """
        matches = sum(1 for row in self.rows if row.is_match)
        totals: Dict[str, Any] = {
            "total": len(self.rows),
            "matches": matches,
            "mismatches": len(self.rows) - matches,
            "tolerance": self.tolerance,
            "missing_in_hr": sum(1 for row in self.rows if not row.in_reported),
            "missing_in_computed": sum(1 for row in self.rows if not row.in_computed),
            "diagnostics": len(self.diagnostics),
        }
        if self.variant in (REIMBURSEMENT, REGISTER):
            totals["custom_percentage_count"] = sum(
                1 for row in self.rows if row.percentage_source == CUSTOM
            )
        if self.variant == REIMBURSEMENT:
            totals["estimate_suppressed_count"] = sum(
                1 for row in self.rows if row.estimate_suppressed
            )
        if self.variant == UNPAID:
            totals["ineligible_count"] = sum(1 for row in self.rows if not row.eligible)

        summary: Dict[str, Any] = {"variant": self.variant, "totals": totals}
        for label in ("staff", "worker", "unknown"):
            summary[label] = self._population(label)

        summary["contract"] = {
            "version": self.contract.get("version"),
            "contract_hash": self.contract.get("contract_hash"),
        }
        return summary

    def _population(self, label: str) -> Dict[str, Any]:
        rows = [row for row in self.rows if _population_label(row.department) == label]
        stats: Dict[str, Any] = {
            "count": len(rows),
            "mismatches": sum(1 for row in rows if not row.is_match),
        }
        stats.update({key: 0.0 for key in SUM_KEYS.get(self.variant, GROSS_SUMS)})
        for row in rows:
            for key, value in _amounts(row).items():
                stats[key] = stats.get(key, 0.0) + value
        return stats


def _population_label(department: str) -> str:
    if department == STAFF:
        return "staff"
    if department == WORKER:
        return "worker"
    return "unknown"


def build_summary_message(summary: Dict[str, Any], step: int) -> Dict[str, Any]:
    """Audit item carrying the run summary."""
    totals = summary["totals"]
    return {
        "level": "info",
        "tag": "summary",
        "text": (
            f"Step{step} run: total={totals['total']} "
            f"match={totals['matches']} mismatch={totals['mismatches']}"
        ),
        "scope": "global",
        "source": f"step{step}",
        "meta": summary,
    }


def build_mismatch_messages(rows: Iterable, step: int, tolerance: float) -> List[Dict[str, Any]]:
    """
    One error item per mismatching row.

    Rows whose identity is absent on the HR side are tagged ``missing-in-hr``.
    """
    items = []
    for row in rows:
        if row.is_match:
            continue
        meta = row.to_dict()
        meta["tolerance"] = tolerance
        items.append({
            "level": "error",
            "tag": "mismatch" if row.in_reported else "missing-in-hr",
            "text": f"[step{step}] {row.identity} {row.name} diff={row.difference:.2f}",
            "scope": scope_for(row.department),
            "source": f"step{step}",
            "meta": meta,
        })
    return items


def build_diagnostic_messages(diagnostics: Iterable, step: int) -> List[Dict[str, Any]]:
    """One warning item per recoverable skip, tagged with the diagnostic kind."""
    return [
        {
            "level": "warning",
            "tag": diagnostic.kind,
            "text": f"[step{step}] {diagnostic.population} '{diagnostic.sheet}': {diagnostic.message}",
            "scope": scope_for(diagnostic.population),
            "source": f"step{step}",
            "meta": diagnostic.to_dict(),
        }
        for diagnostic in diagnostics
    ]


def build_audit_items(
    summary: Dict[str, Any],
    rows: Sequence,
    diagnostics: Sequence,
    step: int,
    tolerance: float,
) -> List[Dict[str, Any]]:
    """Summary item first, then mismatches, then diagnostics."""
    items = [build_summary_message(summary, step)]
    items.extend(build_mismatch_messages(rows, step, tolerance))
    items.extend(build_diagnostic_messages(diagnostics, step))
    logger.debug(f"Built {len(items)} audit items for step {step}")
    return items


__all__ = [
    "GROSS",
    "REIMBURSEMENT",
    "REGISTER",
    "UNPAID",
    "SummaryBuilder",
    "scope_for",
    "build_summary_message",
    "build_mismatch_messages",
    "build_diagnostic_messages",
    "build_audit_items",
]
