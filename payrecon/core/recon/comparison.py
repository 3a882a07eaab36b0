"""
Cross-Source Reconciliator (base variant).

Compares software-computed totals against HR-reported totals per employee
identity and labels each pair Match or Mismatch under a fixed tolerance.

Key Functions:
    - compare_totals(): Tolerance verdict for one pair of amounts
    - reconcile_totals(): Comparison rows for the union of identities
    - comparison_rows_to_frame(): Tabular export in identity order
    - export_comparison_csv(): Write the export to CSV

Example:
    >>> rows = reconcile_totals(aggregates, hr_extract.records, tolerance=12)
    >>> df = comparison_rows_to_frame(rows)
    >>> df[df["status"] == "Mismatch"]
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from payrecon.core.recon.aggregator import UNKNOWN, AggregateRecord

logger = logging.getLogger(__name__)

MATCH = "Match"
MISMATCH = "Mismatch"

COMPARISON_COLUMNS = [
    "identity",
    "name",
    "department",
    "computed_total",
    "reported_total",
    "difference",
    "status",
    "in_computed",
    "in_reported",
]


@dataclass(frozen=True)
class ComparisonRow:
    """
    One identity's verdict.

    ``difference`` is computed minus reported. The ``in_*`` flags record
    which side actually carried the identity (a missing side compares as 0).
    """
    identity: int
    name: str
    department: str
    computed_total: float
    reported_total: float
    difference: float
    status: str
    in_computed: bool = True
    in_reported: bool = True

    @property
    def is_match(self) -> bool:
        return self.status == MATCH

    def to_dict(self) -> dict:
        return asdict(self)


def compare_totals(computed: float, reported: float, tolerance: float) -> Tuple[float, str]:
    """
    Difference and verdict for one pair; the boundary |difference| == tolerance matches.

    Examples:
        >>> compare_totals(12000.0, 12010.0, 12)
        (-10.0, 'Match')
        >>> compare_totals(100.0, 112.0, 12)
        (-12.0, 'Match')
        >>> compare_totals(100.0, 112.5, 12)
        (-12.5, 'Mismatch')
    """
    difference = computed - reported
    status = MATCH if abs(difference) <= tolerance else MISMATCH
    return difference, status


def reconcile_totals(
    computed: Mapping[int, AggregateRecord],
    reported: Mapping[int, object],
    tolerance: float,
) -> List[ComparisonRow]:
    """
    Build comparison rows for every identity seen on either side.

    Args:
        computed: Identity -> AggregateRecord (software side)
        reported: Identity -> HR record (``amount``, ``name``, ``department``)
                  or a plain amount
        tolerance: Non-negative match tolerance

    Returns:
        Rows sorted ascending by identity. Computed-side metadata wins; an
        identity missing on one side compares against 0.
    """
    rows: List[ComparisonRow] = []
    for identity in sorted(set(computed) | set(reported)):
        aggregate = computed.get(identity)
        hr_record = reported.get(identity)

        computed_total = aggregate.total if aggregate is not None else 0.0
        reported_total = reported_amount(hr_record)

        if aggregate is not None:
            name, department = aggregate.name, aggregate.department
        else:
            name = getattr(hr_record, "name", "")
            department = getattr(hr_record, "department", UNKNOWN)

        difference, status = compare_totals(computed_total, reported_total, tolerance)
        rows.append(
            ComparisonRow(
                identity=identity,
                name=name,
                department=department,
                computed_total=computed_total,
                reported_total=reported_total,
                difference=difference,
                status=status,
                in_computed=aggregate is not None,
                in_reported=hr_record is not None,
            )
        )

    mismatches = sum(1 for row in rows if not row.is_match)
    logger.info(f"Compared {len(rows)} identities: {len(rows) - mismatches} match, {mismatches} mismatch")
    return rows


def reported_amount(hr_record) -> float:
    """Amount of an HR record, a plain number, or 0.0 when the identity is absent."""
    if hr_record is None:
        return 0.0
    if isinstance(hr_record, (int, float)):
        return float(hr_record)
    return float(hr_record.amount)


def comparison_rows_to_frame(rows: Iterable, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Convert comparison rows (base or reimbursement) to a DataFrame in identity order.

    An empty input still yields the expected columns.
    """
    records = [row.to_dict() for row in rows]
    if columns is None:
        columns = list(records[0].keys()) if records else COMPARISON_COLUMNS
    df = pd.DataFrame.from_records(records, columns=columns)
    if not df.empty:
        df = df.sort_values("identity", kind="mergesort").reset_index(drop=True)
    return df


def export_comparison_csv(rows: Iterable, path: Union[str, Path]) -> Path:
    """Write the comparison export to ``path`` and return it."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    df = comparison_rows_to_frame(rows)
    df.to_csv(output, index=False)
    logger.info(f"Wrote {len(df)} comparison rows to {output}")
    return output


__all__ = [
    "MATCH",
    "MISMATCH",
    "COMPARISON_COLUMNS",
    "ComparisonRow",
    "compare_totals",
    "reported_amount",
    "reconcile_totals",
    "comparison_rows_to_frame",
    "export_comparison_csv",
]
