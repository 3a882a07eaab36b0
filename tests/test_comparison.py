"""
Tests for the base cross-source reconciliator.

Covers the tolerance boundary, the identity union, metadata precedence and
the tabular export.
"""

import pandas as pd
import pytest

from payrecon.core.recon.aggregator import STAFF, UNKNOWN, WORKER, EmployeeSeries, aggregate_employee
from payrecon.core.recon.comparison import (
    COMPARISON_COLUMNS,
    MATCH,
    MISMATCH,
    comparison_rows_to_frame,
    compare_totals,
    export_comparison_csv,
    reconcile_totals,
    reported_amount,
)
from payrecon.core.sources import ReportedRecord

from conftest import WINDOW


def _aggregate(registry, identity, amount=1000.0, department=STAFF, name="EMP"):
    months = {month_key: amount for month_key in WINDOW}
    return aggregate_employee(EmployeeSeries(identity, name, department, months), registry)


class TestCompareTotals:
    @pytest.mark.parametrize("computed,reported,expected", [
        (12000.0, 12010.0, MATCH),
        (100.0, 112.0, MATCH),
        (112.0, 100.0, MATCH),
        (100.0, 112.5, MISMATCH),
        (0.0, 0.0, MATCH),
    ])
    def test_tolerance_boundary(self, computed, reported, expected):
        difference, status = compare_totals(computed, reported, 12)
        assert difference == computed - reported
        assert status == expected

    def test_zero_tolerance(self):
        assert compare_totals(5.0, 5.0, 0)[1] == MATCH
        assert compare_totals(5.0, 5.01, 0)[1] == MISMATCH


class TestReportedAmount:
    def test_forms(self):
        assert reported_amount(None) == 0.0
        assert reported_amount(42) == 42.0
        assert reported_amount(ReportedRecord(1, "A", STAFF, 99.5, 1)) == 99.5


class TestReconcileTotals:
    """End-to-end comparisons over aggregate records."""

    def test_default_policy_example(self, registry):
        computed = {100: _aggregate(registry, 100)}
        reported = {100: ReportedRecord(100, "HR NAME", STAFF, 12010.0, 1)}

        [row] = reconcile_totals(computed, reported, tolerance=12)

        assert row.computed_total == 12000.0
        assert row.difference == -10.0
        assert row.status == MATCH

    def test_hard_exclude_example(self, registry):
        computed = {200: _aggregate(registry, 200)}
        reported = {200: ReportedRecord(200, "HR NAME", STAFF, 12000.0, 1)}

        [row] = reconcile_totals(computed, reported, tolerance=12)

        assert row.computed_total == 11000.0
        assert row.difference == -1000.0
        assert row.status == MISMATCH

    def test_union_sorted_with_missing_sides(self, registry):
        computed = {
            30: _aggregate(registry, 30, department=WORKER, name="COMPUTED ONLY"),
            10: _aggregate(registry, 10),
        }
        reported = {
            10: ReportedRecord(10, "X", STAFF, 12000.0, 1),
            20: ReportedRecord(20, "HR ONLY", WORKER, 500.0, 1),
        }

        rows = reconcile_totals(computed, reported, tolerance=12)

        assert [row.identity for row in rows] == [10, 20, 30]
        hr_only, computed_only = rows[1], rows[2]
        assert hr_only.computed_total == 0.0
        assert hr_only.name == "HR ONLY"
        assert hr_only.department == WORKER
        assert hr_only.in_computed is False
        assert hr_only.status == MISMATCH
        assert computed_only.reported_total == 0.0
        assert computed_only.in_reported is False

    def test_computed_metadata_wins(self, registry):
        computed = {10: _aggregate(registry, 10, name="PAYROLL NAME")}
        reported = {10: ReportedRecord(10, "HR NAME", UNKNOWN, 12000.0, 1)}

        [row] = reconcile_totals(computed, reported, tolerance=12)

        assert row.name == "PAYROLL NAME"
        assert row.department == STAFF

    def test_plain_amounts_accepted(self, registry):
        [row] = reconcile_totals({10: _aggregate(registry, 10)}, {10: 12005.0}, tolerance=12)
        assert row.is_match

    def test_empty_inputs(self):
        assert reconcile_totals({}, {}, tolerance=12) == []


class TestExport:
    def test_frame_columns_and_order(self, registry):
        rows = reconcile_totals(
            {2: _aggregate(registry, 2), 1: _aggregate(registry, 1)},
            {},
            tolerance=12,
        )
        df = comparison_rows_to_frame(rows)

        assert list(df.columns) == COMPARISON_COLUMNS
        assert list(df["identity"]) == [1, 2]

    def test_empty_frame_keeps_columns(self):
        df = comparison_rows_to_frame([])
        assert df.empty
        assert list(df.columns) == COMPARISON_COLUMNS

    def test_csv_export(self, registry, tmp_path):
        rows = reconcile_totals({1: _aggregate(registry, 1)}, {1: 12000.0}, tolerance=12)

        path = export_comparison_csv(rows, tmp_path / "out" / "comparison.csv")

        df = pd.read_csv(path)
        assert len(df) == 1
        assert df.loc[0, "status"] == MATCH
        assert df.loc[0, "computed_total"] == 12000.0
