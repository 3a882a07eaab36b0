"""
Tests for the reimbursement variant.

The register rate is 8.33 and the secondary gross factor 0.6 throughout.
"""

import pandas as pd
import pytest

from payrecon.core.recon.aggregator import STAFF, AggregateRecord
from payrecon.core.recon.comparison import MATCH, MISMATCH
from payrecon.core.recon.reimbursement import (
    CALCULATED,
    CUSTOM,
    compute_reimbursement,
    effective_percentage,
    months_of_service,
    reconcile_reimbursement,
    tenure_percentage,
)
from payrecon.core.sources import ReportedRecord

REFERENCE = pd.Timestamp("2025-10-30")


def _gross(identity, total, doj=None, suppressed=False):
    return AggregateRecord(
        identity=identity,
        name="EMP",
        department=STAFF,
        included_months=(("2025-09", total),),
        base_sum=total,
        estimate=0.0,
        total=total,
        date_of_joining=doj,
        sources=(STAFF,),
        estimate_suppressed=suppressed,
    )


class TestMonthsOfService:
    def test_dotted_date(self):
        assert months_of_service("15.03.24", REFERENCE) == 19

    def test_serial(self):
        # 45292 is 2024-01-01
        assert months_of_service(45292, REFERENCE) == 21

    @pytest.mark.parametrize("raw", [None, "", "n/a"])
    def test_missing_is_zero(self, raw):
        assert months_of_service(raw, REFERENCE) == 0


class TestTenurePercentage:
    @pytest.mark.parametrize("months,expected", [
        (0, 10.0),
        (11, 10.0),
        (12, 12.0),
        (23, 12.0),
        (24, 8.33),
        (120, 8.33),
    ])
    def test_tiers(self, settings, months, expected):
        assert tenure_percentage(months, settings) == expected


class TestEffectivePercentage:
    def test_custom_override(self, registry, settings):
        assert effective_percentage(600, 0, registry, settings) == (15.0, CUSTOM)

    def test_calculated(self, registry, settings):
        assert effective_percentage(1, 30, registry, settings) == (8.33, CALCULATED)


class TestComputeReimbursement:
    """The three branches of the register/actual formula."""

    def test_equal_rate_gives_zero(self, settings):
        figures = compute_reimbursement(12000.0, 8.33, settings)

        assert figures.secondary_gross == 12000.0
        assert figures.register_amount == pytest.approx(999.6)
        assert figures.actual_amount == pytest.approx(999.6)
        assert figures.reim_computed == 0.0

    def test_above_rate_scales_basis(self, settings):
        figures = compute_reimbursement(12000.0, 10.0, settings)

        assert figures.secondary_gross == pytest.approx(7200.0)
        assert figures.actual_amount == pytest.approx(720.0)
        assert figures.reim_computed == pytest.approx(279.6)

    def test_below_rate_has_no_actual(self, settings):
        figures = compute_reimbursement(12000.0, 5.0, settings)

        assert figures.secondary_gross == 0.0
        assert figures.actual_amount == 0.0
        assert figures.reim_computed == pytest.approx(999.6)


class TestReconcileReimbursement:
    def test_long_tenure_matches_zero(self, registry, settings):
        computed = {1: _gross(1, 12000.0, doj="01.01.2015")}
        reported = {1: ReportedRecord(1, "EMP", STAFF, 5.0, 1)}

        [row] = reconcile_reimbursement(computed, reported, registry, settings)

        assert row.percentage_source == CALCULATED
        assert row.effective_percentage == 8.33
        assert row.reim_computed == 0.0
        assert row.difference == -5.0
        assert row.status == MATCH

    def test_new_joiner_uses_first_tier(self, registry, settings):
        computed = {1: _gross(1, 12000.0)}
        reported = {1: ReportedRecord(1, "EMP", STAFF, 279.6, 1)}

        [row] = reconcile_reimbursement(computed, reported, registry, settings)

        assert row.months_of_service == 0
        assert row.effective_percentage == 10.0
        assert row.difference == pytest.approx(0.0, abs=1e-6)
        assert row.status == MATCH

    def test_custom_percentage_and_suppression_flag(self, registry, settings):
        computed = {600: _gross(600, 10000.0, doj="01.01.2015", suppressed=True)}

        [row] = reconcile_reimbursement(computed, {}, registry, settings)

        assert row.percentage_source == CUSTOM
        assert row.effective_percentage == 15.0
        assert row.actual_amount == pytest.approx(900.0)
        assert row.reim_computed == pytest.approx(833.0 - 900.0)
        assert row.estimate_suppressed is True
        assert row.in_reported is False
        assert row.status == MISMATCH

    def test_hr_only_identity(self, registry, settings):
        reported = {9: ReportedRecord(9, "HR ONLY", STAFF, 50.0, 1)}

        [row] = reconcile_reimbursement({}, reported, registry, settings)

        assert row.gross_total == 0.0
        assert row.name == "HR ONLY"
        assert row.in_computed is False
        assert row.difference == -50.0

    def test_rows_sorted(self, registry, settings):
        computed = {3: _gross(3, 100.0), 1: _gross(1, 100.0)}
        rows = reconcile_reimbursement(computed, {2: 0.0}, registry, settings)
        assert [row.identity for row in rows] == [1, 2, 3]
