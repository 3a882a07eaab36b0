"""
Tests for run summaries and the audit items built from them.
"""

from payrecon.core.recon.aggregator import STAFF, UNKNOWN, WORKER
from payrecon.core.recon.comparison import MATCH, MISMATCH, ComparisonRow
from payrecon.core.recon.register import DEFAULT, RegisterRow, UnpaidRow
from payrecon.core.recon.reimbursement import CUSTOM
from payrecon.core.recon.summary_builder import (
    GROSS,
    REGISTER,
    UNPAID,
    SummaryBuilder,
    build_audit_items,
    build_mismatch_messages,
    build_summary_message,
    scope_for,
)
from payrecon.core.sources import Diagnostic


def _row(identity, department, computed, reported, status, in_reported=True, name="EMP"):
    return ComparisonRow(
        identity=identity,
        name=name,
        department=department,
        computed_total=computed,
        reported_total=reported,
        difference=computed - reported,
        status=status,
        in_reported=in_reported,
    )


ROWS = [
    _row(1, STAFF, 100.0, 100.0, MATCH),
    _row(2, STAFF, 200.0, 150.0, MISMATCH, name="BOB"),
    _row(3, WORKER, 50.0, 0.0, MISMATCH, in_reported=False),
]


class TestSummaryBuilder:
    def test_totals(self):
        summary = SummaryBuilder(ROWS, GROSS, 12.0, contract={"version": 2, "contract_hash": "abc"}).build()

        assert summary["variant"] == GROSS
        assert summary["totals"] == {
            "total": 3,
            "matches": 1,
            "mismatches": 2,
            "tolerance": 12.0,
            "missing_in_hr": 1,
            "missing_in_computed": 0,
            "diagnostics": 0,
        }
        assert summary["contract"] == {"version": 2, "contract_hash": "abc"}

    def test_per_population(self):
        summary = SummaryBuilder(ROWS, GROSS, 12.0).build()

        assert summary["staff"] == {"count": 2, "mismatches": 1, "computed_sum": 300.0, "reported_sum": 250.0}
        assert summary["worker"]["count"] == 1
        assert summary["unknown"] == {"count": 0, "mismatches": 0, "computed_sum": 0.0, "reported_sum": 0.0}


class TestAuditItems:
    def test_summary_message(self):
        summary = SummaryBuilder(ROWS, GROSS, 12.0).build()
        item = build_summary_message(summary, 3)

        assert item["text"] == "Step3 run: total=3 match=1 mismatch=2"
        assert item["level"] == "info"
        assert item["tag"] == "summary"
        assert item["source"] == "step3"

    def test_mismatch_messages(self):
        items = build_mismatch_messages(ROWS, 3, 12.0)

        assert [item["text"] for item in items] == ["[step3] 2 BOB diff=50.00", "[step3] 3 EMP diff=50.00"]
        assert [item["tag"] for item in items] == ["mismatch", "missing-in-hr"]
        assert [item["scope"] for item in items] == ["staff", "worker"]
        assert items[0]["meta"]["tolerance"] == 12.0

    def test_item_order(self):
        diagnostic = Diagnostic("unrecognized-period", STAFF, "Summary", "sheet name does not name a month")
        summary = SummaryBuilder(ROWS, GROSS, 12.0, diagnostics=[diagnostic]).build()

        items = build_audit_items(summary, ROWS, [diagnostic], step=3, tolerance=12.0)

        assert [item["tag"] for item in items] == ["summary", "mismatch", "missing-in-hr", "unrecognized-period"]
        assert items[-1]["level"] == "warning"
        assert items[-1]["scope"] == "staff"

    def test_scope_for(self):
        assert scope_for(STAFF) == "staff"
        assert scope_for(WORKER) == "worker"
        assert scope_for(UNKNOWN) == "global"
        assert scope_for(None) == "global"


class TestRegisterAndUnpaidSummaries:
    def _register_row(self, identity, department, computed, reported, status, source=DEFAULT):
        return RegisterRow(
            identity=identity,
            name="EMP",
            department=department,
            gross_total=computed * 12,
            percentage=8.33,
            percentage_source=source,
            register_computed=computed,
            register_reported=reported,
            difference=computed - reported,
            status=status,
        )

    def _unpaid_row(self, identity, department, eligible, unpaid, reported, status):
        return UnpaidRow(
            identity=identity,
            name="EMP",
            department=department,
            gross_total=1200.0,
            percentage=8.33,
            register_computed=99.96,
            months_of_service=3,
            eligible=eligible,
            due_voucher=40.0,
            unpaid_computed=unpaid,
            unpaid_reported=reported,
            difference=unpaid - reported,
            status=status,
        )

    def test_register_summary(self):
        rows = [
            self._register_row(1, STAFF, 100.0, 100.0, MATCH),
            self._register_row(2, WORKER, 50.0, 10.0, MISMATCH, source=CUSTOM),
        ]
        summary = SummaryBuilder(rows, REGISTER, 12.0).build()

        assert summary["totals"]["custom_percentage_count"] == 1
        assert "estimate_suppressed_count" not in summary["totals"]
        assert summary["worker"] == {
            "count": 1, "mismatches": 1, "gross_sum": 600.0, "computed_sum": 50.0, "reported_sum": 10.0,
        }
        assert summary["unknown"] == {
            "count": 0, "mismatches": 0, "gross_sum": 0.0, "computed_sum": 0.0, "reported_sum": 0.0,
        }

    def test_unpaid_summary(self):
        rows = [
            self._unpaid_row(1, STAFF, True, 40.0, 40.0, MATCH),
            self._unpaid_row(2, WORKER, False, 99.96, 0.0, MISMATCH),
        ]
        summary = SummaryBuilder(rows, UNPAID, 12.0).build()

        assert summary["totals"]["ineligible_count"] == 1
        assert summary["staff"]["due_voucher_sum"] == 40.0
        assert summary["worker"]["computed_sum"] == 99.96
        assert summary["worker"]["register_sum"] == 99.96

        [item] = build_mismatch_messages(rows, 6, 12.0)
        assert item["text"] == "[step6] 2 EMP diff=99.96"
        assert item["meta"]["eligible"] is False
