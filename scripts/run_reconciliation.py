#!/usr/bin/env python3
"""
Headless Reconciliation Script

Runs the gross, register, unpaid or reimbursement reconciliation over
directories of CSV sheets (one file per sheet, file stem = sheet name) and
prints the run summary as JSON on stdout.

Usage:
    python scripts/run_reconciliation.py gross --staff data/staff --worker data/worker --hr data/hr
    python scripts/run_reconciliation.py reimbursement --staff data/staff --hr data/hr_reim \\
        --percentages data/percentages --output reim.csv
    python scripts/run_reconciliation.py unpaid --staff data/staff --worker data/worker --hr data/bonus \\
        --due-voucher data/due_vc
    python scripts/run_reconciliation.py --help

Exit codes:
    0 - run completed (mismatches are reported, not failures)
    1 - configuration error or missing input
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime

# Ensure project modules are importable
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from payrecon.core.audit.service import MAX_STEP, MIN_STEP, AuditTrailService, is_valid_step
from payrecon.core.audit.store import JsonlAuditStore
from payrecon.core.errors import PayreconError
from payrecon.core.logging_config import setup_logging
from payrecon.core.policies.registry import load_policy_table
from payrecon.core.recon.run_reconciliation import (
    run_gross_reconciliation,
    run_reimbursement_reconciliation,
    run_register_reconciliation,
    run_unpaid_reconciliation,
)
from payrecon.core.sources import load_csv_sheets, read_percentage_workbook


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run payroll reconciliation in headless mode",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Gross comparison, comparison rows written to CSV
    python scripts/run_reconciliation.py gross --staff staff/ --worker worker/ --hr hr/ --output gross.csv

    # Reimbursement with a per-run percentage workbook (Per.csv / Average.csv)
    python scripts/run_reconciliation.py reimbursement --staff staff/ --hr reim/ --percentages pct/

    # Register and unpaid checks against the HR bonus report
    python scripts/run_reconciliation.py register --staff staff/ --worker worker/ --hr bonus/
    python scripts/run_reconciliation.py unpaid --staff staff/ --worker worker/ --hr bonus/ --due-voucher due_vc/

    # Pin a policy contract and persist audit messages
    python scripts/run_reconciliation.py gross --staff staff/ --worker worker/ --hr hr/ \\
        --policy contracts/FY25.yaml --audit-store audit.jsonl
        """,
    )

    parser.add_argument(
        "variant", choices=["gross", "register", "unpaid", "reimbursement"], help="Reconciliation variant"
    )
    parser.add_argument("--staff", required=True, help="Directory of Staff payroll sheets (CSV)")
    parser.add_argument("--worker", help="Directory of Worker payroll sheets (CSV; gross, register and unpaid)")
    parser.add_argument("--hr", required=True, help="Directory of HR report sheets (CSV)")
    parser.add_argument(
        "--percentages",
        help="Directory holding Per.csv and/or Average.csv (register, unpaid and reimbursement)",
    )
    parser.add_argument(
        "--due-voucher", dest="due_voucher", help="Directory of due-voucher sheets (CSV, unpaid only)"
    )
    parser.add_argument("--policy", help="Policy contract YAML (default: PAYRECON_POLICY_FILE or bundled)")
    parser.add_argument("--output", help="Write comparison rows to this CSV file")
    parser.add_argument("--audit-store", dest="audit_store", help="Append audit messages to this JSONL file")
    parser.add_argument("--step", type=int, help="Pipeline step recorded on audit messages")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only warnings and errors on the log")

    return parser.parse_args(argv)


def _load_percentages(directory: str):
    sheets = load_csv_sheets(directory)
    return read_percentage_workbook(sheets.get("Per"), sheets.get("Average"))


def main(argv=None) -> int:
    """Main entry point for the headless reconciliation."""
    args = parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = None
    # stdout carries the JSON summary only
    setup_logging(level=level, format_as_json=False, stream=sys.stderr)

    start_time = datetime.now()
    if args.step is not None and not is_valid_step(args.step):
        print(f"Error: --step must be between {MIN_STEP} and {MAX_STEP}, got {args.step}", file=sys.stderr)
        return 1
    if args.variant in ("gross", "register", "unpaid") and not args.worker:
        print(f"Error: --worker is required for the {args.variant} variant", file=sys.stderr)
        return 1
    if args.variant == "unpaid" and not args.due_voucher:
        print("Error: --due-voucher is required for the unpaid variant", file=sys.stderr)
        return 1

    try:
        policy = load_policy_table(args.policy) if args.policy else None
        audit_service = AuditTrailService(JsonlAuditStore(args.audit_store)) if args.audit_store else None
        common = {"policy_table": policy, "audit_service": audit_service}
        if args.step is not None:
            common["step"] = args.step
        if args.variant != "gross":
            common["percentage_overrides"] = _load_percentages(args.percentages) if args.percentages else None

        staff_sheets = load_csv_sheets(args.staff)
        hr_sheets = load_csv_sheets(args.hr)
        if args.variant == "reimbursement":
            result = run_reimbursement_reconciliation(staff_sheets=staff_sheets, hr_sheets=hr_sheets, **common)
        else:
            worker_sheets = load_csv_sheets(args.worker)
            if args.variant == "gross":
                result = run_gross_reconciliation(staff_sheets, worker_sheets, hr_sheets, **common)
            elif args.variant == "register":
                result = run_register_reconciliation(staff_sheets, worker_sheets, hr_sheets, **common)
            else:
                result = run_unpaid_reconciliation(
                    staff_sheets, worker_sheets, hr_sheets, load_csv_sheets(args.due_voucher), **common
                )
    except (PayreconError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        result.export_csv(args.output)

    output = result.to_dict()
    output["execution_time_seconds"] = (datetime.now() - start_time).total_seconds()
    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
