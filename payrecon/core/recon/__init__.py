"""
Reconciliation Package

Monthly aggregation and cross-source comparison of payroll compensation.
Run entry points live in ``payrecon.core.recon.run_reconciliation``.
"""

from payrecon.core.recon.aggregator import AggregateRecord, EmployeeSeries, aggregate_employee, merge
from payrecon.core.recon.comparison import ComparisonRow, reconcile_totals
from payrecon.core.recon.reimbursement import ReimbursementRow, compute_reimbursement
from payrecon.core.recon.register import RegisterRow, UnpaidRow, reconcile_register, reconcile_unpaid

__all__ = [
    'AggregateRecord',
    'EmployeeSeries',
    'aggregate_employee',
    'merge',
    'ComparisonRow',
    'reconcile_totals',
    'ReimbursementRow',
    'compute_reimbursement',
    'RegisterRow',
    'UnpaidRow',
    'reconcile_register',
    'reconcile_unpaid',
]
