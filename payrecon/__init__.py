"""
payrecon - payroll compensation reconciliation.

Compares software-computed compensation totals built from monthly payroll
extracts against HR-reported figures and keeps an audit trail of the
diagnostic messages each reconciliation pass emits.
"""

__version__ = "1.0.0"
