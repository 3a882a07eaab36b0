import pandas as pd
import pytest

from payrecon.core.policies import (
    PolicyRegistryBuilder,
    PolicyTable,
    ReconciliationSettings,
    clear_cache,
)

WINDOW = [
    "2024-11", "2024-12", "2025-01", "2025-02", "2025-03", "2025-04",
    "2025-05", "2025-06", "2025-07", "2025-08", "2025-09",
]

PAYROLL_HEADER = ["SR NO", "EMP ID", "EMPLOYEE NAME", "DEPT", "DOJ", "SALARY-1"]


def payroll_rows(*employees):
    """Sheet rows: a title line, the header, then (id, name, dept, doj, salary) tuples."""
    return [["Monthly salary register"], PAYROLL_HEADER] + [
        [index + 1, *employee] for index, employee in enumerate(employees)
    ]


def monthly_sheets(employees_by_month):
    """{month_key: [(id, name, dept, doj, salary), ...]} -> {sheet name: rows}."""
    return {
        pd.Timestamp(f"{month_key}-01").strftime("%b-%y"): payroll_rows(*employees)
        for month_key, employees in employees_by_month.items()
    }


@pytest.fixture(autouse=True)
def _reset_policy_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def registry():
    """Window Nov-2024..Sep-2025 with the usual exclusions and a few overrides."""
    return (
        PolicyRegistryBuilder()
        .with_window(WINDOW)
        .exclude_months(["2024-10", "2025-10"])
        .exclude_departments(["C", "CASH", "A"])
        .add_override(200, hard_exclude_from_estimate=True)
        .add_override(300, include_zeros=True)
        .add_override(400, exclude_zeros_but_count_months=True)
        .add_override(500, start_month="2025-06")
        .add_override(600, custom_percentage=15.0, suppress_estimate_month=True)
        .build()
    )


@pytest.fixture
def settings():
    return ReconciliationSettings(
        tolerance=12,
        register_percentage=8.33,
        reference_date=pd.Timestamp("2025-10-30"),
    )


@pytest.fixture
def policy_table(registry, settings):
    return PolicyTable(
        version=1,
        effective_date="2025-10-30",
        description="test contract",
        registry=registry,
        settings=settings,
    )
