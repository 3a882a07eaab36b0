"""
Tabular source adapter for payroll extracts and HR reports.

The workbook reader itself is external: it hands over, per sheet name, a list
of rows (lists of cells) or a header-less DataFrame. This module locates the
header row and columns by fuzzy name matching and turns the rows into
per-employee series (payroll extracts) or reported totals (HR report).

Nothing here raises for a bad sheet. Unrecognized period names, missing
columns, excluded months and unknown department codes become ``Diagnostic``
records that travel with the result and are logged at WARNING.

Key Functions:
    - find_header_row(): Locate the header row by identifier alias
    - read_payroll_sheet(): Fold one monthly sheet into employee series
    - collect_population(): Fold every sheet of one population (Staff/Worker)
    - read_hr_report(): Sum one HR-reported amount column per identity
    - read_percentage_workbook(): Custom percentages and suppressed estimates
    - read_due_vouchers(): Due-voucher amount per identity
    - load_csv_sheets(): Read a directory of CSV files as named sheets
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from payrecon.core.errors import InputMissingError
from payrecon.core.policies.models import PolicyRegistry
from payrecon.core.recon.aggregator import STAFF, UNKNOWN, WORKER, EmployeeSeries
from payrecon.utils.date_utils import normalize_month_key
from payrecon.utils.pandas_utils import coerce_amount, coerce_identifier, frame_to_rows

logger = logging.getLogger(__name__)

Rows = Union[Sequence[Sequence[Any]], pd.DataFrame]

HEADER_SCAN_ROWS = 15
WORKER_SALARY_COLUMN = 8

IDENTIFIER_ALIASES = ("EMPID", "EMPCODE")
DUE_VOUCHER_IDENTIFIER_ALIASES = ("EMPCODE", "EMPLOYEECODE")
_DUE_VOUCHER_RE = re.compile(r"DUE.*VC")
_NAME_RE = re.compile(r"EMPLOYEE\s*NAME", re.IGNORECASE)
_SALARY_RE = re.compile(r"^\s*SALARY\s*-?\s*1\s*$", re.IGNORECASE)
_DEPARTMENT_ALIASES = ("DEPT", "DEPARTMENT", "DEPTT")
_DOJ_RE = re.compile(r"DATE\s*OF\s*JOINING|DOJ|JOINING\s*DATE|D\.O\.J", re.IGNORECASE)

_HR_IDENTIFIER_RE = re.compile(r"EMP.*CODE|EMPCODE", re.IGNORECASE)
_HR_SECTION_BREAK_RE = re.compile(r"EMP.*CODE|EMPCODE|^SR.*NO", re.IGNORECASE)
_HR_NAME_RE = re.compile(r"EMP.*NAME|EMPNAME|EMPLOYEE.*NAME", re.IGNORECASE)
_HR_DEPARTMENT_RE = re.compile(r"DEPTT|DEPT|DEPARTMENT", re.IGNORECASE)
HR_AMOUNT_PATTERNS = {
    "gross": re.compile(r"^(GROSS|GROSS SAL\.)$", re.IGNORECASE),
    "reimbursement": re.compile(r"^REIM\.?$", re.IGNORECASE),
    "register": re.compile(r"^REGISTER$", re.IGNORECASE),
    "unpaid": re.compile(r"^(UNPAID|DUE\s*VC)$", re.IGNORECASE),
}
HR_DEPARTMENT_CODES = {"W": WORKER, "M": STAFF, "S": STAFF}

# Diagnostic kinds
UNRECOGNIZED_PERIOD = "unrecognized-period"
EXCLUDED_MONTH = "excluded-month"
OUTSIDE_WINDOW = "outside-window"
MISSING_COLUMNS = "missing-columns"
MISSING_HEADER = "missing-header"
UNKNOWN_DEPARTMENT = "unknown-department"


@dataclass(frozen=True)
class Diagnostic:
    """A recoverable skip: the sheet or row was left out and processing continued."""
    kind: str
    population: str
    sheet: str
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "population": self.population,
            "sheet": self.sheet,
            "message": self.message,
            "detail": dict(self.detail),
        }


@dataclass
class PopulationExtract:
    """Employee series of one population plus the diagnostics raised reading it."""
    population: str
    series: Dict[int, EmployeeSeries] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    sheets_read: List[str] = field(default_factory=list)


@dataclass
class ReportedRecord:
    """HR-reported amount for one identity, summed over every section it appears in."""
    identity: int
    name: str
    department: str
    amount: float = 0.0
    occurrences: int = 0


@dataclass
class HRExtract:
    amount_kind: str
    records: Dict[int, ReportedRecord] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def totals(self) -> Dict[int, float]:
        return {identity: record.amount for identity, record in sorted(self.records.items())}


@dataclass
class PercentageOverrides:
    custom_percentages: Dict[int, float] = field(default_factory=dict)
    suppressed_estimates: List[int] = field(default_factory=list)


@dataclass
class DueVoucherExtract:
    amounts: Dict[int, float] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)


def normalize_header(value: Any) -> str:
    """Upper-case a header cell and drop whitespace, '-', '_' and '.'."""
    text = "" if value is None else str(value)
    return re.sub(r"[\s\-_.]", "", text).upper()


def _as_rows(rows: Rows) -> List[List[Any]]:
    if isinstance(rows, pd.DataFrame):
        return frame_to_rows(rows)
    return [list(row) if row is not None else [] for row in rows]


def _cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def _find_column(header: Sequence[Any], predicate) -> Optional[int]:
    for index, cell in enumerate(header):
        if predicate(cell):
            return index
    return None


def find_header_row(
    rows: Sequence[Sequence[Any]],
    max_scan: int = HEADER_SCAN_ROWS,
    aliases: Sequence[str] = IDENTIFIER_ALIASES,
) -> Optional[int]:
    """
    Index of the first row (within ``max_scan``) holding an identifier alias.

    Examples:
        >>> find_header_row([["Payroll Nov"], [], ["Sr", "Emp Id", "Employee Name"]])
        2
    """
    for index, row in enumerate(rows[:max_scan]):
        if row and any(normalize_header(cell) in aliases for cell in row):
            return index
    return None


def resolve_payroll_columns(header: Sequence[Any], population: str) -> Dict[str, Optional[int]]:
    """
    Map logical columns to positions in a payroll header row.

    Worker extracts fall back to a fixed salary column position when no
    salary header is found.
    """
    salary = _find_column(
        header,
        lambda h: bool(_SALARY_RE.match(_text(h))) or normalize_header(h) == "SALARY1",
    )
    if salary is None and population == WORKER:
        salary = WORKER_SALARY_COLUMN

    return {
        "identifier": _find_column(header, lambda h: normalize_header(h) in IDENTIFIER_ALIASES),
        "name": _find_column(header, lambda h: bool(_NAME_RE.search(_text(h)))),
        "salary": salary,
        "department": _find_column(header, lambda h: normalize_header(h) in _DEPARTMENT_ALIASES),
        "date_of_joining": _find_column(header, lambda h: bool(_DOJ_RE.search(_text(h)))),
    }


def read_payroll_sheet(
    sheet_name: str,
    rows: Rows,
    population: str,
    registry: PolicyRegistry,
    extract: Optional[PopulationExtract] = None,
) -> PopulationExtract:
    """
    Fold one monthly payroll sheet into ``extract``.

    Args:
        sheet_name: Period label used to derive the month key
        rows: Sheet rows (cells) or a header-less DataFrame
        population: STAFF or WORKER
        registry: Supplies the window, excluded months and excluded departments
        extract: Accumulator; a new one is created when omitted

    Returns:
        The accumulator, with observations added or a diagnostic recorded
    """
    extract = extract if extract is not None else PopulationExtract(population)

    def skip(kind: str, message: str, **detail) -> PopulationExtract:
        diagnostic = Diagnostic(kind, population, sheet_name, message, detail)
        extract.diagnostics.append(diagnostic)
        logger.warning(f"[{population}] Skipping sheet '{sheet_name}': {message}")
        return extract

    month_key = normalize_month_key(sheet_name)
    if month_key is None:
        return skip(UNRECOGNIZED_PERIOD, "sheet name does not name a month")
    if registry.is_excluded_month(month_key):
        return skip(EXCLUDED_MONTH, f"{month_key} is an excluded month", month_key=month_key)
    if month_key not in registry.window:
        return skip(OUTSIDE_WINDOW, f"{month_key} is outside the aggregation window", month_key=month_key)

    data = _as_rows(rows)
    header_index = find_header_row(data)
    if header_index is None:
        return skip(MISSING_HEADER, f"no identifier column in the first {HEADER_SCAN_ROWS} rows")

    columns = resolve_payroll_columns(data[header_index], population)
    missing = [name for name in ("identifier", "name", "salary") if columns[name] is None]
    if missing:
        return skip(MISSING_COLUMNS, f"missing columns {missing}", missing=missing)

    added = 0
    for row in data[header_index + 1:]:
        if not row:
            continue
        if columns["department"] is not None and registry.is_excluded_department(_cell(row, columns["department"])):
            continue

        identity = coerce_identifier(_cell(row, columns["identifier"]))
        name = _text(_cell(row, columns["name"])).upper()
        if identity is None or not name:
            continue

        amount = coerce_amount(_cell(row, columns["salary"]))
        doj = _cell(row, columns["date_of_joining"])

        series = extract.series.get(identity)
        if series is None:
            series = EmployeeSeries(identity=identity, name=name, department=population, date_of_joining=doj)
            extract.series[identity] = series
        elif series.date_of_joining in (None, "") and doj not in (None, ""):
            series.date_of_joining = doj

        series.observe(month_key, amount)
        added += 1

    extract.sheets_read.append(sheet_name)
    logger.info(f"[{population}] Sheet '{sheet_name}' -> {month_key}: {added} rows")
    return extract


def collect_population(
    sheets: Mapping[str, Rows],
    population: str,
    registry: PolicyRegistry,
) -> PopulationExtract:
    """
    Read every sheet of one population workbook, in the given sheet order.

    Raises:
        InputMissingError: If ``sheets`` is empty
    """
    if not sheets:
        raise InputMissingError(population, f"{population} extract has no sheets")

    extract = PopulationExtract(population)
    for sheet_name, rows in sheets.items():
        read_payroll_sheet(sheet_name, rows, population, registry, extract)

    logger.info(
        f"[{population}] {len(extract.series)} employees from {len(extract.sheets_read)} sheets "
        f"({len(extract.diagnostics)} skipped)"
    )
    return extract


def read_hr_report(sheets: Mapping[str, Rows], amount_kind: str = "gross") -> HRExtract:
    """
    Sum HR-reported amounts per identity across sheets and repeated sections.

    Any row with an employee-code header cell starts a new section with its own
    column positions; data rows run until the next header (or serial-number)
    row. Rows without an identity or an employee name are skipped. An identity
    appearing in several sections or sheets accumulates its amount and
    occurrence count; name and department come from the first row.

    Args:
        sheets: Sheet name -> rows
        amount_kind: "gross", "reimbursement", "register" or "unpaid"

    Raises:
        InputMissingError: If ``sheets`` is empty
        ValueError: If ``amount_kind`` is unknown
    """
    if amount_kind not in HR_AMOUNT_PATTERNS:
        raise ValueError(f"Unknown HR amount kind: {amount_kind!r}")
    if not sheets:
        raise InputMissingError("HR", "HR report has no sheets")

    amount_re = HR_AMOUNT_PATTERNS[amount_kind]
    extract = HRExtract(amount_kind)

    for sheet_name, raw_rows in sheets.items():
        data = _as_rows(raw_rows)
        sections = 0
        index = 0
        while index < len(data):
            header = data[index]
            index += 1
            if not header or not any(_HR_IDENTIFIER_RE.search(_text(cell)) for cell in header):
                continue

            identifier_col = _find_column(header, lambda h: bool(_HR_IDENTIFIER_RE.search(_text(h))))
            name_col = _find_column(header, lambda h: bool(_HR_NAME_RE.search(_text(h))))
            department_col = _find_column(header, lambda h: bool(_HR_DEPARTMENT_RE.search(_text(h))))
            amount_col = _find_column(header, lambda h: bool(amount_re.match(_text(h))))

            if amount_col is None:
                message = f"section at row {index} has no {amount_kind} column"
                extract.diagnostics.append(
                    Diagnostic(MISSING_COLUMNS, "HR", sheet_name, message, {"row": index, "missing": [amount_kind]})
                )
                logger.warning(f"[HR] Sheet '{sheet_name}': {message}")
                continue

            sections += 1
            while index < len(data):
                row = data[index]
                if row and any(_HR_SECTION_BREAK_RE.search(_text(cell)) for cell in row):
                    break
                index += 1
                if not row:
                    continue

                identity = coerce_identifier(_cell(row, identifier_col))
                name = _text(_cell(row, name_col)).upper()
                if identity is None or not name:
                    continue
                amount = coerce_amount(_cell(row, amount_col))

                record = extract.records.get(identity)
                if record is None:
                    code = _text(_cell(row, department_col)).upper()
                    department = HR_DEPARTMENT_CODES.get(code, UNKNOWN)
                    if department == UNKNOWN:
                        extract.diagnostics.append(
                            Diagnostic(
                                UNKNOWN_DEPARTMENT, "HR", sheet_name,
                                f"employee {identity} has unrecognized department code {code!r}",
                                {"identity": identity, "code": code},
                            )
                        )
                        logger.warning(f"[HR] Emp {identity}: unrecognized department code {code!r}")
                    record = ReportedRecord(
                        identity=identity,
                        name=name,
                        department=department,
                    )
                    extract.records[identity] = record

                record.amount += amount
                record.occurrences += 1

        if sections == 0 and not any(d.sheet == sheet_name for d in extract.diagnostics):
            message = "no employee-code header row found"
            extract.diagnostics.append(Diagnostic(MISSING_HEADER, "HR", sheet_name, message))
            logger.warning(f"[HR] Skipping sheet '{sheet_name}': {message}")

    repeated = sum(1 for record in extract.records.values() if record.occurrences > 1)
    logger.info(
        f"[HR] {len(extract.records)} employees ({amount_kind}), "
        f"{repeated} reported in more than one section"
    )
    return extract


def read_percentage_workbook(
    per_rows: Optional[Rows] = None,
    average_rows: Optional[Rows] = None,
) -> PercentageOverrides:
    """
    Read a per-run percentage workbook.

    ``per_rows`` (first row is a header) carries the identity in column 1 and a
    custom percentage in column 4. ``average_rows`` lists identities (column 1)
    whose trailing estimate is suppressed. Rows without a usable identity or a
    non-zero percentage are ignored.
    """
    overrides = PercentageOverrides()

    if per_rows is not None:
        for row in _as_rows(per_rows)[1:]:
            identity = coerce_identifier(_cell(row, 1))
            percentage = coerce_amount(_cell(row, 4))
            if identity is not None and percentage:
                overrides.custom_percentages[identity] = percentage

    if average_rows is not None:
        for row in _as_rows(average_rows)[1:]:
            identity = coerce_identifier(_cell(row, 1))
            if identity is not None and identity not in overrides.suppressed_estimates:
                overrides.suppressed_estimates.append(identity)

    logger.info(
        f"Loaded {len(overrides.custom_percentages)} custom percentages and "
        f"{len(overrides.suppressed_estimates)} suppressed estimates"
    )
    return overrides


def read_due_vouchers(sheets: Mapping[str, Rows]) -> DueVoucherExtract:
    """
    Due-voucher amount per identity.

    Each sheet needs an employee-code header (EMP CODE / EMPLOYEE CODE) within
    the first rows and a ``DUE VC`` column. A later row for the same identity
    replaces the earlier amount.

    Raises:
        InputMissingError: If ``sheets`` is empty
    """
    if not sheets:
        raise InputMissingError("Due voucher", "Due voucher workbook has no sheets")

    extract = DueVoucherExtract()
    for sheet_name, raw_rows in sheets.items():
        data = _as_rows(raw_rows)
        header_index = find_header_row(data, aliases=DUE_VOUCHER_IDENTIFIER_ALIASES)
        if header_index is None:
            message = "no employee-code header row found"
            extract.diagnostics.append(Diagnostic(MISSING_HEADER, "Due voucher", sheet_name, message))
            logger.warning(f"[Due voucher] Skipping sheet '{sheet_name}': {message}")
            continue

        header = data[header_index]
        identifier_col = _find_column(header, lambda h: normalize_header(h) in DUE_VOUCHER_IDENTIFIER_ALIASES)
        amount_col = _find_column(header, lambda h: bool(_DUE_VOUCHER_RE.search(normalize_header(h))))
        if amount_col is None:
            message = "missing columns ['due_voucher']"
            extract.diagnostics.append(
                Diagnostic(MISSING_COLUMNS, "Due voucher", sheet_name, message, {"missing": ["due_voucher"]})
            )
            logger.warning(f"[Due voucher] Skipping sheet '{sheet_name}': {message}")
            continue

        for row in data[header_index + 1:]:
            if not row:
                continue
            identity = coerce_identifier(_cell(row, identifier_col))
            if identity is not None:
                extract.amounts[identity] = coerce_amount(_cell(row, amount_col))

    logger.info(f"[Due voucher] {len(extract.amounts)} employees")
    return extract


def load_csv_sheets(directory: Union[str, Path]) -> Dict[str, pd.DataFrame]:
    """
    Read every ``*.csv`` in ``directory`` as a header-less sheet.

    The file stem is the sheet name; sheets are returned in file-name order.

    Raises:
        InputMissingError: If the directory does not exist or holds no CSV files
    """
    path = Path(directory)
    if not path.is_dir():
        raise InputMissingError(str(path), f"Sheet directory not found: {path}")

    files = sorted(path.glob("*.csv"))
    if not files:
        raise InputMissingError(str(path), f"No CSV sheets in {path}")

    sheets = {}
    for csv_file in files:
        sheets[csv_file.stem] = pd.read_csv(
            csv_file, header=None, dtype=object, skip_blank_lines=False, keep_default_na=False
        )
    logger.info(f"Loaded {len(sheets)} sheets from {path}")
    return sheets


__all__ = [
    "Diagnostic",
    "PopulationExtract",
    "ReportedRecord",
    "HRExtract",
    "PercentageOverrides",
    "DueVoucherExtract",
    "normalize_header",
    "find_header_row",
    "resolve_payroll_columns",
    "read_payroll_sheet",
    "collect_population",
    "read_hr_report",
    "read_percentage_workbook",
    "read_due_vouchers",
    "load_csv_sheets",
]
