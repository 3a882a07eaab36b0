"""
Policy Models for the payrecon override policy contracts.

This module defines the data models loaded from a policy contract: the
per-employee override policies, the registry that looks them up, and the run
settings (tolerance, register percentage, reference date) that the
reconciliation variants apply.

Key Models:
    - OverridePolicy: Behavioral exceptions for one employee identity
    - PolicyRegistry: Read-only identity -> policy lookup plus global sets
    - PolicyRegistryBuilder: Fluent builder producing a validated PolicyRegistry
    - ReconciliationSettings: Numeric constants for a reconciliation run
    - PolicyTable: A loaded contract (registry + settings + evidence metadata)
"""

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import pandas as pd

from payrecon.core.errors import ConfigurationError
from payrecon.utils.date_utils import is_month_key


@dataclass(frozen=True)
class OverridePolicy:
    """
    Behavioral exceptions for a single employee identity.

    Attributes:
        include_zeros: Zero and missing window months count toward the sum
                       and the full window length is the estimate divisor
        exclude_zeros_but_count_months: Every reported month counts, zero or
                       not; unreported months are skipped
        hard_exclude_from_estimate: Never compute a trailing-month estimate
        start_month: Aggregation window starts at this month key
        custom_percentage: Overrides the tenure-derived percentage in the
                       reimbursement variant
        suppress_estimate_month: Reimbursement variant forces the trailing
                       estimate to zero while keeping the employee
    """
    include_zeros: bool = False
    exclude_zeros_but_count_months: bool = False
    hard_exclude_from_estimate: bool = False
    start_month: Optional[str] = None
    custom_percentage: Optional[float] = None
    suppress_estimate_month: bool = False

    def __post_init__(self):
        if self.include_zeros and self.exclude_zeros_but_count_months:
            raise ConfigurationError(
                "include_zeros and exclude_zeros_but_count_months are mutually exclusive"
            )
        if self.start_month is not None and not is_month_key(self.start_month):
            raise ConfigurationError(
                f"start_month must be a YYYY-MM key, got {self.start_month!r}"
            )
        if self.custom_percentage is not None:
            if isinstance(self.custom_percentage, bool) or self.custom_percentage < 0:
                raise ConfigurationError(
                    f"custom_percentage must be a non-negative number, got {self.custom_percentage!r}"
                )
            object.__setattr__(self, "custom_percentage", float(self.custom_percentage))

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_POLICY

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/evidence."""
        return {
            "include_zeros": self.include_zeros,
            "exclude_zeros_but_count_months": self.exclude_zeros_but_count_months,
            "hard_exclude_from_estimate": self.hard_exclude_from_estimate,
            "start_month": self.start_month,
            "custom_percentage": self.custom_percentage,
            "suppress_estimate_month": self.suppress_estimate_month,
        }


DEFAULT_POLICY = OverridePolicy()


class PolicyRegistry:
    """
    Read-only override lookup keyed by employee identity.

    Besides the per-identity policies it carries the process-wide sets that
    every run consults: the ordered rolling window of eligible months, the
    excluded month keys and the excluded department codes.

    Example:
        >>> registry = (
        ...     PolicyRegistryBuilder()
        ...     .with_window(["2025-08", "2025-09"])
        ...     .add_override(937, hard_exclude_from_estimate=True)
        ...     .build()
        ... )
        >>> registry.lookup(937).hard_exclude_from_estimate
        True
        >>> registry.lookup(1).is_default
        True
    """

    def __init__(
        self,
        window: Iterable[str],
        overrides: Optional[Mapping[int, OverridePolicy]] = None,
        excluded_months: Iterable[str] = (),
        excluded_departments: Iterable[str] = (),
    ):
        window = tuple(window)
        if not window:
            raise ConfigurationError("Policy window must contain at least one month")
        bad = [mk for mk in window if not is_month_key(mk)]
        if bad:
            raise ConfigurationError(f"Window entries are not YYYY-MM keys: {bad}")
        if list(window) != sorted(window) or len(set(window)) != len(window):
            raise ConfigurationError(f"Window must be strictly ascending: {list(window)}")

        bad_excluded = [mk for mk in excluded_months if not is_month_key(mk)]
        if bad_excluded:
            raise ConfigurationError(f"Excluded months are not YYYY-MM keys: {bad_excluded}")

        self._window: Tuple[str, ...] = window
        self._overrides: Dict[int, OverridePolicy] = dict(overrides or {})
        self._excluded_months: FrozenSet[str] = frozenset(excluded_months)
        self._excluded_departments: FrozenSet[str] = frozenset(
            str(code).strip().upper() for code in excluded_departments
        )

    @property
    def window(self) -> Tuple[str, ...]:
        return self._window

    @property
    def anchor_month(self) -> str:
        """Last window month; a positive value here marks a current series."""
        return self._window[-1]

    @property
    def excluded_months(self) -> FrozenSet[str]:
        return self._excluded_months

    @property
    def excluded_departments(self) -> FrozenSet[str]:
        return self._excluded_departments

    def lookup(self, identity: int) -> OverridePolicy:
        """Policy for ``identity``; the default policy when none is registered."""
        return self._overrides.get(identity, DEFAULT_POLICY)

    def has_override(self, identity: int) -> bool:
        return identity in self._overrides

    def is_excluded_month(self, month_key: str) -> bool:
        return month_key in self._excluded_months

    def is_excluded_department(self, code) -> bool:
        return str(code or "").strip().upper() in self._excluded_departments

    def effective_window(self, identity: int) -> Tuple[str, ...]:
        """
        Window for ``identity``: the configured window restricted to months
        >= the policy start month when one is set.

        Excluded months are dropped when sheets are read, not here, so an
        excluded month inside the window still counts toward the
        ``include_zeros`` divisor.
        """
        policy = self.lookup(identity)
        months = list(self._window)
        if policy.start_month is not None:
            months = [mk for mk in months if mk >= policy.start_month]
        return tuple(months)

    def with_percentage_overrides(
        self,
        custom_percentages: Optional[Mapping[int, float]] = None,
        suppressed_estimates: Iterable[int] = (),
    ) -> "PolicyRegistry":
        """
        Return a new registry with reimbursement overrides layered on top.

        Used when custom percentages and suppressed-estimate identities come
        from a per-run percentage workbook rather than the contract. Values
        from the workbook replace the contract's for those two fields only.
        """
        merged = dict(self._overrides)
        for identity, percentage in (custom_percentages or {}).items():
            merged[identity] = replace(merged.get(identity, DEFAULT_POLICY), custom_percentage=percentage)
        for identity in suppressed_estimates:
            merged[identity] = replace(merged.get(identity, DEFAULT_POLICY), suppress_estimate_month=True)
        return PolicyRegistry(
            window=self._window,
            overrides=merged,
            excluded_months=self._excluded_months,
            excluded_departments=self._excluded_departments,
        )

    def __len__(self) -> int:
        return len(self._overrides)


class PolicyRegistryBuilder:
    """
    Fluent builder for PolicyRegistry.

    Validation happens as overrides are added (conflicting flags raise
    ConfigurationError immediately) and again when ``build`` runs.
    """

    def __init__(self):
        self._window: Tuple[str, ...] = ()
        self._overrides: Dict[int, OverridePolicy] = {}
        self._excluded_months: Tuple[str, ...] = ()
        self._excluded_departments: Tuple[str, ...] = ()

    def with_window(self, months: Iterable[str]) -> "PolicyRegistryBuilder":
        self._window = tuple(months)
        return self

    def exclude_months(self, months: Iterable[str]) -> "PolicyRegistryBuilder":
        self._excluded_months = self._excluded_months + tuple(months)
        return self

    def exclude_departments(self, codes: Iterable[str]) -> "PolicyRegistryBuilder":
        self._excluded_departments = self._excluded_departments + tuple(codes)
        return self

    def add_override(self, identity: int, **flags) -> "PolicyRegistryBuilder":
        if isinstance(identity, bool) or not isinstance(identity, int) or identity <= 0:
            raise ConfigurationError(f"Override identity must be a positive integer, got {identity!r}")
        if identity in self._overrides:
            raise ConfigurationError(f"Duplicate override for employee {identity}")
        try:
            self._overrides[identity] = OverridePolicy(**flags)
        except TypeError as e:
            raise ConfigurationError(f"Invalid override for employee {identity}: {e}")
        except ConfigurationError as e:
            raise ConfigurationError(f"Invalid override for employee {identity}: {e}")
        return self

    def build(self) -> PolicyRegistry:
        return PolicyRegistry(
            window=self._window,
            overrides=self._overrides,
            excluded_months=self._excluded_months,
            excluded_departments=self._excluded_departments,
        )


@dataclass(frozen=True)
class ReconciliationSettings:
    """
    Numeric constants applied by a reconciliation run.

    Attributes:
        tolerance: Match iff |computed - reported| <= tolerance
        register_percentage: Fixed register rate (percent) for reimbursement
        reference_date: Date tenure is measured to
        secondary_gross_factor: Basis scaling applied above the register rate
        tenure_tiers: (months_upper_bound_exclusive, percentage) pairs checked
                      in order; tenure beyond the last bound uses the register rate
        unpaid_min_service_months: Months of service a Worker needs before
                      the due voucher, not the register, is the unpaid amount
    """
    tolerance: float
    register_percentage: float
    reference_date: pd.Timestamp
    secondary_gross_factor: float = 0.6
    tenure_tiers: Tuple[Tuple[int, float], ...] = ((12, 10.0), (24, 12.0))
    unpaid_min_service_months: int = 6

    def __post_init__(self):
        if self.tolerance is None or self.register_percentage is None:
            raise ConfigurationError("tolerance and register_percentage are required")
        if self.tolerance < 0:
            raise ConfigurationError(f"tolerance must be non-negative, got {self.tolerance}")
        if self.register_percentage <= 0:
            raise ConfigurationError(
                f"register_percentage must be positive, got {self.register_percentage}"
            )
        bounds = [bound for bound, _ in self.tenure_tiers]
        if bounds != sorted(bounds):
            raise ConfigurationError(f"tenure_tiers bounds must ascend, got {bounds}")
        if isinstance(self.unpaid_min_service_months, bool) or self.unpaid_min_service_months < 0:
            raise ConfigurationError(
                f"unpaid_min_service_months must be a non-negative integer, got {self.unpaid_min_service_months!r}"
            )
        object.__setattr__(self, "tolerance", float(self.tolerance))
        object.__setattr__(self, "register_percentage", float(self.register_percentage))
        object.__setattr__(self, "secondary_gross_factor", float(self.secondary_gross_factor))
        object.__setattr__(
            self, "tenure_tiers",
            tuple((int(bound), float(pct)) for bound, pct in self.tenure_tiers),
        )
        object.__setattr__(self, "unpaid_min_service_months", int(self.unpaid_min_service_months))

    def to_dict(self) -> dict:
        return {
            "tolerance": self.tolerance,
            "register_percentage": self.register_percentage,
            "reference_date": self.reference_date.strftime("%Y-%m-%d"),
            "secondary_gross_factor": self.secondary_gross_factor,
            "tenure_tiers": [list(tier) for tier in self.tenure_tiers],
            "unpaid_min_service_months": self.unpaid_min_service_months,
        }


@dataclass(frozen=True)
class PolicyTable:
    """
    A loaded policy contract.

    Attributes:
        version: Contract version number
        effective_date: Date the contract takes effect (YYYY-MM-DD)
        description: Human-readable description
        registry: Override registry built from the contract
        settings: Run constants from the contract
        contract_hash: SHA256 of the contract file ("inline" when built in code)
    """
    version: int
    effective_date: str
    description: str
    registry: PolicyRegistry
    settings: ReconciliationSettings
    contract_hash: str = field(default="inline")

    def to_dict(self) -> dict:
        """Contract metadata for logging/evidence (no per-employee detail)."""
        return {
            "version": self.version,
            "effective_date": self.effective_date,
            "description": self.description,
            "contract_hash": self.contract_hash,
            "window": list(self.registry.window),
            "excluded_months": sorted(self.registry.excluded_months),
            "excluded_departments": sorted(self.registry.excluded_departments),
            "override_count": len(self.registry),
            "settings": self.settings.to_dict(),
        }


__all__ = [
    "OverridePolicy",
    "DEFAULT_POLICY",
    "PolicyRegistry",
    "PolicyRegistryBuilder",
    "ReconciliationSettings",
    "PolicyTable",
]
