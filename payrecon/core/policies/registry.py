"""
Policy Contract Registry for payrecon.

This module handles loading, caching, and validating override policy contracts
from YAML files. It provides SHA256 hashing for evidence integrity and lets a
deployment pin a different contract file through the environment.

Key Functions:
    - load_policy_table: Load and validate a policy contract from YAML
    - get_contract_hash: Calculate SHA256 hash of a contract file
    - get_policy_table: Get a policy table with caching (preferred method)
    - clear_cache: Drop cached policy tables
"""

import hashlib
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from payrecon.core.errors import ConfigurationError
from payrecon.utils.date_utils import normalize_date, validate_yyyy_mm_dd
from .models import (
    PolicyRegistryBuilder,
    PolicyTable,
    ReconciliationSettings,
)

logger = logging.getLogger(__name__)

POLICY_FILE_ENV = "PAYRECON_POLICY_FILE"
DEFAULT_CONTRACT_NAME = "DEFAULT"

_OVERRIDE_FLAGS = (
    "include_zeros",
    "exclude_zeros_but_count_months",
    "hard_exclude_from_estimate",
    "start_month",
    "custom_percentage",
    "suppress_estimate_month",
)


def get_contracts_dir() -> Path:
    """
    Get the path to the bundled contracts directory.

    Returns:
        Path to contracts directory
    """
    contracts_dir = Path(__file__).resolve().parent / "contracts"

    if not contracts_dir.exists():
        raise FileNotFoundError(f"Contracts directory not found: {contracts_dir}")

    return contracts_dir


def resolve_contract_path(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve which contract file to load.

    Precedence: explicit ``path`` > ``PAYRECON_POLICY_FILE`` > bundled DEFAULT.
    """
    if path is not None:
        return Path(path)

    env_path = os.environ.get(POLICY_FILE_ENV)
    if env_path:
        logger.info(f"Using policy contract pinned by {POLICY_FILE_ENV}: {env_path}")
        return Path(env_path)

    return get_contracts_dir() / f"{DEFAULT_CONTRACT_NAME}.yaml"


def get_contract_hash(contract_path: Path) -> str:
    """
    Calculate SHA256 hash of a contract file for evidence integrity.

    Args:
        contract_path: Path to the contract YAML file

    Returns:
        SHA256 hash as hexadecimal string
    """
    sha256_hash = hashlib.sha256()

    with open(contract_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)

    return sha256_hash.hexdigest()


def build_policy_table(data: Dict[str, Any], contract_hash: str = "inline") -> PolicyTable:
    """
    Build a PolicyTable from parsed contract data.

    Args:
        data: Mapping with the contract fields (see DEFAULT.yaml)
        contract_hash: Hash recorded with the table for evidence

    Returns:
        Validated PolicyTable

    Raises:
        ConfigurationError: If required fields are missing or inconsistent
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Policy contract must be a mapping, got {type(data).__name__}")

    required_fields = ["version", "effective_date", "description", "settings", "window"]
    missing_fields = [name for name in required_fields if name not in data]
    if missing_fields:
        raise ConfigurationError(f"Missing required fields in policy contract: {missing_fields}")

    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ConfigurationError(f"Contract version must be an integer >= 1, got {version!r}")

    effective_date = str(data["effective_date"])
    try:
        validate_yyyy_mm_dd(effective_date)
    except ValueError as e:
        raise ConfigurationError(f"Invalid effective_date: {e}")

    settings = _parse_settings(data.get("settings") or {})

    builder = (
        PolicyRegistryBuilder()
        .with_window(str(mk) for mk in data["window"] or [])
        .exclude_months(str(mk) for mk in data.get("excluded_months") or [])
        .exclude_departments(str(code) for code in data.get("excluded_departments") or [])
    )

    for entry in data.get("overrides") or []:
        if not isinstance(entry, dict) or "employee_id" not in entry:
            raise ConfigurationError(f"Override entry needs an employee_id: {entry!r}")
        unknown = sorted(set(entry) - set(_OVERRIDE_FLAGS) - {"employee_id", "note"})
        if unknown:
            raise ConfigurationError(
                f"Unknown override fields for employee {entry['employee_id']}: {unknown}"
            )
        flags = {name: entry[name] for name in _OVERRIDE_FLAGS if name in entry}
        if "start_month" in flags and flags["start_month"] is not None:
            flags["start_month"] = str(flags["start_month"])
        builder.add_override(entry["employee_id"], **flags)

    return PolicyTable(
        version=version,
        effective_date=effective_date,
        description=str(data["description"]),
        registry=builder.build(),
        settings=settings,
        contract_hash=contract_hash,
    )


def _parse_settings(raw: Dict[str, Any]) -> ReconciliationSettings:
    missing = [name for name in ("tolerance", "register_percentage", "reference_date") if raw.get(name) is None]
    if missing:
        raise ConfigurationError(f"Missing required settings in policy contract: {missing}")

    try:
        tolerance = float(raw["tolerance"])
        register_percentage = float(raw["register_percentage"])
        secondary_gross_factor = float(raw.get("secondary_gross_factor", 0.6))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Policy settings must be numeric: {e}")

    try:
        reference_date = normalize_date(str(raw["reference_date"]))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid reference_date: {e}")

    kwargs: Dict[str, Any] = {}
    if raw.get("tenure_tiers") is not None:
        try:
            kwargs["tenure_tiers"] = tuple(
                (int(tier["below_months"]), float(tier["percentage"]))
                for tier in raw["tenure_tiers"]
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid tenure_tiers: {e}")
    if raw.get("unpaid_min_service_months") is not None:
        try:
            kwargs["unpaid_min_service_months"] = int(raw["unpaid_min_service_months"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid unpaid_min_service_months: {e}")

    return ReconciliationSettings(
        tolerance=tolerance,
        register_percentage=register_percentage,
        reference_date=reference_date,
        secondary_gross_factor=secondary_gross_factor,
        **kwargs,
    )


def load_policy_table(path: Optional[Union[str, Path]] = None) -> PolicyTable:
    """
    Load a policy contract from YAML file.

    Args:
        path: Contract file. Defaults to PAYRECON_POLICY_FILE or the bundled
              DEFAULT contract.

    Returns:
        PolicyTable carrying the SHA256 hash of the file

    Raises:
        FileNotFoundError: If the contract file does not exist
        ConfigurationError: If the YAML is invalid or the contract inconsistent
    """
    contract_file = resolve_contract_path(path)

    if not contract_file.exists():
        raise FileNotFoundError(f"Policy contract file not found: {contract_file}")

    contract_hash = get_contract_hash(contract_file)

    try:
        with open(contract_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML from {contract_file}: {e}")

    table = build_policy_table(data, contract_hash=contract_hash)

    logger.info(
        f"Loaded policy contract: {contract_file.name} v{table.version} "
        f"({len(table.registry)} overrides, window {table.registry.window[0]}.."
        f"{table.registry.anchor_month}, hash={contract_hash[:8]}...)"
    )

    return table


@lru_cache(maxsize=8)
def _cached_policy_table(resolved_path: str) -> PolicyTable:
    return load_policy_table(resolved_path)


def get_policy_table(path: Optional[Union[str, Path]] = None) -> PolicyTable:
    """
    Get a policy table with caching.

    This is the preferred way to load contracts as repeated runs reuse the
    parsed table instead of re-reading the file.
    """
    return _cached_policy_table(str(resolve_contract_path(path).resolve()))


def clear_cache():
    """Clear the policy table cache. Useful for testing or reloading contracts."""
    _cached_policy_table.cache_clear()
    logger.info("Cleared policy contract cache")


__all__ = [
    "POLICY_FILE_ENV",
    "get_contracts_dir",
    "resolve_contract_path",
    "get_contract_hash",
    "build_policy_table",
    "load_policy_table",
    "get_policy_table",
    "clear_cache",
]
