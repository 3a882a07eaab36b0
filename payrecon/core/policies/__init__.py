"""
Override policy contracts for payrecon.

Per-employee behavioral exceptions (zero handling, start month, estimate
exclusion, custom percentage) and the run constants live in versioned YAML
contracts under ``contracts/`` instead of inline code.

Usage:
    from payrecon.core.policies import get_policy_table

    table = get_policy_table()
    policy = table.registry.lookup(937)
    tolerance = table.settings.tolerance
"""

from .models import (
    DEFAULT_POLICY,
    OverridePolicy,
    PolicyRegistry,
    PolicyRegistryBuilder,
    PolicyTable,
    ReconciliationSettings,
)
from .registry import (
    POLICY_FILE_ENV,
    build_policy_table,
    clear_cache,
    get_contract_hash,
    get_contracts_dir,
    get_policy_table,
    load_policy_table,
)

__all__ = [
    "DEFAULT_POLICY",
    "OverridePolicy",
    "PolicyRegistry",
    "PolicyRegistryBuilder",
    "PolicyTable",
    "ReconciliationSettings",
    "POLICY_FILE_ENV",
    "build_policy_table",
    "clear_cache",
    "get_contract_hash",
    "get_contracts_dir",
    "get_policy_table",
    "load_policy_table",
]
