"""
Unit Tests for the Policy Contract Registry.

Tests YAML loading, hashing, caching, validation and the fluent builder.
"""

from pathlib import Path

import pandas as pd
import pytest
import yaml

from payrecon.core.errors import ConfigurationError
from payrecon.core.policies import (
    DEFAULT_POLICY,
    POLICY_FILE_ENV,
    OverridePolicy,
    PolicyRegistryBuilder,
    ReconciliationSettings,
    build_policy_table,
    get_contract_hash,
    get_contracts_dir,
    get_policy_table,
    load_policy_table,
)

from conftest import WINDOW


def _contract(**changes):
    data = {
        "version": 1,
        "effective_date": "2025-10-30",
        "description": "test",
        "settings": {
            "tolerance": 12,
            "register_percentage": 8.33,
            "reference_date": "2025-10-30",
        },
        "window": list(WINDOW),
        "excluded_months": ["2024-10", "2025-10"],
        "excluded_departments": ["C", "CASH", "A"],
        "overrides": [{"employee_id": 937, "hard_exclude_from_estimate": True}],
    }
    data.update(changes)
    return data


def _write(tmp_path: Path, data, name="contract.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestOverridePolicy:
    """Test OverridePolicy validation."""

    def test_default_policy(self):
        assert DEFAULT_POLICY.is_default
        assert not OverridePolicy(include_zeros=True).is_default

    def test_conflicting_zero_flags(self):
        with pytest.raises(ConfigurationError):
            OverridePolicy(include_zeros=True, exclude_zeros_but_count_months=True)

    def test_start_month_must_be_key(self):
        with pytest.raises(ConfigurationError):
            OverridePolicy(start_month="June 2025")

    def test_custom_percentage(self):
        assert OverridePolicy(custom_percentage=15).custom_percentage == 15.0
        with pytest.raises(ConfigurationError):
            OverridePolicy(custom_percentage=-1)


class TestPolicyRegistryBuilder:
    """Test the fluent builder and the registry it produces."""

    def test_lookup_and_default(self, registry):
        assert registry.lookup(200).hard_exclude_from_estimate is True
        assert registry.lookup(99999) is DEFAULT_POLICY
        assert registry.has_override(300)
        assert not registry.has_override(99999)
        assert len(registry) == 5

    def test_window_and_anchor(self, registry):
        assert registry.window == tuple(WINDOW)
        assert registry.anchor_month == "2025-09"

    def test_effective_window_with_start_month(self, registry):
        assert registry.effective_window(500) == ("2025-06", "2025-07", "2025-08", "2025-09")
        assert len(registry.effective_window(1)) == 11

    def test_effective_window_keeps_excluded_months(self):
        registry = (
            PolicyRegistryBuilder()
            .with_window(["2025-07", "2025-08", "2025-09"])
            .exclude_months(["2025-08"])
            .add_override(5, start_month="2025-08")
            .build()
        )

        assert registry.effective_window(1) == ("2025-07", "2025-08", "2025-09")
        assert registry.effective_window(5) == ("2025-08", "2025-09")

    def test_exclusion_sets(self, registry):
        assert registry.is_excluded_month("2025-10")
        assert not registry.is_excluded_month("2025-09")
        assert registry.is_excluded_department(" cash ")
        assert not registry.is_excluded_department("W")
        assert not registry.is_excluded_department(None)

    def test_duplicate_override_rejected(self):
        builder = PolicyRegistryBuilder().with_window(WINDOW).add_override(1, include_zeros=True)
        with pytest.raises(ConfigurationError, match="Duplicate"):
            builder.add_override(1, hard_exclude_from_estimate=True)

    def test_conflicting_override_rejected_at_add(self):
        with pytest.raises(ConfigurationError, match="employee 7"):
            PolicyRegistryBuilder().add_override(
                7, include_zeros=True, exclude_zeros_but_count_months=True
            )

    def test_unknown_flag_rejected(self):
        with pytest.raises(ConfigurationError):
            PolicyRegistryBuilder().add_override(7, zero_october=True)

    @pytest.mark.parametrize("identity", [0, -3, "12", True])
    def test_bad_identity_rejected(self, identity):
        with pytest.raises(ConfigurationError):
            PolicyRegistryBuilder().add_override(identity, include_zeros=True)

    @pytest.mark.parametrize("window", [[], ["2025-9"], ["2025-02", "2025-01"], ["2025-01", "2025-01"]])
    def test_bad_window_rejected(self, window):
        with pytest.raises(ConfigurationError):
            PolicyRegistryBuilder().with_window(window).build()

    def test_percentage_overrides_layered(self, registry):
        layered = registry.with_percentage_overrides({200: 12.0, 700: 9.0}, [700])
        assert layered.lookup(200).custom_percentage == 12.0
        assert layered.lookup(200).hard_exclude_from_estimate is True
        assert layered.lookup(700).suppress_estimate_month is True
        assert registry.lookup(700) is DEFAULT_POLICY


class TestReconciliationSettings:
    def test_values_coerced_to_float(self, settings):
        assert settings.tolerance == 12.0
        assert isinstance(settings.tolerance, float)
        assert settings.tenure_tiers == ((12, 10.0), (24, 12.0))

    def test_negative_tolerance(self):
        with pytest.raises(ConfigurationError):
            ReconciliationSettings(-1, 8.33, pd.Timestamp("2025-10-30"))

    def test_missing_constants(self):
        with pytest.raises(ConfigurationError):
            ReconciliationSettings(None, 8.33, pd.Timestamp("2025-10-30"))


class TestContractLoading:
    """Test YAML loading, hashing and caching."""

    def test_bundled_default_contract(self):
        table = load_policy_table()
        assert table.version >= 1
        assert table.settings.tolerance == 12.0
        assert table.settings.register_percentage == 8.33
        assert table.settings.reference_date == pd.Timestamp("2025-10-30")
        assert table.registry.window[0] == "2024-11"
        assert table.registry.anchor_month == "2025-09"
        for identity in (937, 1039, 1065, 1105, 59, 161):
            assert table.registry.lookup(identity).hard_exclude_from_estimate
        assert table.contract_hash == get_contract_hash(get_contracts_dir() / "DEFAULT.yaml")

    def test_contract_hash_is_stable_sha256(self, tmp_path):
        path = _write(tmp_path, _contract())
        first = get_contract_hash(path)
        assert len(first) == 64
        assert first == get_contract_hash(path)

    def test_load_from_path(self, tmp_path):
        path = _write(tmp_path, _contract())
        table = load_policy_table(path)
        assert table.registry.lookup(937).hard_exclude_from_estimate
        assert table.contract_hash == get_contract_hash(path)

    def test_env_var_pins_contract(self, tmp_path, monkeypatch):
        path = _write(tmp_path, _contract(description="pinned"))
        monkeypatch.setenv(POLICY_FILE_ENV, str(path))
        assert load_policy_table().description == "pinned"

    def test_cached_table_reused(self, tmp_path):
        path = _write(tmp_path, _contract())
        assert get_policy_table(path) is get_policy_table(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_policy_table(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("version: [1\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_policy_table(path)

    @pytest.mark.parametrize("setting", ["tolerance", "register_percentage"])
    def test_missing_constant_rejected(self, setting):
        data = _contract()
        del data["settings"][setting]
        with pytest.raises(ConfigurationError, match=setting):
            build_policy_table(data)

    def test_missing_required_field(self):
        data = _contract()
        del data["window"]
        with pytest.raises(ConfigurationError, match="window"):
            build_policy_table(data)

    def test_conflicting_override_in_contract(self):
        data = _contract(overrides=[
            {"employee_id": 5, "include_zeros": True, "exclude_zeros_but_count_months": True},
        ])
        with pytest.raises(ConfigurationError):
            build_policy_table(data)

    def test_duplicate_override_in_contract(self):
        data = _contract(overrides=[
            {"employee_id": 5, "include_zeros": True},
            {"employee_id": 5, "hard_exclude_from_estimate": True},
        ])
        with pytest.raises(ConfigurationError, match="Duplicate"):
            build_policy_table(data)

    def test_unknown_override_field(self):
        data = _contract(overrides=[{"employee_id": 5, "zero_october": True}])
        with pytest.raises(ConfigurationError, match="zero_october"):
            build_policy_table(data)

    def test_custom_tenure_tiers(self):
        data = _contract()
        data["settings"]["tenure_tiers"] = [{"below_months": 6, "percentage": 9.0}]
        table = build_policy_table(data)
        assert table.settings.tenure_tiers == ((6, 9.0),)

    def test_unpaid_min_service_months(self):
        assert build_policy_table(_contract()).settings.unpaid_min_service_months == 6

        data = _contract()
        data["settings"]["unpaid_min_service_months"] = 3
        assert build_policy_table(data).settings.unpaid_min_service_months == 3

        data["settings"]["unpaid_min_service_months"] = "soon"
        with pytest.raises(ConfigurationError, match="unpaid_min_service_months"):
            build_policy_table(data)

    def test_to_dict_has_no_employee_detail(self):
        info = build_policy_table(_contract()).to_dict()
        assert info["override_count"] == 1
        assert info["contract_hash"] == "inline"
        assert "overrides" not in info
