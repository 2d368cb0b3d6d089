"""
Tests for configuration loading and validation.
"""

import pytest

from core.exceptions import ConfigurationError, InvalidConfigError
from trust_engine.config import (
    ExecutionConfig,
    StorageConfig,
    TrustEngineConfig,
    get_conservative_config,
    get_default_config,
)
from trust_engine.types import PolicyAction


ENV_KEYS = (
    "TRUST_CONFIG_FILE",
    "TRUST_ACTION_TIMEOUT_SECONDS",
    "TRUST_MAX_PARALLEL_ACTIONS",
    "TRUST_EXECUTE_FRAUD_ACTIONS",
    "TRUST_ACTION_WEBHOOK_URL",
    "DATABASE_URL",
    "TRUST_STORE_TIMEOUT_SECONDS",
    "TRUST_HISTORY_LIMIT",
    "TRUST_ECHO_SQL",
    "TRUST_IP_BLOCKLIST",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestDefaults:
    """Tests for the built-in configurations."""

    def test_default_is_valid(self):
        assert get_default_config().validate() == []

    def test_conservative_is_valid_and_stricter(self):
        config = get_conservative_config()

        assert config.validate() == []
        assert config.policy.table.name == "conservative"
        assert config.fraud.failed_attempts_threshold < get_default_config().fraud.failed_attempts_threshold

    def test_validate_reports_errors(self):
        config = TrustEngineConfig(
            execution=ExecutionConfig(action_timeout_seconds=0),
            storage=StorageConfig(history_limit=0),
        )

        errors = config.validate()

        assert any("action_timeout_seconds" in e for e in errors)
        assert any("history_limit" in e for e in errors)

    def test_to_dict_masks_database_url(self):
        config = TrustEngineConfig(storage=StorageConfig(database_url="postgresql+asyncpg://u:secret@db/trust"))

        assert config.to_dict()["storage"]["database_url"] == "***"


class TestFromDict:
    """Tests for nested mapping overrides."""

    def test_partial_override_merges(self):
        config = TrustEngineConfig.from_dict({"fraud": {"activity_base_weights": {"payment": 0.9}}})

        assert config.fraud.base_weight("payment") == 0.9
        assert config.fraud.base_weight("login") == 0.1

    def test_lists_become_tuples(self):
        config = TrustEngineConfig.from_dict({"fraud": {"ip_blocklist": ["203.0.113.0/24"]}})

        assert config.fraud.ip_blocklist == ("203.0.113.0/24",)

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError):
            TrustEngineConfig.from_dict({"billing": {}})

    def test_unknown_key(self):
        with pytest.raises(InvalidConfigError):
            TrustEngineConfig.from_dict({"crisis": {"panic_level": 11}})

    def test_policy_rows(self):
        config = TrustEngineConfig.from_dict(
            {
                "policy": {
                    "name": "strict",
                    "rules": [
                        {"action": "block_account", "score_above": 0.5},
                        {"action": "monitor"},
                    ],
                }
            }
        )

        assert config.policy.table.name == "strict"
        assert config.policy.table.rules[0].action == PolicyAction.BLOCK_ACCOUNT

    def test_string_for_list_is_rejected(self):
        with pytest.raises(InvalidConfigError):
            TrustEngineConfig.from_dict({"fraud": {"ip_blocklist": "203.0.113.7"}})

    def test_numeric_strings_are_coerced(self):
        config = TrustEngineConfig.from_dict(
            {
                "execution": {"action_timeout_seconds": "2.5", "max_parallel_actions": "4"},
                "crisis": {"escalation_levels": {"severe": "5"}},
            }
        )

        assert config.execution.action_timeout_seconds == 2.5
        assert config.execution.max_parallel_actions == 4
        assert config.crisis.escalation_levels["severe"] == 5

    @pytest.mark.parametrize(
        "section",
        [
            {"execution": {"max_parallel_actions": "several"}},
            {"execution": {"max_parallel_actions": 2.5}},
            {"execution": {"execute_fraud_actions": "yes"}},
            {"storage": {"history_limit": True}},
            {"crisis": {"fallback_severity": 4}},
            {"fraud": {"activity_base_weights": ["payment"]}},
            {"policy": ["block_account"]},
        ],
    )
    def test_wrong_types_are_rejected(self, section):
        with pytest.raises(ConfigurationError):
            TrustEngineConfig.from_dict(section)

    def test_policy_thresholds_are_coerced(self):
        config = TrustEngineConfig.from_dict(
            {
                "policy": {
                    "rules": [
                        {"action": "block_account", "score_above": "0.8", "any_indicators": ["critical_fraud"]},
                        {"action": "monitor"},
                    ],
                }
            }
        )

        rule = config.policy.table.rules[0]
        assert rule.score_above == 0.8
        assert rule.any_indicators == frozenset({"critical_fraud"})


class TestFromYaml:
    """Tests for YAML loading."""

    def test_load(self, tmp_path):
        path = tmp_path / "trust.yaml"
        path.write_text(
            "execution:\n"
            "  max_parallel_actions: 2\n"
            "crisis:\n"
            "  communication_sla:\n"
            "    low: 48h\n"
        )

        config = TrustEngineConfig.from_yaml(path)

        assert config.execution.max_parallel_actions == 2
        assert config.crisis.sla_for("low") == "48h"
        assert config.crisis.sla_for("critical") == "immediate"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert TrustEngineConfig.from_yaml(path) == TrustEngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            TrustEngineConfig.from_yaml(tmp_path / "missing.yaml")

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("execution: [unclosed\n")

        with pytest.raises(ConfigurationError):
            TrustEngineConfig.from_yaml(path)

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(InvalidConfigError):
            TrustEngineConfig.from_yaml(path)


class TestFromEnv:
    """Tests for environment variable overrides."""

    def test_defaults_without_env(self, clean_env):
        assert TrustEngineConfig.from_env() == TrustEngineConfig()

    def test_overrides(self, clean_env):
        clean_env.setenv("TRUST_ACTION_TIMEOUT_SECONDS", "1.5")
        clean_env.setenv("TRUST_MAX_PARALLEL_ACTIONS", "3")
        clean_env.setenv("TRUST_EXECUTE_FRAUD_ACTIONS", "true")
        clean_env.setenv("TRUST_ACTION_WEBHOOK_URL", "https://ops.example.test/actions")
        clean_env.setenv("DATABASE_URL", "sqlite+aiosqlite:///trust.db")
        clean_env.setenv("TRUST_HISTORY_LIMIT", "10")
        clean_env.setenv("TRUST_IP_BLOCKLIST", "203.0.113.0/24, 198.51.100.7 ,")

        config = TrustEngineConfig.from_env()

        assert config.execution.action_timeout_seconds == 1.5
        assert config.execution.max_parallel_actions == 3
        assert config.execution.execute_fraud_actions is True
        assert config.execution.webhook_url == "https://ops.example.test/actions"
        assert config.storage.database_url == "sqlite+aiosqlite:///trust.db"
        assert config.storage.history_limit == 10
        assert config.fraud.ip_blocklist == ("203.0.113.0/24", "198.51.100.7")

    def test_config_file_is_base(self, clean_env, tmp_path):
        path = tmp_path / "trust.yaml"
        path.write_text("storage:\n  history_limit: 5\n  store_timeout_seconds: 4.0\n")
        clean_env.setenv("TRUST_CONFIG_FILE", str(path))
        clean_env.setenv("TRUST_HISTORY_LIMIT", "9")

        config = TrustEngineConfig.from_env()

        assert config.storage.history_limit == 9
        assert config.storage.store_timeout_seconds == 4.0

    def test_bad_number(self, clean_env):
        clean_env.setenv("TRUST_MAX_PARALLEL_ACTIONS", "many")

        with pytest.raises(InvalidConfigError):
            TrustEngineConfig.from_env()
