"""
Unit tests for configuration loading and validation.

Tests defaults, overrides and strict rejection of malformed configs.
"""

import os
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from llm_usage.common.errors import ConfigError
from llm_usage.common.logging import LogFormat, LogLevel
from llm_usage.config.loader import DEFAULT_HISTORY_DB, default_config, load_config
from llm_usage.core.plan_fit import DEFAULT_PLANS


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_defaults(self):
        """Verify built-in defaults when no file is given."""
        config = default_config()

        assert config.history_db == DEFAULT_HISTORY_DB
        assert config.plans == DEFAULT_PLANS
        assert config.plan_fit.near_limit_ratio == 0.8
        assert config.logging.level == LogLevel.WARNING
        assert config.pricing.default.input_per_million == Decimal("5.00")

    def test_valid_config_loads_correctly(self):
        """Test that a full configuration loads correctly."""
        config_data = {
            "data_dir": "~/claude-logs",
            "history_db": os.path.join(self.temp_dir, "h.db"),
            "pricing": {
                "local-llama": {"input": 0, "output": 0},
                "default": {"input": 4, "output": "16.5"},
            },
            "plans": [
                {"name": "Max", "price": 200, "messages_per_day": 2000},
                {"name": "Pro", "price": 20, "messages_per_day": 100},
                {"name": "Mid", "price": 100, "messages_per_day": 500},
            ],
            "plan_fit": {"near_limit_ratio": 0.9, "high_confidence_days": 60},
            "logging": {"level": "debug", "format": "JSON"},
        }

        config = load_config(self._write_config(config_data))

        assert config.data_dir == Path("~/claude-logs").expanduser()
        assert config.history_db == Path(self.temp_dir) / "h.db"
        assert config.pricing.get_pricing("local-llama").output_per_million == Decimal("0")
        assert config.pricing.default.output_per_million == Decimal("16.5")
        assert config.pricing.get_pricing("gpt-4o").input_per_million == Decimal("2.50")
        assert [p.name for p in config.plans] == ["Pro", "Mid", "Max"]
        assert config.plan_fit.near_limit_ratio == 0.9
        assert config.plan_fit.high_confidence_days == 60
        assert config.plan_fit.medium_confidence_days == 14
        assert config.logging.level == LogLevel.DEBUG
        assert config.logging.format == LogFormat.JSON

    def test_get_plan_is_case_insensitive(self):
        config = default_config()
        assert config.get_plan("claude max 5x").price_per_month == 100.0
        assert config.get_plan("Claude Ultra") is None

    def test_missing_file_raises_error(self):
        """Test that missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises an error."""
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("pricing: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_empty_config_raises_error(self):
        config_path = self._write_config(None)
        with pytest.raises(ConfigError, match="empty"):
            load_config(config_path)

    def test_unknown_top_level_key_raises_error(self):
        """Test that unknown keys are rejected rather than ignored."""
        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            load_config(self._write_config({"budget": {"daily": 10}}))

    @pytest.mark.parametrize("config_data,message", [
        ({"data_dir": ""}, "data_dir"),
        ({"pricing": []}, "'pricing' must be a dictionary"),
        ({"pricing": {"m": {"input": 1}}}, "Missing required 'output'"),
        ({"pricing": {"m": {"input": 1, "output": 1, "cache": 1}}}, "Unknown keys in pricing.m"),
        ({"pricing": {"m": {"input": -1, "output": 1}}}, "cannot be negative"),
        ({"pricing": {"m": {"input": "free", "output": 1}}}, "must be a number"),
        ({"pricing": {"m": {"input": float("nan"), "output": 1}}}, "must be a finite number"),
        ({"pricing": {"m": {"input": 1, "output": float("inf")}}}, "must be a finite number"),
        ({"plans": [{"name": "Pro", "price": 20, "messages_per_day": 100}]}, "exactly 3"),
        ({"plans": [
            {"name": "A", "price": 1, "messages_per_day": 10},
            {"name": "A", "price": 2, "messages_per_day": 20},
            {"name": "C", "price": 3, "messages_per_day": 30},
        ]}, "unique"),
        ({"plans": [
            {"name": "A", "price": 1, "messages_per_day": 0},
            {"name": "B", "price": 2, "messages_per_day": 20},
            {"name": "C", "price": 3, "messages_per_day": 30},
        ]}, "positive integer"),
        ({"plans": [
            {"name": "A", "price": 1},
            {"name": "B", "price": 2, "messages_per_day": 20},
            {"name": "C", "price": 3, "messages_per_day": 30},
        ]}, "Missing required keys"),
        ({"plan_fit": {"near_limit_ratio": 1.5}}, "Invalid plan_fit"),
        ({"plan_fit": {"high_confidence_days": "many"}}, "must be an integer"),
        ({"plan_fit": {"window": 3}}, "Unknown keys in plan_fit"),
        ({"logging": {"level": "LOUD"}}, "logging.level"),
        ({"logging": {"format": "xml"}}, "logging.format"),
    ])
    def test_invalid_values_raise_config_error(self, config_data, message):
        """Test that malformed sections raise ConfigError."""
        with pytest.raises(ConfigError, match=message):
            load_config(self._write_config(config_data))

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_config(self._write_config({"unknown": 1}))
