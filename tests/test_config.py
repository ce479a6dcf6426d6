"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for dispatcher configs.
"""

import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from jacob_gpt.config.loader import (
    DEFAULT_BASE_URL,
    DispatchConfig,
    ProxyConfig,
    load_dispatch_config,
)


class TestDefaults:
    """Test built-in defaults."""

    def test_default_config(self):
        config = DispatchConfig()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.default_model == "gpt-4-turbo-preview"
        assert config.vision_model == "gpt-4-vision-preview"
        assert config.system_prompt == "You are a helpful assistant."
        assert config.temperature == 0.2
        assert config.retries == 10
        assert config.initial_delay_ms == 60000
        assert config.schema_max_retries == 3
        assert config.proxy == ProxyConfig(mode="proxy openai", cache="simple", retry_count=3)

    def test_unknown_default_model_rejected(self):
        with pytest.raises(ValueError, match="Unsupported model: gpt-5"):
            DispatchConfig(default_model="gpt-5")

    @pytest.mark.parametrize("kwargs, message", [
        ({"temperature": 3.0}, "temperature"),
        ({"retries": -1}, "retries"),
        ({"initial_delay_ms": -5}, "initial_delay_ms"),
        ({"schema_max_retries": 0}, "schema_max_retries"),
    ])
    def test_invalid_values_rejected(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            DispatchConfig(**kwargs)


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

    def test_valid_config_loads_correctly(self):
        """Test that a full configuration loads correctly."""
        config_path = self._write_config({
            "base_url": "https://proxy.internal/v1",
            "default_model": "gpt-4-0613",
            "temperature": 0.5,
            "retries": 4,
            "initial_delay_ms": 1000,
            "schema_max_retries": 5,
            "db_path": "/tmp/events.db",
            "proxy": {"cache": "semantic", "retry_count": 1},
            "models": {
                "gpt-4o": {
                    "context_window": 128000,
                    "max_output_tokens": 16384,
                    "input_cost_per_million": 2.5,
                    "output_cost_per_million": 10,
                },
            },
            "vision_model": "gpt-4o",
        })

        config = load_dispatch_config(config_path)

        assert config.base_url == "https://proxy.internal/v1"
        assert config.default_model == "gpt-4-0613"
        assert config.vision_model == "gpt-4o"
        assert config.temperature == 0.5
        assert config.retries == 4
        assert config.initial_delay_ms == 1000
        assert config.schema_max_retries == 5
        assert config.db_path == "/tmp/events.db"
        assert config.proxy == ProxyConfig(mode="proxy openai", cache="semantic", retry_count=1)

        profile = config.build_registry().get_profile("gpt-4o")
        assert profile.context_window == 128000
        assert profile.max_output_tokens == 16384
        assert profile.input_cost_per_token == Decimal("2.5") / Decimal("1000000")
        assert profile.output_cost_per_token == Decimal("10") / Decimal("1000000")

    def test_partial_config_keeps_defaults(self):
        config = load_dispatch_config(self._write_config({"retries": 2}))
        assert config.retries == 2
        assert config.initial_delay_ms == 60000
        assert config.default_model == "gpt-4-turbo-preview"

    def test_missing_file_raises_error(self):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_dispatch_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file_raises_error(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, "w").close()
        with pytest.raises(ValueError, match="empty"):
            load_dispatch_config(config_path)

    def test_invalid_yaml_raises_error(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("retries: [1, 2\n")
        with pytest.raises(yaml.YAMLError):
            load_dispatch_config(config_path)

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_dispatch_config(self._write_config({"retry": 3}))

    def test_unknown_proxy_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown keys in proxy"):
            load_dispatch_config(self._write_config({"proxy": {"ttl": 10}}))

    def test_wrong_types_rejected(self):
        with pytest.raises(ValueError, match="'retries' must be an integer"):
            load_dispatch_config(self._write_config({"retries": "ten"}))
        with pytest.raises(ValueError, match="'temperature' must be a number"):
            load_dispatch_config(self._write_config({"temperature": True}))
        with pytest.raises(ValueError, match="'base_url' must be a non-empty string"):
            load_dispatch_config(self._write_config({"base_url": ""}))

    def test_incomplete_model_profile_rejected(self):
        config_path = self._write_config({
            "models": {"gpt-4o": {"context_window": 128000}},
        })
        with pytest.raises(ValueError, match="Missing required keys in models.gpt-4o"):
            load_dispatch_config(config_path)

    def test_non_numeric_cost_rejected(self):
        config_path = self._write_config({
            "models": {
                "gpt-4o": {
                    "context_window": 128000,
                    "max_output_tokens": 4096,
                    "input_cost_per_million": "cheap",
                    "output_cost_per_million": 10,
                },
            },
        })
        with pytest.raises(ValueError, match="input_cost_per_million"):
            load_dispatch_config(config_path)

    def test_model_reference_must_exist(self):
        with pytest.raises(ValueError, match="Unsupported model: gpt-4o"):
            load_dispatch_config(self._write_config({"vision_model": "gpt-4o"}))
