"""
Deployment settings and module config sections.

Verifies:
- The shipped YAML file loads and each section builds its module config
- Environment variables override database URL and log level
- Bad input fails loudly
"""

import logging
from pathlib import Path

import pytest
import yaml

from shopfloor_kernel.config import ShopfloorSettings, load_settings, load_yaml_file
from shopfloor_modules.dispatch.config import DispatchConfig
from shopfloor_modules.inventory.config import InventoryConfig
from shopfloor_modules.production.config import ProductionConfig

SHIPPED_CONFIG = Path(__file__).resolve().parents[2] / "config" / "shopfloor.yaml"


class TestShippedConfig:
    def test_loads(self):
        settings = load_settings(SHIPPED_CONFIG, environ={})
        assert settings.database_url.startswith("postgresql://")
        assert settings.logging_level == logging.INFO

    def test_sections_build_module_configs(self):
        settings = load_settings(SHIPPED_CONFIG, environ={})
        production = ProductionConfig.from_dict(dict(settings.production))
        dispatch = DispatchConfig.from_dict(dict(settings.dispatch))
        inventory = InventoryConfig.from_dict(dict(settings.inventory))
        assert production.allow_backward_override is True
        assert dispatch.clear_driver_on_release is False
        assert dispatch.allow_negative_stock is False
        assert inventory.low_stock_alert_window_hours == 24


class TestEnvironmentOverrides:
    def test_env_wins(self):
        settings = ShopfloorSettings.from_dict(
            {"database": {"url": "sqlite:///file.db"}, "log_level": "INFO"},
            environ={"SHOPFLOOR_DATABASE_URL": "sqlite://", "SHOPFLOOR_LOG_LEVEL": "DEBUG"},
        )
        assert settings.database_url == "sqlite://"
        assert settings.logging_level == logging.DEBUG

    def test_missing_sections_default_empty(self):
        settings = ShopfloorSettings.from_dict({}, environ={})
        assert settings.database_url is None
        assert settings.production == {}
        assert settings.log_level == "INFO"


class TestFailures:
    def test_unknown_log_level(self):
        with pytest.raises(ValueError):
            ShopfloorSettings.from_dict({"log_level": "LOUD"}, environ={})

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_malformed_yaml_propagates(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("database: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)

    def test_unknown_module_key_rejected(self):
        with pytest.raises(TypeError):
            DispatchConfig.from_dict({"teleport": True})

    def test_inconsistent_production_policy_rejected(self):
        with pytest.raises(ValueError):
            ProductionConfig(allow_backward_override=False, require_override_justification=True)

    def test_non_positive_alert_window_rejected(self):
        with pytest.raises(ValueError):
            InventoryConfig(low_stock_alert_window_hours=0)
