"""Tests for config_loader module.

- AAA pattern (Arrange-Act-Assert)
- Descriptive test names: test_unit_scenario_expectedBehavior
- Test isolation (no shared mutable state)
"""

import pytest
import yaml

from relmodel.core.config_loader import RelModelConfig, get_config, get_project_root, load_config


class TestLoadConfig:
    """Test suite for configuration loading."""

    def test_load_config_missing_file_uses_defaults(self, tmp_path):
        # Act
        result = load_config(config_path=tmp_path / "nope.yaml")

        # Assert
        assert result == RelModelConfig()
        assert result.max_examples == 6
        assert result.percentage_precision == 1

    def test_load_config_loads_from_yaml_file(self, tmp_path):
        # Arrange
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"max_examples": 3, "log_format": "json"}))

        # Act
        result = load_config(config_path=config_file)

        # Assert
        assert result.max_examples == 3
        assert result.log_format == "json"
        assert result.log_level == "INFO"

    def test_load_config_env_var_overrides_yaml(self, tmp_path, monkeypatch):
        # Arrange
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"max_examples": 3}))
        monkeypatch.setenv("RELMODEL_MAX_EXAMPLES", "10")

        # Act
        result = load_config(config_path=config_file)

        # Assert: env string coerced to int
        assert result.max_examples == 10

    def test_load_config_critical_type_coercion_failure_raises_valueerror(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"percentage_precision": "lots"}))

        with pytest.raises(ValueError, match="Type coercion failed for critical config"):
            load_config(config_path=config_file)

    def test_load_config_invalid_yaml_raises_valueerror(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text("max_examples: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(config_path=config_file)

    def test_load_config_non_mapping_raises_valueerror(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump([1, 2]))

        with pytest.raises(ValueError, match="must contain a mapping"):
            load_config(config_path=config_file)

    def test_load_config_unknown_key_ignored(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"colour": "blue", "max_examples": 2}))

        assert load_config(config_path=config_file).max_examples == 2

    def test_invalid_value_rejected_by_config(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"max_examples": 0}))

        with pytest.raises(ValueError, match="max_examples"):
            load_config(config_path=config_file)


class TestGetConfig:
    def test_get_config_is_cached(self, tmp_path):
        config_file = tmp_path / "relmodel.yaml"
        config_file.write_text(yaml.dump({"max_examples": 4}))

        assert get_config(config_file) is get_config(config_file)

    def test_get_config_reads_env_path(self, tmp_path, monkeypatch):
        # Arrange
        config_file = tmp_path / "custom.yaml"
        config_file.write_text(yaml.dump({"percentage_precision": 2}))
        monkeypatch.setenv("RELMODEL_CONFIG", str(config_file))

        # Act & Assert
        assert get_config().percentage_precision == 2

    def test_project_root_contains_default_config(self):
        assert (get_project_root() / "config" / "relmodel.yaml").exists()
