"""Tests for configuration loading."""

import json

import pytest

from repopackager.core.config import CONFIG_PATH_ENV_VAR, build_manager, load_config
from repopackager.exceptions import ConfigurationError

YAML_CONFIG = """\
rescan_interval_seconds: 600
repositories:
  - name: tools
    directory: {root}
    ignore_patterns: [".git", "node_modules"]
    package_definition:
      metadata_filename: "*.pkg"
      field_extraction_rules:
        name: 'name:\\s*(.+)'
        identifier: 'guid:\\s*(\\S+)'
        author:
          name: 'author:\\s*(.+)'
"""


class TestLoadConfig:
    """Tests for load_config()."""

    def test_yaml_file(self, tmp_path):
        """Test loading a YAML configuration."""
        path = tmp_path / "repopackager.yaml"
        path.write_text(YAML_CONFIG.format(root=tmp_path))

        config = load_config(path)

        assert config.rescan_interval_seconds == 600
        assert config.scan_on_startup is True
        [repo] = config.repositories
        assert repo.name == "tools"
        assert repo.directory == str(tmp_path)
        assert repo.ignore_patterns == [".git", "node_modules"]
        definition = repo.package_definition
        assert definition.metadata_filename == "*.pkg"
        assert definition.field_extraction_rules["author"] == {"name": r"author:\s*(.+)"}

    def test_json_file_with_camel_case_keys(self, tmp_path):
        """Test that the camelCase setting keys are accepted as aliases."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "repositories": [{
                "name": "legacy",
                "dir": "/srv/packages",
                "ignore": ["tmp"],
                "packageDefinition": {
                    "configFileName": "package.txt",
                    "configParseRules": {"name": "name:(.+)"},
                    "ignore": ["*.log"],
                },
            }],
        }))

        [repo] = load_config(path).repositories

        assert repo.directory == "/srv/packages"
        assert repo.ignore_patterns == ["tmp"]
        assert repo.package_definition.metadata_filename == "package.txt"
        assert repo.package_definition.field_extraction_rules == {"name": "name:(.+)"}
        assert repo.package_definition.ignore_patterns == ["*.log"]

    def test_defaults(self, tmp_path):
        """Test that the package definition falls back to README.md and no rules."""
        path = tmp_path / "repopackager.yaml"
        path.write_text(f"repositories:\n  - name: bare\n    directory: {tmp_path}\n")

        [repo] = load_config(path).repositories

        assert repo.package_definition.metadata_filename == "README.md"
        assert repo.package_definition.field_extraction_rules == {}
        assert repo.package_definition.normalize_identifier is False

    def test_missing_file_gives_empty_config(self, tmp_path, caplog):
        """Test that a missing configuration file is not fatal."""
        config = load_config(tmp_path / "absent.yaml")

        assert config.repositories == []
        assert "not found" in caplog.text

    def test_empty_file_gives_empty_config(self, tmp_path):
        path = tmp_path / "repopackager.yaml"
        path.write_text("")

        assert load_config(path).repositories == []

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "repopackager.yaml"
        path.write_text("repositories: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "repopackager.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_invalid_rule_type_raises(self, tmp_path):
        """Test that a rule that is neither a pattern nor a mapping is rejected."""
        path = tmp_path / "repopackager.yaml"
        path.write_text(
            "repositories:\n"
            f"  - name: bad\n    directory: {tmp_path}\n"
            "    package_definition:\n      field_extraction_rules:\n        name: 5\n"
        )

        with pytest.raises(ConfigurationError, match="name"):
            load_config(path)

    def test_missing_repository_name_raises(self, tmp_path):
        path = tmp_path / "repopackager.yaml"
        path.write_text(f"repositories:\n  - directory: {tmp_path}\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_path_from_environment(self, tmp_path, monkeypatch):
        """Test that the config path can be set through the environment."""
        path = tmp_path / "elsewhere.yaml"
        path.write_text(f"repositories:\n  - name: env\n    directory: {tmp_path}\n")
        monkeypatch.setenv(CONFIG_PATH_ENV_VAR, str(path))

        config = load_config()

        assert [r.name for r in config.repositories] == ["env"]


def test_build_manager_registers_repositories(tmp_path):
    path = tmp_path / "repopackager.yaml"
    path.write_text(YAML_CONFIG.format(root=tmp_path))

    manager = build_manager(load_config(path))

    repo = manager.get_repository("tools")
    assert repo is not None
    assert repo.directory == tmp_path.resolve()
    assert repo.metadata_filename == "*.pkg"
