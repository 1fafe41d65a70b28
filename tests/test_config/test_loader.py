"""Unit tests for configuration loading functions.

Tests cover:
- YAML and TOML file loading
- Configuration file search order
- Global, project and command-line layering
- Error handling for missing/invalid files
- Pydantic validation during load
"""

from pathlib import Path

import pytest
import tomli_w
import yaml

from package_publisher.config.loader import (
    deep_merge,
    find_config_file,
    load_config,
    load_file,
    load_toml,
    load_yaml,
)
from package_publisher.exceptions import ConfigurationError


@pytest.fixture
def home_dir(temp_dir: Path) -> Path:
    home = temp_dir / "home"
    home.mkdir()
    return home


class TestLoadYaml:
    """Tests for load_yaml function."""

    def test_load_valid_yaml(self, temp_dir: Path) -> None:
        yaml_file = temp_dir / "test.yml"
        yaml_file.write_text(yaml.safe_dump({"project": {"name": "demo"}}))
        assert load_yaml(yaml_file) == {"project": {"name": "demo"}}

    def test_load_empty_yaml(self, temp_dir: Path) -> None:
        yaml_file = temp_dir / "empty.yml"
        yaml_file.write_text("")
        assert load_yaml(yaml_file) == {}

    def test_load_missing_yaml(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_yaml(temp_dir / "nonexistent.yml")
        assert "not found" in str(exc_info.value)
        assert exc_info.value.fix_hint is not None

    def test_load_invalid_yaml(self, temp_dir: Path) -> None:
        yaml_file = temp_dir / "invalid.yml"
        yaml_file.write_text("foo: [bar: baz")
        with pytest.raises(ConfigurationError) as exc_info:
            load_yaml(yaml_file)
        assert "Invalid YAML" in exc_info.value.message

    def test_top_level_list_rejected(self, temp_dir: Path) -> None:
        yaml_file = temp_dir / "list.yml"
        yaml_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_yaml(yaml_file)


class TestLoadToml:
    def test_load_valid_toml(self, temp_dir: Path) -> None:
        toml_file = temp_dir / "config.toml"
        toml_file.write_text(tomli_w.dumps({"publish": {"dry_run": "never"}}))
        assert load_toml(toml_file) == {"publish": {"dry_run": "never"}}

    def test_load_invalid_toml(self, temp_dir: Path) -> None:
        toml_file = temp_dir / "bad.toml"
        toml_file.write_text("[publish\n")
        with pytest.raises(ConfigurationError):
            load_toml(toml_file)

    def test_unsupported_extension(self, temp_dir: Path) -> None:
        json_file = temp_dir / "config.json"
        json_file.write_text("{}")
        with pytest.raises(ConfigurationError) as exc_info:
            load_file(json_file)
        assert ".json" in exc_info.value.message


class TestDeepMerge:
    def test_nested_mappings_merged(self) -> None:
        base = {"registries": {"npm": {"tag": "latest", "access": "public"}}}
        override = {"registries": {"npm": {"tag": "next"}}}
        assert deep_merge(base, override) == {"registries": {"npm": {"tag": "next", "access": "public"}}}

    def test_lists_replaced(self) -> None:
        assert deep_merge({"features": ["a", "b"]}, {"features": ["c"]}) == {"features": ["c"]}

    def test_base_not_mutated(self) -> None:
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestFindConfigFile:
    def test_yaml_preferred_over_toml(self, project_dir: Path) -> None:
        (project_dir / ".publish-config.toml").write_text("")
        (project_dir / ".publish-config.yaml").write_text("")
        assert find_config_file(project_dir) == project_dir / ".publish-config.yaml"

    def test_none_found(self, project_dir: Path) -> None:
        assert find_config_file(project_dir) is None


class TestLoadConfig:
    """Tests for load_config layering."""

    def test_defaults_without_files(self, project_dir: Path, home_dir: Path) -> None:
        config = load_config(project_root=project_dir, home=home_dir)
        assert config.publish.dry_run == "first"

    def test_project_file(self, project_dir: Path, home_dir: Path) -> None:
        (project_dir / ".publish-config.yaml").write_text(
            yaml.safe_dump(
                {
                    "project": {"default_registry": "npm"},
                    "hooks": {"pre_publish": [{"command": "npm test", "allowed_commands": ["npm"]}]},
                }
            )
        )
        config = load_config(project_root=project_dir, home=home_dir)
        assert config.project.default_registry == "npm"
        assert config.hooks.pre_publish[0].command == "npm test"

    def test_toml_project_file(self, project_dir: Path, home_dir: Path) -> None:
        (project_dir / ".publish-config.toml").write_text(tomli_w.dumps({"registries": {"pypi": {"repository": "testpypi"}}}))
        config = load_config(project_root=project_dir, home=home_dir)
        assert config.registries.pypi.repository == "testpypi"

    def test_layering(self, project_dir: Path, home_dir: Path) -> None:
        """Global < project file < overrides."""
        (home_dir / ".publish-config.yaml").write_text(
            yaml.safe_dump({"registries": {"npm": {"tag": "global", "access": "restricted"}}, "publish": {"verify": False}})
        )
        (project_dir / ".publish-config.yaml").write_text(yaml.safe_dump({"registries": {"npm": {"tag": "project"}}}))

        config = load_config(project_root=project_dir, home=home_dir)
        assert config.registries.npm.tag == "project"
        assert config.registries.npm.access == "restricted"
        assert config.publish.verify is False

        config = load_config(
            project_root=project_dir,
            home=home_dir,
            overrides={"registries": {"npm": {"tag": "next"}}},
        )
        assert config.registries.npm.tag == "next"

    def test_global_file_can_be_excluded(self, project_dir: Path, home_dir: Path) -> None:
        (home_dir / ".publish-config.yaml").write_text(yaml.safe_dump({"publish": {"verify": False}}))
        config = load_config(project_root=project_dir, home=home_dir, include_global=False)
        assert config.publish.verify is True

    def test_explicit_path_relative_to_project(self, project_dir: Path, home_dir: Path) -> None:
        (project_dir / "ci").mkdir()
        (project_dir / "ci" / "publish.yml").write_text(yaml.safe_dump({"publish": {"interactive": False}}))
        config = load_config(Path("ci/publish.yml"), project_root=project_dir, home=home_dir)
        assert config.publish.interactive is False

    def test_explicit_path_missing(self, project_dir: Path, home_dir: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("missing.yaml"), project_root=project_dir, home=home_dir)
        assert "not found" in exc_info.value.message

    def test_validation_error_names_file(self, project_dir: Path, home_dir: Path) -> None:
        config_file = project_dir / ".publish-config.yaml"
        config_file.write_text(yaml.safe_dump({"publish": {"dry_run": "sometimes"}}))
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(project_root=project_dir, home=home_dir)
        assert str(config_file) in exc_info.value.message
        assert "dry_run" in (exc_info.value.details or "")
