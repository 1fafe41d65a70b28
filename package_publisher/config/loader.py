"""Configuration file loading utilities.

Supports loading configuration from YAML and TOML files with:
- Automatic format detection
- Global (home directory) defaults merged beneath the project file
- Command-line overrides merged on top
- Error reporting with file location
"""

import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from package_publisher.config.models import PublishConfig
from package_publisher.exceptions import ConfigurationError

# Import tomli for Python < 3.11, tomllib for 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_FILE_NAMES = (
    ".publish-config.yaml",
    ".publish-config.yml",
    ".publish-config.toml",
)
GLOBAL_CONFIG_NAME = ".publish-config.yaml"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            fix_hint="Check the --config path",
        ) from None
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {path}",
            details=str(e),
            fix_hint="Check YAML syntax at the indicated line",
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid configuration in {path}",
            details=f"Expected a mapping at the top level, got {type(data).__name__}",
        )
    return data


def load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML configuration file.

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    try:
        with open(path, "rb") as f:
            data: dict[str, Any] = tomllib.load(f)
            return data
    except FileNotFoundError:
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            fix_hint="Check the --config path",
        ) from None
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Invalid TOML in {path}",
            details=str(e),
            fix_hint="Check TOML syntax at the indicated line",
        ) from e


def load_file(path: Path) -> dict[str, Any]:
    """Load a configuration file based on its extension."""
    if path.suffix in (".yml", ".yaml"):
        return load_yaml(path)
    if path.suffix == ".toml":
        return load_toml(path)
    raise ConfigurationError(
        f"Unsupported config format: {path.suffix}",
        fix_hint="Use .yml, .yaml, or .toml extension",
    )


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    (including lists) replaces the value in ``base``.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def find_config_file(project_root: Path) -> Path | None:
    for name in CONFIG_FILE_NAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: Path | None = None,
    project_root: Path | None = None,
    overrides: dict[str, Any] | None = None,
    include_global: bool = True,
    home: Path | None = None,
) -> PublishConfig:
    """Load publish configuration.

    Layers, lowest precedence first:
    1. Built-in defaults (and PUBLISH_* environment variables)
    2. ~/.publish-config.yaml, when include_global is set
    3. The project file: ``path`` if given, else the first of
       .publish-config.yaml, .publish-config.yml, .publish-config.toml
    4. ``overrides``

    Args:
        path: Explicit path to config file (must exist)
        project_root: Project root directory (defaults to cwd)
        overrides: Values from the command line
        include_global: Whether to merge the global config file
        home: Home directory used to find the global file (defaults to Path.home())

    Returns:
        Validated PublishConfig instance

    Raises:
        ConfigurationError: If an explicit file is missing or any file is invalid
    """
    if project_root is None:
        project_root = Path.cwd()

    data: dict[str, Any] = {}
    sources: list[Path] = []

    if include_global:
        global_path = (home or Path.home()) / GLOBAL_CONFIG_NAME
        if global_path.is_file():
            data = deep_merge(data, load_file(global_path))
            sources.append(global_path)

    config_path: Path | None
    if path:
        config_path = Path(path)
        if not config_path.is_absolute():
            config_path = project_root / config_path
        if not config_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                fix_hint="Check the --config path",
            )
    else:
        config_path = find_config_file(project_root)

    if config_path is not None:
        data = deep_merge(data, load_file(config_path))
        sources.append(config_path)

    if overrides:
        data = deep_merge(data, overrides)

    try:
        return PublishConfig(**data)
    except PydanticValidationError as e:
        where = ", ".join(str(s) for s in sources) or "command-line options"
        raise ConfigurationError(
            f"Invalid configuration in {where}",
            details=str(e),
            fix_hint="Check the configuration values match expected types",
        ) from e
