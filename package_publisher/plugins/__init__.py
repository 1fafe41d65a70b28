"""Registry plugins for package publishing."""

# Import plugins to trigger registration; import order is detection order
from package_publisher.plugins import npm  # noqa: F401  # isort: skip
from package_publisher.plugins import crates  # noqa: F401  # isort: skip
from package_publisher.plugins import pypi  # noqa: F401  # isort: skip
from package_publisher.plugins import homebrew  # noqa: F401  # isort: skip
from package_publisher.plugins.base import (
    DryRunResult,
    FieldIssue,
    PluginRegistry,
    PublishOptions,
    PublishResult,
    RegistryPlugin,
    RollbackResult,
    ValidationResult,
    VerificationResult,
)
from package_publisher.plugins.loader import load_plugins

__all__ = [
    "RegistryPlugin",
    "PluginRegistry",
    "PublishOptions",
    "ValidationResult",
    "FieldIssue",
    "DryRunResult",
    "PublishResult",
    "VerificationResult",
    "RollbackResult",
    "load_plugins",
]
