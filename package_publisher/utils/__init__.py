"""Utility modules for the package publisher."""

from package_publisher.utils.retry import RetryExecutor, RetryOptions, retry
from package_publisher.utils.shell import (
    CommandError,
    CommandExecutor,
    CommandResult,
    strip_ansi,
)
from package_publisher.utils.version import is_valid_pep440, is_valid_semver

__all__ = [
    # Command execution
    "CommandExecutor",
    "CommandResult",
    "CommandError",
    "strip_ansi",
    # Retry
    "RetryExecutor",
    "RetryOptions",
    "retry",
    # Version validation
    "is_valid_semver",
    "is_valid_pep440",
]
