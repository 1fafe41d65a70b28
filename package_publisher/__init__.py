"""Multi-registry package publishing tool."""

__version__ = "0.1.0"

from package_publisher.exceptions import (
    CommandNotAllowedError,
    ConfigurationError,
    ErrorCode,
    HookError,
    PathTraversalError,
    PluginLoadError,
    PublisherError,
    PublishError,
)

__all__ = [
    "__version__",
    "PublisherError",
    "ConfigurationError",
    "CommandNotAllowedError",
    "HookError",
    "PathTraversalError",
    "PublishError",
    "PluginLoadError",
    "ErrorCode",
]
