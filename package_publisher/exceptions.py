"""Custom exception hierarchy for the package publisher.

Exit codes follow Unix conventions:
- 1: General error / failed publish
- 2: Configuration error
- 3: Command rejected by the allow-list
- 4: Hook rejected or failed
- 5: Publish error
- 6: Plugin loading error
"""

from dataclasses import dataclass, field
from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable kinds of publish failure."""

    REGISTRY_NOT_DETECTED = "REGISTRY_NOT_DETECTED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    SECRETS_DETECTED = "SECRETS_DETECTED"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    OTP_REQUIRED = "OTP_REQUIRED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    STATE_CORRUPTED = "STATE_CORRUPTED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    ROLLBACK_NOT_SUPPORTED = "ROLLBACK_NOT_SUPPORTED"


@dataclass(frozen=True)
class ErrorInfo:
    """Default message, recoverability and remediation for an error code."""

    message: str
    recoverable: bool
    actions: tuple[str, ...] = field(default_factory=tuple)


ERROR_CATALOG: dict[ErrorCode, ErrorInfo] = {
    ErrorCode.REGISTRY_NOT_DETECTED: ErrorInfo(
        "No supported registry detected in this project",
        recoverable=False,
        actions=(
            "Add a package manifest (package.json, Cargo.toml, pyproject.toml or a Homebrew formula)",
            "Pass the target registry explicitly with --registry",
        ),
    ),
    ErrorCode.VALIDATION_FAILED: ErrorInfo(
        "Package validation failed",
        recoverable=True,
        actions=("Fix the fields reported above", "Run 'package-publisher check' to re-validate"),
    ),
    ErrorCode.SECRETS_DETECTED: ErrorInfo(
        "Potential secrets detected in publishable files",
        recoverable=True,
        actions=(
            "Remove the secrets from the listed files",
            "Read credentials from environment variables instead",
            "Add false positives to security.secrets_scanning.ignore_patterns",
        ),
    ),
    ErrorCode.PUBLISH_FAILED: ErrorInfo(
        "Publishing failed",
        recoverable=True,
        actions=("Check the registry tool output above", "Retry with --resume once the cause is fixed"),
    ),
    ErrorCode.OTP_REQUIRED: ErrorInfo(
        "The registry requires a one-time password",
        recoverable=True,
        actions=("Re-run with --otp <code> from your authenticator app",),
    ),
    ErrorCode.AUTHENTICATION_FAILED: ErrorInfo(
        "Registry authentication failed",
        recoverable=True,
        actions=(
            "Check that the registry token environment variable is set",
            "Verify the token has publish permission and has not expired",
        ),
    ),
    ErrorCode.STATE_CORRUPTED: ErrorInfo(
        "No valid publish state to resume from",
        recoverable=True,
        actions=("Delete the .publish-state file and run without --resume",),
    ),
    ErrorCode.VERIFICATION_FAILED: ErrorInfo(
        "Published package could not be verified",
        recoverable=True,
        actions=("Wait for the registry index to update and check again",),
    ),
    ErrorCode.ROLLBACK_NOT_SUPPORTED: ErrorInfo(
        "This registry does not support rollback",
        recoverable=False,
        actions=("Follow the registry's manual remediation (yank or deprecate)",),
    ),
}


class PublisherError(Exception):
    """Base exception for all publisher errors.

    Each subclass defines an exit_code for CLI error reporting.
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        details: str | None = None,
        fix_hint: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Brief error message
            details: Detailed explanation of what went wrong
            fix_hint: Suggested command or action to fix the issue
        """
        super().__init__(message)
        self.message = message
        self.details = details
        self.fix_hint = fix_hint

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"\nDetails: {self.details}")
        if self.fix_hint:
            parts.append(f"\nFix: {self.fix_hint}")
        return "".join(parts)


class ConfigurationError(PublisherError):
    """Configuration file errors.

    Raised when:
    - An explicitly given config file does not exist
    - Config file has invalid YAML syntax
    - Config values fail validation
    """

    exit_code = 2


class CommandNotAllowedError(PublisherError):
    """A command was rejected by the allow-list before being spawned."""

    exit_code = 3


class HookError(PublisherError):
    """A hook command was rejected before it could run."""

    exit_code = 4


class PathTraversalError(HookError):
    """A hook working directory resolves outside the project root."""


class PublishError(PublisherError):
    """Publishing failures carrying a machine-readable error code.

    The message is prefixed with the registry name, and recoverability and
    suggested actions default to the entries in ERROR_CATALOG.
    """

    exit_code = 5

    def __init__(
        self,
        code: ErrorCode,
        registry: str | None = None,
        message: str | None = None,
        details: str | None = None,
        suggested_actions: list[str] | None = None,
    ) -> None:
        info = ERROR_CATALOG[code]
        text = message or info.message
        if registry:
            text = f"[{registry}] {text}"
        actions = list(suggested_actions) if suggested_actions is not None else list(info.actions)
        super().__init__(text, details=details, fix_hint=actions[0] if actions else None)
        self.code = code
        self.registry = registry
        self.recoverable = info.recoverable
        self.suggested_actions = actions


class PluginLoadError(PublisherError):
    """A third-party plugin could not be imported or does not satisfy the contract."""

    exit_code = 6
