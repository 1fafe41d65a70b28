"""Abstract base class for registry plugins.

A plugin adapts one package registry (npm, crates.io, PyPI, Homebrew, ...)
to the publish workflow. Plugins report failures as structured results;
only I/O-level faults escape as exceptions.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Literal

import httpx

from package_publisher.config.models import PublishConfig
from package_publisher.exceptions import ErrorCode, PublishError
from package_publisher.security.tokens import CredentialsLookup, env_credentials, mask_tokens
from package_publisher.utils.retry import OnRetry, RetryExecutor, RetryOptions
from package_publisher.utils.shell import CommandError, CommandExecutor, CommandResult

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30.0

# Tool output that means retrying cannot help
OTP_PATTERN = re.compile(r"\bE?OTP\b|one-time password|two-factor|\b2FA\b", re.IGNORECASE)
AUTH_PATTERN = re.compile(
    r"authenticat|unauthori[sz]ed|\b40[13]\b|forbidden|invalid token|not logged in|credentials",
    re.IGNORECASE,
)


@dataclass
class PublishOptions:
    """Caller options for one publish run.

    ``None`` on the tri-state flags means "use the configured default".
    """

    registry: str | None = None
    dry_run_only: bool | None = None
    non_interactive: bool | None = None
    resume: bool = False
    otp: str | None = None
    tag: str | None = None
    access: Literal["public", "restricted"] | None = None
    skip_hooks: bool = False
    hooks_only: bool = False


@dataclass
class FieldIssue:
    """A validation problem tied to a manifest field."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validating a package before publishing.

    Attributes:
        errors: Problems that block publishing
        warnings: Problems shown to the user that do not block
        metadata: Package facts discovered while validating
            (``package_name``, ``version``, ...)
    """

    errors: list[FieldIssue] = field(default_factory=list)
    warnings: list[FieldIssue] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str) -> None:
        self.errors.append(FieldIssue(field_name, message))

    def warn(self, field_name: str, message: str) -> None:
        self.warnings.append(FieldIssue(field_name, message))


@dataclass
class DryRunResult:
    """Result of a non-mutating publish rehearsal."""

    success: bool
    output: str = ""
    estimated_size: str | None = None
    errors: list[FieldIssue] = field(default_factory=list)


@dataclass
class PublishResult:
    """Result of a publish operation.

    Attributes:
        success: Whether the registry accepted the package
        version: Version that was published
        package_url: Public URL of the published package
        output: Tool output (tokens masked)
        error: Error text when publishing failed
        error_code: Specific failure kind (OTP, authentication) when known
    """

    success: bool
    version: str | None = None
    package_url: str | None = None
    output: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None

    @classmethod
    def succeeded(
        cls,
        version: str | None = None,
        package_url: str | None = None,
        output: str | None = None,
    ) -> PublishResult:
        return cls(success=True, version=version, package_url=package_url, output=output)

    @classmethod
    def failed(
        cls,
        error: str,
        output: str | None = None,
        error_code: ErrorCode | None = None,
    ) -> PublishResult:
        return cls(success=False, error=error, output=output, error_code=error_code)


@dataclass
class VerificationResult:
    """Result of checking the registry for the published version."""

    verified: bool
    version: str | None = None
    url: str | None = None
    error: str | None = None


@dataclass
class RollbackResult:
    """Result of a rollback attempt."""

    success: bool
    message: str
    error: str | None = None


class RegistryPlugin(ABC):
    """Abstract base class for all registry plugins.

    Args:
        project_root: Project directory being published
        config: Resolved publish configuration
        executor: Command gate used for every native tool invocation
        retry: Retry executor wrapping the mutating publish call
        credentials: Registry token lookup
        http_transport: httpx transport for metadata checks (tests inject a mock)
        plugin_config: Free-form settings for third-party plugins
    """

    # Class-level attributes to be defined by subclasses
    name: ClassVar[str]
    display_name: ClassVar[str]

    def __init__(
        self,
        project_root: Path,
        *,
        config: PublishConfig | None = None,
        executor: CommandExecutor | None = None,
        retry: RetryExecutor | None = None,
        credentials: CredentialsLookup | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        plugin_config: dict[str, Any] | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config or PublishConfig()
        self.executor = executor or CommandExecutor(policies=self.config.security.allowed_commands)
        self.retry = retry or RetryExecutor()
        self.credentials = credentials or env_credentials
        self.http_transport = http_transport
        self.plugin_config = dict(plugin_config or {})

    @abstractmethod
    async def detect(self, project_root: Path) -> bool:
        """Check whether the project contains this registry's manifest.

        Must only probe the filesystem.
        """

    @abstractmethod
    async def validate(self) -> ValidationResult:
        """Validate package metadata and run local checks."""

    @abstractmethod
    async def dry_run(self) -> DryRunResult:
        """Rehearse the publish without changing the registry."""

    @abstractmethod
    async def publish(self, options: PublishOptions) -> PublishResult:
        """Publish the package. The only method allowed to mutate the registry."""

    @abstractmethod
    async def verify(self) -> VerificationResult:
        """Check the registry's public metadata for the published version."""

    def supports_rollback(self) -> bool:
        return False

    async def rollback(self, version: str) -> RollbackResult:
        """Undo a publish, or explain the manual remediation when unsupported."""
        return RollbackResult(
            success=False,
            message=f"Rollback is not supported for {self.display_name}",
            error=ErrorCode.ROLLBACK_NOT_SUPPORTED.value,
        )

    # Helpers shared by concrete plugins

    @property
    def token(self) -> str | None:
        return self.credentials(self.name)

    def mask(self, text: str) -> str:
        """Mask this plugin's token wherever it appears in ``text``."""
        return mask_tokens(text, [self.token])

    async def run(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a native tool in the project root through the command gate."""
        kwargs: dict[str, Any] = {"cwd": self.project_root, "env": env}
        if timeout is not None:
            kwargs["timeout"] = timeout
        return await self.executor.exec_safe(program, args, **kwargs)

    def http_client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.http_transport,
            timeout=HTTP_TIMEOUT,
            follow_redirects=True,
            **kwargs,
        )

    async def fetch_json(self, url: str, headers: dict[str, str] | None = None) -> dict[str, Any] | None:
        """GET a JSON document.

        Returns:
            The parsed document, or None when the registry answers 404

        Raises:
            httpx.HTTPError: On transport errors and other non-success statuses
        """
        async with self.http_client(headers=headers) as client:
            response = await client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return data

    def failure_code(self, error_text: str) -> ErrorCode | None:
        """Classify tool output that no retry can fix."""
        if OTP_PATTERN.search(error_text):
            return ErrorCode.OTP_REQUIRED
        if AUTH_PATTERN.search(error_text):
            return ErrorCode.AUTHENTICATION_FAILED
        return None

    def auth_guard(self) -> OnRetry:
        """on_retry callback turning authentication failures into fatal errors."""

        def guard(attempt: int, error: BaseException) -> None:
            code = self.failure_code(str(error))
            if code is not None:
                raise PublishError(code, self.name, details=self.mask(str(error))) from error

        return guard

    async def run_with_retry(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None = None,
        retryable_errors: Iterable[str] = (),
    ) -> PublishResult:
        """Run a mutating command with retry, returning a structured result."""

        async def attempt() -> CommandResult:
            result = await self.run(program, args, env=env, timeout=600)
            return result.check()

        try:
            result = await self.retry.retry(
                attempt,
                RetryOptions(retryable_errors=tuple(retryable_errors), on_retry=self.auth_guard()),
            )
        except PublishError as e:
            return PublishResult.failed(e.message, error_code=e.code)
        except CommandError as e:
            text = self.mask(e.stderr or e.stdout or str(e))
            return PublishResult.failed(
                f"{e.cmd} failed: {text}",
                output=self.mask(e.stdout),
                error_code=self.failure_code(text),
            )
        return PublishResult.succeeded(output=self.mask(result.output))


class PluginRegistry:
    """Registry of plugin classes, keyed by registry name.

    Registration order is the auto-detection order.
    """

    _plugins: dict[str, type[RegistryPlugin]] = {}

    @classmethod
    def register(cls, plugin_class: type[RegistryPlugin]) -> type[RegistryPlugin]:
        """Register a plugin class.

        Can be used as a decorator:
            @PluginRegistry.register
            class NPMPlugin(RegistryPlugin):
                ...

        Raises:
            TypeError: If plugin_class is missing required attributes
            ValueError: If a different class already uses the same name
        """
        required_attrs = ["name", "display_name"]
        missing = [attr for attr in required_attrs if not hasattr(plugin_class, attr)]
        if missing:
            raise TypeError(
                f"Plugin class {plugin_class.__name__} missing required "
                f"class attributes: {', '.join(missing)}."
            )

        name = plugin_class.name
        if not isinstance(name, str) or not name:
            raise TypeError(
                f"Plugin {plugin_class.__name__}.name must be a non-empty string, "
                f"got {type(name).__name__}: {name!r}"
            )

        if name in cls._plugins:
            existing = cls._plugins[name]
            if existing is not plugin_class:
                raise ValueError(
                    f"Plugin name '{name}' already registered by {existing.__name__}. "
                    f"Cannot register {plugin_class.__name__}."
                )
            return plugin_class

        cls._plugins[name] = plugin_class
        return plugin_class

    @classmethod
    def get(cls, name: str) -> type[RegistryPlugin] | None:
        return cls._plugins.get(name)

    @classmethod
    def list_registered(cls) -> list[str]:
        return list(cls._plugins.keys())

    @classmethod
    def create_all(cls, project_root: Path, **kwargs: Any) -> list[RegistryPlugin]:
        """Instantiate every registered plugin, in registration order."""
        return [plugin_class(project_root, **kwargs) for plugin_class in cls._plugins.values()]
