"""Publish workflow orchestration.

Drives one package through the publish state machine:
1. Detect the target registry
2. Run pre-build hooks and the secrets scan
3. Validate package metadata
4. Dry run
5. Confirm with the user
6. Run pre-publish hooks and publish
7. Verify publication and run post-publish hooks

Every transition is persisted so an interrupted run can be resumed. No
exception escapes publish(); failures become a FAILED report.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from rich.prompt import Confirm

from package_publisher.config.models import HookCommand, PublishConfig
from package_publisher.exceptions import ErrorCode, PublishError
from package_publisher.hooks import HookContext, HookExecutor, HookPhase
from package_publisher.plugins.base import (
    PublishOptions,
    RegistryPlugin,
    ValidationResult,
)
from package_publisher.security.secrets import SecretsScanner, format_report
from package_publisher.state import PublishState, WorkflowState

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]

USER_CANCELLED = "User cancelled"


async def prompt_confirm(message: str) -> bool:
    """Ask a yes/no question on the terminal without blocking the event loop."""
    return await asyncio.to_thread(Confirm.ask, message, default=False)


@dataclass
class PublishReport:
    """Terminal summary of one publish attempt."""

    success: bool
    registry: str | None
    state: PublishState
    package_name: str | None = None
    version: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    published_at: datetime | None = None
    verification_url: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration: float = 0.0
    error_code: ErrorCode | None = None
    suggested_actions: list[str] = field(default_factory=list)


@dataclass
class _Run:
    """Mutable bookkeeping for one publish() call."""

    options: PublishOptions
    started_at: datetime
    started: float
    registry: str | None = None
    package_name: str | None = None
    version: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def report(
        self,
        success: bool,
        state: PublishState,
        *,
        published_at: datetime | None = None,
        verification_url: str | None = None,
        error_code: ErrorCode | None = None,
        suggested_actions: list[str] | None = None,
    ) -> PublishReport:
        return PublishReport(
            success=success,
            registry=self.registry,
            state=state,
            package_name=self.package_name,
            version=self.version,
            started_at=self.started_at,
            published_at=published_at,
            verification_url=verification_url,
            errors=list(self.errors),
            warnings=list(self.warnings),
            duration=time.monotonic() - self.started,
            error_code=error_code,
            suggested_actions=list(suggested_actions or []),
        )


class PublishWorkflow:
    """Publishes a project to one registry.

    Args:
        project_root: Project directory
        plugins: Registry plugins, in detection priority order
        config: Resolved configuration (defaults when omitted)
        state: Workflow state store (``.publish-state.json`` by default)
        scanner: Secrets scanner (built from configuration by default)
        hook_executor: Hook runner
        confirm: Async yes/no prompt used in interactive mode
    """

    def __init__(
        self,
        project_root: Path,
        plugins: Iterable[RegistryPlugin] = (),
        config: PublishConfig | None = None,
        *,
        state: WorkflowState | None = None,
        scanner: SecretsScanner | None = None,
        hook_executor: HookExecutor | None = None,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config or PublishConfig()
        self._plugins: dict[str, RegistryPlugin] = {}
        for plugin in plugins:
            self.register_plugin(plugin)
        self.state = state or WorkflowState(self.project_root)
        self.scanner = scanner or SecretsScanner(self.config.security.secrets_scanning.ignore_patterns)
        self.hooks = hook_executor or HookExecutor(self.project_root)
        self.confirm = confirm or prompt_confirm

    def register_plugin(self, plugin: RegistryPlugin) -> None:
        self._plugins[plugin.name] = plugin

    @property
    def plugins(self) -> list[RegistryPlugin]:
        return list(self._plugins.values())

    async def detect_registries(self) -> list[str]:
        """Names of plugins whose detect() matches, in registration order."""
        plugins = self.plugins
        outcomes = await asyncio.gather(
            *(plugin.detect(self.project_root) for plugin in plugins),
            return_exceptions=True,
        )
        detected = []
        for plugin, outcome in zip(plugins, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Detection failed for %s: %s", plugin.name, outcome)
            elif outcome:
                detected.append(plugin.name)
        return detected

    async def check(self, registry: str | None = None) -> dict[str, ValidationResult]:
        """Validate the named registry, or every detected one. Does not touch state.

        Raises:
            PublishError: REGISTRY_NOT_DETECTED if nothing can be checked
        """
        detected = await self.detect_registries()
        if registry is not None:
            if registry not in detected:
                raise PublishError(ErrorCode.REGISTRY_NOT_DETECTED, registry)
            names = [registry]
        else:
            names = detected
        if not names:
            raise PublishError(ErrorCode.REGISTRY_NOT_DETECTED)

        results = {}
        for name in names:
            results[name] = await self._plugins[name].validate()
        return results

    def effective_options(self, options: PublishOptions) -> PublishOptions:
        """Fill unset options from configuration."""
        settings = self.config.publish
        return dataclasses.replace(
            options,
            dry_run_only=(
                options.dry_run_only if options.dry_run_only is not None else settings.dry_run == "always"
            ),
            non_interactive=(
                options.non_interactive if options.non_interactive is not None else not settings.interactive
            ),
            registry=options.registry or self.config.project.default_registry,
        )

    async def publish(self, options: PublishOptions | None = None) -> PublishReport:
        """Run the publish workflow. Never raises; failures are reported."""
        run = _Run(
            options=options or PublishOptions(),
            started_at=datetime.now(timezone.utc),
            started=time.monotonic(),
        )
        try:
            run.options = self.effective_options(run.options)
            run.registry = run.options.registry
            return await self._publish(run)
        except Exception as e:
            return await self._fail(run, e)

    async def _publish(self, run: _Run) -> PublishReport:
        opts = run.options
        interactive = not opts.non_interactive
        resumed_from = self._begin(run)

        # DETECTING
        self.state.transition(PublishState.DETECTING)
        plugin = await self._select_plugin(run)
        run.registry = plugin.name
        logger.info("Publishing to %s", plugin.display_name)

        await self._run_hooks(run, HookPhase.PRE_BUILD, self.config.hooks.pre_build, fatal=True)
        await self._security_gate(run, interactive)

        # VALIDATING
        self.state.transition(PublishState.VALIDATING, {"registry": plugin.name})
        validation = await plugin.validate()
        run.warnings.extend(str(w) for w in validation.warnings)
        run.package_name = validation.metadata.get("package_name") or run.package_name
        run.version = validation.metadata.get("version") or run.version
        if not validation.valid:
            run.errors.extend(str(e) for e in validation.errors)
            raise PublishError(
                ErrorCode.VALIDATION_FAILED,
                plugin.name,
                details="; ".join(str(e) for e in validation.errors),
            )

        # DRY_RUN
        run_dry = resumed_from is None and (opts.dry_run_only or self.config.publish.dry_run != "never")
        if run_dry:
            self.state.transition(PublishState.DRY_RUN)
            dry = await plugin.dry_run()
            if not dry.success:
                run.errors.extend(str(e) for e in dry.errors)
                if opts.dry_run_only:
                    self.state.transition(PublishState.FAILED, {"error": "Dry run failed"})
                    return run.report(False, PublishState.DRY_RUN, error_code=ErrorCode.PUBLISH_FAILED)
                raise PublishError(ErrorCode.PUBLISH_FAILED, plugin.name, message="Dry run failed", details=dry.output)
            if dry.estimated_size:
                logger.info("Estimated package size: %s", dry.estimated_size)

        if opts.dry_run_only:
            logger.info("Dry run complete, nothing was published")
            self.state.clear()
            return run.report(True, PublishState.DRY_RUN)

        # CONFIRMING
        if interactive and resumed_from is None and self.config.publish.confirm:
            self.state.transition(PublishState.CONFIRMING)
            question = f"Publish {run.package_name}@{run.version} to {plugin.display_name}?"
            if not await self.confirm(question):
                self.state.transition(PublishState.FAILED, {"error": USER_CANCELLED})
                run.errors.append(USER_CANCELLED)
                return run.report(False, PublishState.FAILED)

        await self._run_hooks(run, HookPhase.PRE_PUBLISH, self.config.hooks.pre_publish, fatal=True)
        if opts.hooks_only:
            self.state.clear()
            return run.report(True, PublishState.DRY_RUN)

        # PUBLISHING
        published_at = None
        if resumed_from is not PublishState.VERIFYING:
            self.state.transition(PublishState.PUBLISHING, {"version": run.version})
            result = await plugin.publish(opts)
            if not result.success:
                run.errors.append(result.error or "Publish failed")
                raise PublishError(result.error_code or ErrorCode.PUBLISH_FAILED, plugin.name, message=result.error)
            run.version = result.version or run.version
            published_at = datetime.now(timezone.utc)

        # VERIFYING
        verification_url = None
        if self.config.publish.verify:
            self.state.transition(PublishState.VERIFYING)
            verification = await plugin.verify()
            if verification.verified:
                verification_url = verification.url
            else:
                logger.warning("Verification failed: %s", verification.error)
                run.warnings.append(f"Verification failed: {verification.error or 'unknown error'}")

        await self._run_hooks(
            run,
            HookPhase.POST_PUBLISH,
            self.config.hooks.post_publish,
            fatal=False,
            environment={"VERIFICATION_URL": verification_url or ""},
        )

        self.state.transition(PublishState.SUCCESS, {"version": run.version})
        logger.info("Published %s@%s to %s", run.package_name, run.version, plugin.name)
        return run.report(True, PublishState.SUCCESS, published_at=published_at, verification_url=verification_url)

    def _begin(self, run: _Run) -> PublishState | None:
        """Start fresh or restore a resumable state.

        Returns:
            The restored state when resuming, else None
        """
        if not run.options.resume:
            self.state.clear()
            self.state.transition(PublishState.INITIAL)
            return None

        if not self.state.restore() or not self.state.can_resume():
            raise PublishError(ErrorCode.STATE_CORRUPTED, run.registry)
        restored = self.state.current_state
        run.registry = run.registry or self.state.registry
        run.version = self.state.version
        logger.info("Resuming from %s", restored.value)
        return restored

    async def _select_plugin(self, run: _Run) -> RegistryPlugin:
        detected = await self.detect_registries()
        requested = run.registry
        if requested:
            if requested not in detected:
                raise PublishError(
                    ErrorCode.REGISTRY_NOT_DETECTED,
                    requested,
                    details=f"Detected: {', '.join(detected) or 'none'}",
                )
            return self._plugins[requested]
        if not detected:
            raise PublishError(ErrorCode.REGISTRY_NOT_DETECTED)
        return self._plugins[detected[0]]

    async def _security_gate(self, run: _Run, interactive: bool) -> None:
        if not self.config.security.secrets_scanning.enabled:
            logger.info("Secrets scanning disabled")
            return

        report = await self.scanner.scan_project(self.project_root)
        if not report.has_secrets:
            logger.info("Secrets scan: %d files clean", report.scanned_files)
            return

        logger.warning("%s", format_report(report))
        if interactive:
            proceed = await self.confirm(
                f"{len(report.findings)} potential secret(s) found. Publish anyway?"
            )
            if not proceed:
                raise PublishError(ErrorCode.SECRETS_DETECTED, run.registry)
        run.warnings.append(f"{len(report.findings)} potential secret(s) detected in project files")

    async def _run_hooks(
        self,
        run: _Run,
        phase: HookPhase,
        hooks: list[HookCommand],
        fatal: bool,
        environment: dict[str, str] | None = None,
    ) -> None:
        if run.options.skip_hooks or not hooks:
            return
        context = HookContext(
            phase=phase,
            registry=run.registry or "",
            version=run.version or "",
            package_name=run.package_name or "",
            environment=environment or {},
        )
        result = await self.hooks.execute_hooks(hooks, context)
        if result.success:
            return

        failed = ", ".join(result.failed_hooks)
        if fatal:
            raise PublishError(
                ErrorCode.PUBLISH_FAILED,
                run.registry,
                message=f"{phase.value} hooks failed: {failed}",
            )
        run.warnings.append(f"{phase.value} hooks failed: {failed}")

    async def _fail(self, run: _Run, error: Exception) -> PublishReport:
        if isinstance(error, PublishError):
            message = error.message
            code: ErrorCode | None = error.code
            actions = error.suggested_actions
            if error.details:
                logger.debug("%s", error.details)
        else:
            logger.exception("Unexpected error while publishing")
            message = str(error) or type(error).__name__
            code = None
            actions = []

        logger.error("%s", message)
        if message not in run.errors:
            run.errors.append(message)

        try:
            self.state.transition(PublishState.FAILED, {"error": message})
        except OSError as e:
            logger.error("Could not persist failed state: %s", e)

        try:
            await self._run_hooks(
                run,
                HookPhase.ON_ERROR,
                self.config.hooks.on_error,
                fatal=False,
                environment={"ERROR_MESSAGE": message},
            )
        except Exception as e:
            logger.error("onError hooks could not run: %s", e)

        return run.report(False, PublishState.FAILED, error_code=code, suggested_actions=actions)
