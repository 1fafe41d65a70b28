"""Lifecycle hook execution.

Hooks are user-declared commands from configuration. Each hook carries its
own allow-list; the program is checked against it before anything is
spawned, the working directory must stay inside the project root, and the
command runs as an argv array through the CommandExecutor.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from package_publisher.config.models import HookCommand
from package_publisher.exceptions import HookError, PathTraversalError
from package_publisher.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    """Lifecycle phases that run hooks."""

    PRE_BUILD = "preBuild"
    PRE_PUBLISH = "prePublish"
    POST_PUBLISH = "postPublish"
    ON_ERROR = "onError"


@dataclass
class HookContext:
    """Values available to hook commands.

    ``${VERSION}``, ``${PACKAGE_NAME}``, ``${REGISTRY}`` and ``${PHASE}`` are
    substituted in the command; ``environment`` is added to the process env.
    """

    phase: HookPhase
    registry: str = ""
    version: str = ""
    package_name: str = ""
    environment: dict[str, str] = field(default_factory=dict)

    def variables(self) -> dict[str, str]:
        return {
            "VERSION": self.version,
            "PACKAGE_NAME": self.package_name,
            "REGISTRY": self.registry,
            "PHASE": self.phase.value,
        }


@dataclass
class HookOutput:
    """Outcome of one hook."""

    command: str
    success: bool
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    duration: float = 0.0


@dataclass
class HookExecutionResult:
    """Outcome of all hooks in one phase."""

    success: bool = True
    executed_hooks: int = 0
    failed_hooks: list[str] = field(default_factory=list)
    outputs: list[HookOutput] = field(default_factory=list)


def expand_variables(text: str, variables: dict[str, str]) -> str:
    """Substitute ``${NAME}`` placeholders; unknown placeholders are left as-is."""
    for name, value in variables.items():
        text = text.replace(f"${{{name}}}", value)
    return text


def is_command_allowed(argv: list[str], allowed_commands: Iterable[str]) -> bool:
    """Check an argv against an allow-list.

    An entry allows a command when it equals the program name, or when it is
    a multi-word prefix ("npm run") that the command line starts with.
    """
    if not argv:
        return False
    command_line = " ".join(argv)
    for entry in allowed_commands:
        entry = entry.strip()
        if argv[0] == entry or command_line.startswith(entry + " "):
            return True
    return False


class HookExecutor:
    """Runs hook commands for a project.

    Args:
        project_root: Root that hook working directories must stay inside.
        executor_factory: Builds the CommandExecutor for a given allow-list.
    """

    def __init__(
        self,
        project_root: Path,
        executor_factory: Callable[[Iterable[str]], CommandExecutor] | None = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self._executor_factory = executor_factory or (
            lambda allowed: CommandExecutor(allowed_commands=allowed)
        )

    def resolve_working_directory(self, working_directory: str) -> Path:
        """Resolve a hook working directory inside the project root.

        Raises:
            PathTraversalError: If the directory resolves outside the root
            HookError: If the path does not name an existing directory
        """
        resolved = (self.project_root / working_directory).resolve()
        if resolved != self.project_root and self.project_root not in resolved.parents:
            raise PathTraversalError(
                f"Hook working directory escapes the project root: {working_directory}",
                details=f"Resolved to {resolved}, outside {self.project_root}",
            )
        if not resolved.is_dir():
            raise HookError(
                f"Hook working directory is not a directory: {working_directory}",
                details=f"Resolved to {resolved}",
            )
        return resolved

    def build_argv(self, hook: HookCommand, context: HookContext) -> list[str]:
        """Split a hook command and substitute context variables.

        Splitting happens before substitution, so a variable value can never
        introduce extra arguments.

        Raises:
            HookError: If the command cannot be parsed or is not allowed
        """
        try:
            tokens = shlex.split(hook.command)
        except ValueError as e:
            raise HookError(f"Cannot parse hook command: {hook.command}", details=str(e)) from e

        variables = context.variables()
        argv = [expand_variables(token, variables) for token in tokens]
        if not is_command_allowed(argv, hook.allowed_commands):
            raise HookError(
                f"Hook command not allowed: {argv[0] if argv else hook.command}",
                details=f"Allowed commands: {', '.join(hook.allowed_commands)}",
                fix_hint="Add the program to the hook's allowed_commands",
            )
        return argv

    async def execute_hook(self, hook: HookCommand, context: HookContext) -> HookOutput:
        """Run a single hook. Rejections and failures are reported, not raised."""
        try:
            argv = self.build_argv(hook, context)
            cwd = self.resolve_working_directory(hook.working_directory)
        except HookError as e:
            logger.error("%s", e.message)
            return HookOutput(command=hook.command, success=False, error=e.message)

        executor = self._executor_factory([argv[0]])
        result = await executor.exec_safe(
            argv[0],
            argv[1:],
            cwd=cwd,
            env={**context.environment, **context.variables()},
            timeout=hook.timeout,
        )

        error = None
        if result.timed_out:
            error = f"Hook timed out after {hook.timeout}s"
        elif not result.ok:
            error = f"Hook exited with code {result.exit_code}"

        return HookOutput(
            command=result.command,
            success=result.ok,
            exit_code=None if result.timed_out else result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            error=error,
            duration=result.duration,
        )

    async def execute_hooks(
        self, hooks: Iterable[HookCommand], context: HookContext
    ) -> HookExecutionResult:
        """Run hooks sequentially. A failing hook does not stop the rest."""
        result = HookExecutionResult()
        for hook in hooks:
            logger.info("Running %s hook: %s", context.phase.value, hook.command)
            output = await self.execute_hook(hook, context)
            result.outputs.append(output)
            result.executed_hooks += 1
            if not output.success:
                logger.warning("Hook failed: %s (%s)", hook.command, output.error)
                result.success = False
                result.failed_hooks.append(hook.command)
        return result
