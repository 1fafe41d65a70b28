"""Allow-listed asynchronous subprocess execution.

Provides the command execution gate used by every registry plugin:
- Only allow-listed program names may be spawned
- Arguments are passed as an argv array (no shell interpretation)
- Hard timeout per process, with the process killed on expiry
- Captured output is size-capped while it is read, then ANSI stripped
- Non-zero exit is a structured result, not an exception
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shlex
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from package_publisher.exceptions import CommandNotAllowedError

if TYPE_CHECKING:
    from package_publisher.config.models import AllowedCommandConfig

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_COMMANDS = frozenset(
    {"cargo", "npm", "pip", "twine", "python", "python3", "git", "gh", "glab", "brew"}
)
DEFAULT_TIMEOUT = 120.0
MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# Exit code reported when the program cannot be found, as a shell would
NOT_FOUND_EXIT_CODE = 127
# Exit code reported when the program exists but cannot be started
CANNOT_EXECUTE_EXIT_CODE = 126
TIMEOUT_EXIT_CODE = -1
READ_CHUNK_SIZE = 64 * 1024

# Regex pattern for ANSI escape sequences
# Matches: ESC[...m, ESC[...;...m, and other control sequences
ANSI_PATTERN = re.compile(
    r"\x1b\[[0-9;]*[a-zA-Z]|\x1b\][^\x07]*\x07|\x1b[PX^_][^\x1b]*\x1b\\"
)

# Control characters other than tab and newline
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences and control characters from text.

    Registry tools colorize their output; stripping keeps parsed values
    (package sizes, versions) and retry pattern matching clean.

    Args:
        text: Input text potentially containing ANSI codes

    Returns:
        Clean text with all ANSI sequences removed
    """
    if not text:
        return ""
    result = ANSI_PATTERN.sub("", text)
    return CONTROL_CHARS_PATTERN.sub("", result)


def format_command(program: str, args: Iterable[str]) -> str:
    """Render an argv array as a copy-pasteable command line for logs and errors."""
    return shlex.join([program, *args])


class CommandError(Exception):
    """Raised when a checked command exits non-zero or times out.

    Attributes:
        cmd: The command that failed
        returncode: Exit code of the failed command
        stdout: Standard output (ANSI stripped)
        stderr: Standard error (ANSI stripped)
    """

    def __init__(
        self,
        cmd: str,
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command failed with exit code {returncode}: {cmd}")

    def __str__(self) -> str:
        parts = [f"Command failed: {self.cmd}"]
        parts.append(f"Exit code: {self.returncode}")
        if self.stderr:
            parts.append(f"Stderr: {self.stderr}")
        if self.stdout:
            parts.append(f"Stdout: {self.stdout}")
        return "\n".join(parts)


@dataclass
class CommandResult:
    """Outcome of one executed command."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as most registry tools split progress across both."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def check(self) -> CommandResult:
        """Return self, or raise CommandError if the command did not succeed."""
        if not self.ok:
            raise CommandError(
                cmd=self.command,
                returncode=self.exit_code,
                stdout=self.stdout,
                stderr=self.stderr,
            )
        return self


class CommandExecutor:
    """Spawns allow-listed programs without a shell.

    Args:
        allowed_commands: Program names that may be spawned. Defaults to the
            registry tools this package drives.
        policies: Optional per-program restrictions from configuration
            (replacement executable, allowed subcommands, forbidden arguments).
        max_output_bytes: Cap applied to each captured stream.
    """

    def __init__(
        self,
        allowed_commands: Iterable[str] | None = None,
        policies: Mapping[str, AllowedCommandConfig] | None = None,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
    ) -> None:
        self.allowed_commands = frozenset(
            DEFAULT_ALLOWED_COMMANDS if allowed_commands is None else allowed_commands
        )
        self.policies = dict(policies or {})
        self.max_output_bytes = max_output_bytes

    def is_allowed(self, program: str) -> bool:
        return program in self.allowed_commands

    def validate(self, program: str, args: list[str]) -> str:
        """Check a command against the allow-list and policies.

        Returns:
            The executable to spawn (the configured replacement, if any).

        Raises:
            CommandNotAllowedError: If the command must not be spawned.
        """
        if not self.is_allowed(program):
            raise CommandNotAllowedError(
                f"Command not allowed: {program}",
                details=f"Allowed commands: {', '.join(sorted(self.allowed_commands))}",
            )

        policy = self.policies.get(program)
        if policy is None:
            return program

        forbidden = sorted(set(args) & set(policy.forbidden_args))
        if forbidden:
            raise CommandNotAllowedError(
                f"Forbidden argument for {program}: {', '.join(forbidden)}",
                fix_hint=f"Update security.allowed_commands.{program}.forbidden_args",
            )
        if policy.allowed_args and (not args or args[0] not in policy.allowed_args):
            subcommand = args[0] if args else "(none)"
            raise CommandNotAllowedError(
                f"Subcommand not allowed for {program}: {subcommand}",
                details=f"Allowed: {', '.join(policy.allowed_args)}",
            )
        return policy.executable or program

    async def exec_safe(
        self,
        program: str,
        args: list[str] | None = None,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> CommandResult:
        """Execute an allow-listed command.

        Args:
            program: Program name, checked against the allow-list
            args: Arguments, passed verbatim as argv
            cwd: Working directory for the command
            env: Additional environment variables
            timeout: Maximum execution time in seconds

        Returns:
            CommandResult; non-zero exit and timeouts are reported, not raised

        Raises:
            CommandNotAllowedError: If the program is not allow-listed
        """
        argv = list(args or [])
        executable = self.validate(program, argv)
        display = format_command(program, argv)

        merged_env = {**os.environ}
        if env:
            merged_env.update(env)

        logger.debug("Running %s (cwd=%s)", display, cwd or Path.cwd())
        if cwd is not None and not Path(cwd).is_dir():
            return CommandResult(
                command=display,
                exit_code=CANNOT_EXECUTE_EXIT_CODE,
                stderr=f"working directory not found: {cwd}",
            )

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *argv,
                cwd=cwd,
                env=merged_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return CommandResult(
                command=display,
                exit_code=NOT_FOUND_EXIT_CODE,
                stderr=f"command not found: {executable}",
            )
        except OSError as e:
            return CommandResult(
                command=display,
                exit_code=CANNOT_EXECUTE_EXIT_CODE,
                stderr=f"cannot execute {executable}: {e.strerror or e}",
            )

        try:
            stdout, stderr, _ = await asyncio.wait_for(
                asyncio.gather(
                    self._read_capped(proc.stdout),
                    self._read_capped(proc.stderr),
                    proc.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Command timed out after %ss: %s", timeout, display)
            return CommandResult(
                command=display,
                exit_code=TIMEOUT_EXIT_CODE,
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
                duration=time.monotonic() - started,
            )

        result = CommandResult(
            command=display,
            exit_code=proc.returncode if proc.returncode is not None else TIMEOUT_EXIT_CODE,
            stdout=self._decode(stdout),
            stderr=self._decode(stderr),
            duration=time.monotonic() - started,
        )
        if not result.ok:
            logger.debug("%s exited with %d", display, result.exit_code)
        return result

    async def _read_capped(self, stream: asyncio.StreamReader | None) -> bytes:
        """Read a stream to EOF, keeping at most max_output_bytes.

        The remainder is drained and discarded so the child never blocks on
        a full pipe.
        """
        if stream is None:
            return b""
        kept = bytearray()
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            room = self.max_output_bytes - len(kept)
            if room > 0:
                kept.extend(chunk[:room])
        return bytes(kept)

    def _decode(self, data: bytes) -> str:
        return strip_ansi(data.decode("utf-8", errors="replace")).strip()
