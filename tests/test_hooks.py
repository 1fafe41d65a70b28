"""Unit tests for lifecycle hook execution.

Tests cover:
- Variable substitution and allow-list matching
- Argument splitting before substitution
- Working directory containment
- Running real hook commands (the running interpreter)
"""

import shlex
import sys
from pathlib import Path

import pytest

from package_publisher.config.models import HookCommand
from package_publisher.exceptions import HookError, PathTraversalError
from package_publisher.hooks import (
    HookContext,
    HookExecutor,
    HookPhase,
    expand_variables,
    is_command_allowed,
)

PYTHON = sys.executable


def python_hook(code: str, **kwargs) -> HookCommand:
    """A hook that runs a Python snippet with the current interpreter."""
    return HookCommand(
        command=f"{shlex.quote(PYTHON)} -c {shlex.quote(code)}",
        allowed_commands=[PYTHON],
        **kwargs,
    )


@pytest.fixture
def context() -> HookContext:
    return HookContext(
        phase=HookPhase.PRE_PUBLISH,
        registry="npm",
        version="1.2.3",
        package_name="my-package",
    )


class TestVariables:
    def test_expand_known_variables(self, context: HookContext) -> None:
        text = expand_variables("release ${PACKAGE_NAME}@${VERSION} to ${REGISTRY}", context.variables())
        assert text == "release my-package@1.2.3 to npm"

    def test_unknown_placeholder_left_alone(self, context: HookContext) -> None:
        assert expand_variables("${HOME}/x", context.variables()) == "${HOME}/x"

    def test_phase_variable(self, context: HookContext) -> None:
        assert context.variables()["PHASE"] == "prePublish"


class TestIsCommandAllowed:
    def test_program_name_match(self) -> None:
        assert is_command_allowed(["npm", "test"], ["npm"])

    def test_multi_word_prefix(self) -> None:
        assert is_command_allowed(["npm", "run", "build"], ["npm run"])
        assert not is_command_allowed(["npm", "publish"], ["npm run"])

    def test_prefix_must_end_at_word_boundary(self) -> None:
        assert not is_command_allowed(["npmx", "run"], ["npm"])

    def test_empty_argv(self) -> None:
        assert not is_command_allowed([], ["npm"])


class TestBuildArgv:
    def test_substitution_after_split(self, project_dir: Path) -> None:
        """A variable value containing spaces stays a single argument."""
        executor = HookExecutor(project_dir)
        hook = HookCommand(command="git tag v${VERSION}", allowed_commands=["git"])
        context = HookContext(phase=HookPhase.POST_PUBLISH, version="1.0.0 --force")
        assert executor.build_argv(hook, context) == ["git", "tag", "v1.0.0 --force"]

    def test_disallowed_program_rejected(self, project_dir: Path, context: HookContext) -> None:
        executor = HookExecutor(project_dir)
        hook = HookCommand(command="rm -rf dist", allowed_commands=["npm"])
        with pytest.raises(HookError) as exc_info:
            executor.build_argv(hook, context)
        assert "rm" in exc_info.value.message

    def test_unbalanced_quotes_rejected(self, project_dir: Path, context: HookContext) -> None:
        executor = HookExecutor(project_dir)
        hook = HookCommand(command="npm run 'build", allowed_commands=["npm"])
        with pytest.raises(HookError):
            executor.build_argv(hook, context)


class TestWorkingDirectory:
    def test_subdirectory_allowed(self, project_dir: Path) -> None:
        (project_dir / "packages" / "core").mkdir(parents=True)
        executor = HookExecutor(project_dir)
        resolved = executor.resolve_working_directory("packages/core")
        assert resolved == (project_dir / "packages" / "core").resolve()

    def test_root_allowed(self, project_dir: Path) -> None:
        assert HookExecutor(project_dir).resolve_working_directory("./") == project_dir.resolve()

    @pytest.mark.parametrize("working_directory", ["..", "../other", "sub/../../..", "/etc"])
    def test_escape_rejected(self, project_dir: Path, working_directory: str) -> None:
        with pytest.raises(PathTraversalError):
            HookExecutor(project_dir).resolve_working_directory(working_directory)

    def test_file_is_not_a_directory(self, project_dir: Path) -> None:
        (project_dir / "notes.txt").write_text("not a dir")
        with pytest.raises(HookError, match="not a directory"):
            HookExecutor(project_dir).resolve_working_directory("notes.txt")

    def test_missing_directory_rejected(self, project_dir: Path) -> None:
        with pytest.raises(HookError, match="not a directory"):
            HookExecutor(project_dir).resolve_working_directory("does/not/exist")


class TestExecuteHooks:
    @pytest.mark.asyncio
    async def test_successful_hook_sees_variables(self, project_dir: Path, context: HookContext) -> None:
        hook = python_hook("import os; print(os.environ['VERSION'], os.environ['REGISTRY'])")
        output = await HookExecutor(project_dir).execute_hook(hook, context)
        assert output.success
        assert output.exit_code == 0
        assert output.stdout == "1.2.3 npm"

    @pytest.mark.asyncio
    async def test_extra_environment(self, project_dir: Path) -> None:
        context = HookContext(phase=HookPhase.ON_ERROR, environment={"ERROR_MESSAGE": "registry down"})
        hook = python_hook("import os; print(os.environ['ERROR_MESSAGE'])")
        output = await HookExecutor(project_dir).execute_hook(hook, context)
        assert output.stdout == "registry down"

    @pytest.mark.asyncio
    async def test_failing_hook_reports_exit_code(self, project_dir: Path, context: HookContext) -> None:
        output = await HookExecutor(project_dir).execute_hook(python_hook("raise SystemExit(2)"), context)
        assert not output.success
        assert output.exit_code == 2
        assert output.error == "Hook exited with code 2"

    @pytest.mark.asyncio
    async def test_timeout(self, project_dir: Path, context: HookContext) -> None:
        hook = python_hook("import time; time.sleep(30)", timeout=1)
        output = await HookExecutor(project_dir).execute_hook(hook, context)
        assert not output.success
        assert output.exit_code is None
        assert output.error == "Hook timed out after 1s"

    @pytest.mark.asyncio
    async def test_rejected_hook_is_reported_not_raised(self, project_dir: Path, context: HookContext) -> None:
        hook = HookCommand(command="curl https://example.com", allowed_commands=["npm"])
        output = await HookExecutor(project_dir).execute_hook(hook, context)
        assert not output.success
        assert "not allowed" in (output.error or "")

    @pytest.mark.asyncio
    async def test_working_directory_is_used(self, project_dir: Path, context: HookContext) -> None:
        (project_dir / "docs").mkdir()
        hook = python_hook("import pathlib; pathlib.Path('built.txt').write_text('ok')", working_directory="docs")
        output = await HookExecutor(project_dir).execute_hook(hook, context)
        assert output.success
        assert (project_dir / "docs" / "built.txt").read_text() == "ok"

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_hooks(self, project_dir: Path, context: HookContext) -> None:
        hooks = [
            python_hook("raise SystemExit(1)"),
            python_hook("import pathlib; pathlib.Path('second.txt').write_text('ran')"),
        ]
        result = await HookExecutor(project_dir).execute_hooks(hooks, context)
        assert not result.success
        assert result.executed_hooks == 2
        assert result.failed_hooks == [hooks[0].command]
        assert (project_dir / "second.txt").read_text() == "ran"

    @pytest.mark.asyncio
    async def test_bad_working_directory_does_not_stop_later_hooks(
        self, project_dir: Path, context: HookContext
    ) -> None:
        (project_dir / "notes.txt").write_text("not a dir")
        hooks = [
            python_hook("print('unreachable')", working_directory="notes.txt"),
            python_hook("print('missing')", working_directory="missing"),
            python_hook("import pathlib; pathlib.Path('last.txt').write_text('ran')"),
        ]
        result = await HookExecutor(project_dir).execute_hooks(hooks, context)
        assert not result.success
        assert result.executed_hooks == 3
        assert result.failed_hooks == [hooks[0].command, hooks[1].command]
        assert "not a directory" in (result.outputs[0].error or "")
        assert "command not found" not in (result.outputs[1].error or "")
        assert (project_dir / "last.txt").read_text() == "ran"
