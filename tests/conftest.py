"""Pytest fixtures for package publisher tests.

Provides common fixtures for:
- Temporary project directories
- Registry-specific test projects (npm, crates.io, PyPI, Homebrew)
- A scripted command executor that never spawns processes
- A configurable in-memory registry plugin
"""

import json
import logging
import os
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from package_publisher.config.models import PublishConfig
from package_publisher.plugins.base import (
    DryRunResult,
    PublishOptions,
    PublishResult,
    RegistryPlugin,
    ValidationResult,
    VerificationResult,
)
from package_publisher.utils.retry import RetryExecutor
from package_publisher.utils.shell import CommandExecutor, CommandResult

VALID_SHA256 = "a" * 64


class FakeExecutor(CommandExecutor):
    """CommandExecutor that records calls and returns scripted results.

    ``responses`` maps a command-line prefix ("npm publish") to a result, or
    to a list of results consumed in order (the last one repeats). Commands
    without a matching prefix succeed with empty output. The allow-list is
    still enforced.
    """

    def __init__(self, responses: dict[str, Any] | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.responses = dict(responses or {})
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []

    async def exec_safe(
        self,
        program: str,
        args: list[str] | None = None,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        timeout: float = 120.0,
    ) -> CommandResult:
        argv = list(args or [])
        self.validate(program, argv)
        self.calls.append([program, *argv])
        self.envs.append(dict(env or {}))

        line = " ".join([program, *argv])
        for prefix, response in self.responses.items():
            if line.startswith(prefix):
                if isinstance(response, list):
                    result = response.pop(0) if len(response) > 1 else response[0]
                else:
                    result = response
                result.command = line
                return result
        return CommandResult(command=line, exit_code=0)

    def commands(self) -> list[str]:
        return [" ".join(call) for call in self.calls]


class FakePlugin(RegistryPlugin):
    """In-memory registry plugin with scripted outcomes."""

    name = "fake"
    display_name = "Fake Registry"

    def __init__(
        self,
        project_root: Path,
        *,
        registry_name: str | None = None,
        detected: bool = True,
        validation: ValidationResult | None = None,
        dry_run_result: DryRunResult | None = None,
        publish_result: PublishResult | None = None,
        verification: VerificationResult | None = None,
        publish_error: Exception | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(project_root, **kwargs)
        if registry_name:
            self.name = registry_name  # type: ignore[misc]
        self.detected = detected
        self.validation = validation or ValidationResult(
            metadata={"package_name": "demo-package", "version": "1.0.0"}
        )
        self.dry_run_result = dry_run_result or DryRunResult(success=True, estimated_size="1.2 kB")
        self.publish_result = publish_result or PublishResult.succeeded(version="1.0.0")
        self.verification = verification or VerificationResult(
            verified=True, version="1.0.0", url="https://registry.example/demo-package/1.0.0"
        )
        self.publish_error = publish_error
        self.calls: list[str] = []
        self.publish_options: list[PublishOptions] = []

    async def detect(self, project_root: Path) -> bool:
        self.calls.append("detect")
        return self.detected

    async def validate(self) -> ValidationResult:
        self.calls.append("validate")
        return self.validation

    async def dry_run(self) -> DryRunResult:
        self.calls.append("dry_run")
        return self.dry_run_result

    async def publish(self, options: PublishOptions) -> PublishResult:
        self.calls.append("publish")
        self.publish_options.append(options)
        if self.publish_error is not None:
            raise self.publish_error
        return self.publish_result

    async def verify(self) -> VerificationResult:
        self.calls.append("verify")
        return self.verification


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary directory for tests.

    Yields:
        Path to temporary directory
    """
    yield tmp_path


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """Create an empty temporary project directory."""
    project = temp_dir / "test-project"
    project.mkdir()
    return project


@pytest.fixture
def nodejs_project(project_dir: Path) -> Path:
    """Create a Node.js project with package.json."""
    package_json = {
        "name": "test-package",
        "version": "1.0.0",
        "description": "Test package",
        "license": "MIT",
        "main": "index.js",
        "scripts": {
            "test": "echo 'test'",
            "build": "echo 'build'",
            "lint": "echo 'lint'",
        },
    }
    (project_dir / "package.json").write_text(json.dumps(package_json, indent=2))
    (project_dir / "index.js").write_text("module.exports = {};")
    return project_dir


@pytest.fixture
def python_project(project_dir: Path) -> Path:
    """Create a Python project with pyproject.toml."""
    import tomli_w

    pyproject = {
        "project": {
            "name": "test-package",
            "version": "1.0.0",
            "description": "Test package",
            "license": {"text": "MIT"},
        },
        "build-system": {
            "requires": ["hatchling"],
            "build-backend": "hatchling.build",
        },
    }
    (project_dir / "pyproject.toml").write_text(tomli_w.dumps(pyproject))
    (project_dir / "src").mkdir()
    (project_dir / "src" / "__init__.py").write_text('__version__ = "1.0.0"')
    return project_dir


@pytest.fixture
def rust_project(project_dir: Path) -> Path:
    """Create a Rust crate with Cargo.toml."""
    (project_dir / "Cargo.toml").write_text(
        "[package]\n"
        'name = "test-crate"\n'
        'version = "0.3.1"\n'
        'edition = "2021"\n'
        'license = "MIT"\n'
        'description = "Test crate"\n'
    )
    (project_dir / "src").mkdir()
    (project_dir / "src" / "lib.rs").write_text("pub fn hello() {}\n")
    return project_dir


@pytest.fixture
def formula_project(project_dir: Path) -> Path:
    """Create a Homebrew tap layout with one formula."""
    formula_dir = project_dir / "Formula"
    formula_dir.mkdir()
    (formula_dir / "my-tool.rb").write_text(
        "class MyTool < Formula\n"
        '  desc "A command-line tool"\n'
        '  homepage "https://example.com/my-tool"\n'
        '  url "https://example.com/downloads/my-tool-2.4.0.tar.gz"\n'
        f'  sha256 "{VALID_SHA256}"\n'
        '  license "MIT"\n'
        "\n"
        "  def install\n"
        '    bin.install "my-tool"\n'
        "  end\n"
        "end\n"
    )
    return project_dir


@pytest.fixture
def config() -> PublishConfig:
    """Default configuration."""
    return PublishConfig()


@pytest.fixture
def make_executor():
    """Factory for FakeExecutor instances."""

    def factory(responses: dict[str, Any] | None = None, **kwargs: Any) -> FakeExecutor:
        return FakeExecutor(responses, **kwargs)

    return factory


@pytest.fixture
def fake_plugin_class() -> type[FakePlugin]:
    """The scripted in-memory plugin class."""
    return FakePlugin


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fast_retry(recording_sleep: RecordingSleep) -> RetryExecutor:
    """RetryExecutor that records delays instead of sleeping."""
    return RetryExecutor(sleep=recording_sleep)


@pytest.fixture
def python_executor() -> CommandExecutor:
    """Real executor that may only spawn the running interpreter."""
    return CommandExecutor(allowed_commands=[sys.executable])


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Temporarily remove PUBLISH_* and registry token environment variables."""
    prefixes = ("PUBLISH_", "NPM_TOKEN", "CARGO_REGISTRY_TOKEN", "PYPI_TOKEN", "HOMEBREW_GITHUB_API_TOKEN")
    old_env = {}
    for key in list(os.environ.keys()):
        if key.startswith(prefixes):
            old_env[key] = os.environ.pop(key)

    yield

    os.environ.update(old_env)


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Undo handlers and propagation changes made by configure_logging()."""
    logger = logging.getLogger("package_publisher")
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level

    yield

    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)
