"""PyPI plugin for Python package distribution.

Builds with ``python -m build`` and uploads with twine.

Features:
- pyproject.toml (PEP 621 and Poetry) or setup.py metadata
- PEP 440 version validation
- TestPyPI support
- Token passed to twine through the environment
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any, ClassVar

import httpx

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
from package_publisher.utils.version import PYPI_NAME_PATTERN, is_valid_pep440

# Import tomli for Python < 3.11, tomllib for 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

INDEXES = {
    "pypi": ("https://pypi.org", "https://upload.pypi.org/legacy/"),
    "testpypi": ("https://test.pypi.org", "https://test.pypi.org/legacy/"),
}

SETUP_PY_FIELD = re.compile(r"""\b(name|version|license|description)\s*=\s*['"]([^'"]+)['"]""")


def read_metadata(project_root: Path) -> dict[str, Any]:
    """Read static package metadata.

    Checks, in order:
    - [project] (PEP 621)
    - [tool.poetry]
    - literal keyword arguments in setup.py

    Returns:
        Dict with name, version, license, description and dynamic_version;
        missing values are None
    """
    metadata: dict[str, Any] = {
        "name": None,
        "version": None,
        "license": None,
        "description": None,
        "dynamic_version": False,
    }

    pyproject_path = project_root / "pyproject.toml"
    if pyproject_path.is_file():
        with open(pyproject_path, "rb") as f:
            pyproject = tomllib.load(f)

        project = pyproject.get("project") or {}
        poetry = (pyproject.get("tool") or {}).get("poetry") or {}
        for section in (project, poetry):
            for key in ("name", "version", "license", "description"):
                if metadata[key] is None and section.get(key):
                    metadata[key] = section[key]
        if "version" in (project.get("dynamic") or []):
            metadata["dynamic_version"] = True

    setup_path = project_root / "setup.py"
    if setup_path.is_file():
        for key, value in SETUP_PY_FIELD.findall(setup_path.read_text(encoding="utf-8")):
            if metadata[key] is None:
                metadata[key] = value

    if isinstance(metadata["license"], dict):
        metadata["license"] = metadata["license"].get("text") or metadata["license"].get("file")
    return metadata


@PluginRegistry.register
class PyPIPlugin(RegistryPlugin):
    """Plugin for PyPI.

    Configuration:
        registries:
            pypi:
                repository: pypi  # or 'testpypi'
    """

    name: ClassVar[str] = "pypi"
    display_name: ClassVar[str] = "PyPI"

    async def detect(self, project_root: Path) -> bool:
        root = Path(project_root)
        return (root / "pyproject.toml").is_file() or (root / "setup.py").is_file()

    def _repository(self, options: PublishOptions | None = None) -> str:
        if options is not None and options.tag == "test":
            return "testpypi"
        return self.config.registries.pypi.repository

    async def validate(self) -> ValidationResult:
        result = ValidationResult()
        try:
            metadata = read_metadata(self.project_root)
        except tomllib.TOMLDecodeError as e:
            result.error("pyproject.toml", f"invalid TOML: {e}")
            return result

        name, version = metadata["name"], metadata["version"]
        if not name:
            result.error("name", "package name is required")
        elif not PYPI_NAME_PATTERN.match(name):
            result.error("name", f"'{name}' is not a valid project name")

        if metadata["dynamic_version"] and not version:
            result.warn("version", "version is dynamic and will be resolved at build time")
        elif not version:
            result.error("version", "version is required")
        elif not is_valid_pep440(version):
            result.error("version", f"'{version}' is not a valid PEP 440 version")

        if not metadata["license"]:
            result.warn("license", "no license specified")
        if not metadata["description"]:
            result.warn("description", "no description specified")

        for tool, args in (("build", ["-m", "build", "--version"]), ("twine", ["-m", "twine", "--version"])):
            probe = await self.run("python", args)
            if not probe.ok:
                result.warn("tooling", f"'{tool}' is not installed (pip install {tool})")

        result.metadata = {
            "package_name": name,
            "version": version,
            "description": metadata["description"],
            "license": metadata["license"],
        }
        return result

    async def _build(self) -> tuple[bool, str]:
        run = await self.run("python", ["-m", "build"], timeout=600)
        return run.ok, run.output

    def _distributions(self, version: str | None) -> list[str]:
        dist = self.project_root / "dist"
        files = sorted(
            p for p in dist.glob("*") if p.is_file() and (p.suffix == ".whl" or p.name.endswith(".tar.gz"))
        )
        if version:
            current = [p for p in files if f"-{version}" in p.name]
            files = current or files
        return [str(p.relative_to(self.project_root)) for p in files]

    async def dry_run(self) -> DryRunResult:
        ok, output = await self._build()
        if not ok:
            return DryRunResult(success=False, output=output, errors=[FieldIssue("build", "python -m build failed")])

        files = self._distributions(read_metadata(self.project_root)["version"])
        if not files:
            return DryRunResult(success=False, output=output, errors=[FieldIssue("build", "no distributions in dist/")])

        check = await self.run("twine", ["check", *files])
        output = "\n".join(part for part in (output, check.output) if part)
        if not check.ok:
            return DryRunResult(success=False, output=output, errors=[FieldIssue("metadata", "twine check failed")])
        return DryRunResult(success=True, output=output)

    async def publish(self, options: PublishOptions) -> PublishResult:
        version = read_metadata(self.project_root)["version"]
        ok, output = await self._build()
        if not ok:
            return PublishResult.failed("python -m build failed", output=output)

        files = self._distributions(version)
        if not files:
            return PublishResult.failed("No distributions found in dist/")

        repository = self._repository(options)
        args = ["upload", "--non-interactive", "--repository-url", INDEXES[repository][1], *files]
        env = {"TWINE_USERNAME": "__token__", "TWINE_PASSWORD": self.token} if self.token else None

        result = await self.run_with_retry("twine", args, env=env)
        if result.success:
            name = read_metadata(self.project_root)["name"]
            result.version = version
            result.package_url = f"{INDEXES[repository][0]}/project/{name}/{version}/"
        return result

    async def verify(self) -> VerificationResult:
        metadata = read_metadata(self.project_root)
        name, version = metadata["name"], metadata["version"]
        base = INDEXES[self._repository()][0]
        try:
            document = await self.fetch_json(f"{base}/pypi/{name}/json")
        except httpx.HTTPError as e:
            return VerificationResult(verified=False, version=version, error=f"Registry request failed: {e}")

        if document is None:
            return VerificationResult(verified=False, version=version, error=f"Project {name} not found on PyPI")
        if version not in (document.get("releases") or {}):
            return VerificationResult(verified=False, version=version, error=f"Version {version} not found on PyPI")
        return VerificationResult(verified=True, version=version, url=f"{base}/project/{name}/{version}/")

    async def rollback(self, version: str) -> RollbackResult:
        name = read_metadata(self.project_root)["name"]
        return RollbackResult(
            success=False,
            message=(
                f"PyPI does not allow deleting or replacing {name} {version} from the command line. "
                f"Yank it from https://pypi.org/manage/project/{name}/releases/ and publish a new version."
            ),
            error="ROLLBACK_NOT_SUPPORTED",
        )
