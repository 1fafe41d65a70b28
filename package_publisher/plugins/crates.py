"""crates.io plugin for Rust crate distribution.

Features:
- Cargo.toml validation ([package] name and SemVer version)
- cargo check / clippy before publishing
- Token passed to cargo through CARGO_REGISTRY_TOKEN
- Yank support for rollback
"""

import logging
import sys
from pathlib import Path
from typing import Any, ClassVar

import httpx

from package_publisher import __version__
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
from package_publisher.utils.version import CRATE_NAME_PATTERN, is_valid_semver

# Import tomli for Python < 3.11, tomllib for 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

API_URL = "https://crates.io/api/v1/crates"
CRATE_URL = "https://crates.io/crates"


def parse_cargo_toml(project_root: Path) -> dict[str, Any]:
    """Parse Cargo.toml from project root.

    Raises:
        OSError: If the file cannot be read
        tomllib.TOMLDecodeError: If the file is not valid TOML
    """
    with open(project_root / "Cargo.toml", "rb") as f:
        return tomllib.load(f)


def is_publishable(package: dict[str, Any]) -> bool:
    """Crates are publishable unless ``publish = false`` or ``publish = []``."""
    publish = package.get("publish")
    if publish is None:
        return True
    if isinstance(publish, bool):
        return publish
    return not (isinstance(publish, list) and len(publish) == 0)


@PluginRegistry.register
class CratesPlugin(RegistryPlugin):
    """Plugin for crates.io.

    Configuration:
        registries:
            crates:
                features: [serde]
                allow_dirty: false
    """

    name: ClassVar[str] = "crates.io"
    display_name: ClassVar[str] = "crates.io"

    async def detect(self, project_root: Path) -> bool:
        return (Path(project_root) / "Cargo.toml").is_file()

    def _package(self) -> dict[str, Any]:
        package: dict[str, Any] = parse_cargo_toml(self.project_root).get("package") or {}
        return package

    async def validate(self) -> ValidationResult:
        result = ValidationResult()
        try:
            package = self._package()
        except tomllib.TOMLDecodeError as e:
            result.error("Cargo.toml", f"invalid TOML: {e}")
            return result

        name = package.get("name")
        version = package.get("version")

        if not name:
            result.error("package.name", "crate name is required")
        elif not CRATE_NAME_PATTERN.match(name):
            result.error("package.name", f"'{name}' is not a valid crate name")

        if isinstance(version, dict) and version.get("workspace"):
            result.warn("package.version", "version is inherited from the workspace")
            version = None
        elif not version:
            result.error("package.version", "version is required")
        elif not is_valid_semver(version):
            result.error("package.version", f"'{version}' is not a valid semantic version")

        if not is_publishable(package):
            result.error("package.publish", "crate is marked publish = false")
        if not package.get("license") and not package.get("license-file"):
            result.warn("package.license", "no license specified")
        if not package.get("description"):
            result.warn("package.description", "no description (required by crates.io)")

        check = await self.run("cargo", ["check"], timeout=600)
        if not check.ok:
            result.error("build", f"'cargo check' failed: {check.stderr}")

        clippy = await self.run("cargo", ["clippy", "--", "-D", "warnings"], timeout=600)
        if not clippy.ok:
            result.warn("clippy", "'cargo clippy' reported warnings")

        result.metadata = {
            "package_name": name,
            "version": version,
            "description": package.get("description"),
            "license": package.get("license"),
        }
        return result

    def _publish_args(self, *extra: str) -> list[str]:
        crates_config = self.config.registries.crates
        args = ["publish", *extra]
        if crates_config.allow_dirty:
            args.append("--allow-dirty")
        if crates_config.features:
            args.extend(["--features", ",".join(crates_config.features)])
        return args

    def _env(self) -> dict[str, str] | None:
        return {"CARGO_REGISTRY_TOKEN": self.token} if self.token else None

    async def dry_run(self) -> DryRunResult:
        run = await self.run("cargo", self._publish_args("--dry-run"), env=self._env(), timeout=600)
        output = self.mask(run.output)
        if not run.ok:
            return DryRunResult(
                success=False,
                output=output,
                errors=[FieldIssue("publish", run.stderr or "cargo publish --dry-run failed")],
            )
        return DryRunResult(success=True, output=output)

    async def publish(self, options: PublishOptions) -> PublishResult:
        package = self._package()
        # crates.io has no dist-tags or OTP; options.tag and options.otp are ignored
        result = await self.run_with_retry("cargo", self._publish_args(), env=self._env())
        if result.success:
            result.version = package.get("version")
            result.package_url = f"{CRATE_URL}/{package.get('name')}"
        return result

    async def verify(self) -> VerificationResult:
        package = self._package()
        name, version = package.get("name"), package.get("version")
        try:
            # crates.io rejects requests without a User-Agent identifying the client
            document = await self.fetch_json(
                f"{API_URL}/{name}",
                headers={"User-Agent": f"package-publisher/{__version__}"},
            )
        except httpx.HTTPError as e:
            return VerificationResult(verified=False, version=version, error=f"Registry request failed: {e}")

        if document is None:
            return VerificationResult(verified=False, version=version, error=f"Crate {name} not found on crates.io")

        published = [str(v.get("num")) for v in document.get("versions") or []]
        if version not in published:
            return VerificationResult(
                verified=False,
                version=version,
                error=f"Version {version} not found (available: {', '.join(published[:5]) or 'none'})",
            )
        return VerificationResult(verified=True, version=version, url=f"{CRATE_URL}/{name}/{version}")

    def supports_rollback(self) -> bool:
        return True

    async def rollback(self, version: str) -> RollbackResult:
        """Yank a version. Yanked versions stay downloadable for existing lockfiles."""
        run = await self.run("cargo", ["yank", "--version", version], env=self._env())
        name = self._package().get("name")
        if run.ok:
            return RollbackResult(success=True, message=f"Yanked {name}@{version} from crates.io")
        return RollbackResult(success=False, message=f"Failed to yank {name}@{version}", error=self.mask(run.stderr))
