"""npm registry plugin.

Publishes JavaScript packages with the npm CLI.

Features:
- package.json validation (npm naming rules, SemVer)
- Runs the package's build/test/lint scripts before publishing
- OTP, dist-tag and access level pass-through
- Unpublish within 72 hours, deprecate afterwards
"""

import json
import logging
import re
from datetime import datetime, timezone
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
from package_publisher.utils.version import is_valid_semver, npm_name_errors

logger = logging.getLogger(__name__)

REGISTRY_URL = "https://registry.npmjs.org"
PACKAGE_URL = "https://www.npmjs.com/package"
UNPUBLISH_WINDOW_HOURS = 72

PACKAGE_SIZE_PATTERN = re.compile(r"package size:\s*([\d.]+\s*[kKMG]?B)")


def get_package_json(project_root: Path) -> dict[str, Any]:
    """Parse package.json from project root.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not a JSON object
    """
    with open(project_root / "package.json", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("package.json must contain a JSON object")
    return data


@PluginRegistry.register
class NPMPlugin(RegistryPlugin):
    """Plugin for the npm registry.

    Configuration:
        registries:
            npm:
                tag: latest
                access: public  # or 'restricted'
    """

    name: ClassVar[str] = "npm"
    display_name: ClassVar[str] = "npm Registry"

    async def detect(self, project_root: Path) -> bool:
        return (Path(project_root) / "package.json").is_file()

    async def validate(self) -> ValidationResult:
        """Validate package.json and run the package's own checks."""
        result = ValidationResult()
        try:
            package = get_package_json(self.project_root)
        except (json.JSONDecodeError, ValueError) as e:
            result.error("package.json", f"invalid JSON: {e}")
            return result

        name = package.get("name")
        version = package.get("version")

        if not name:
            result.error("name", "package name is required")
        else:
            for problem in npm_name_errors(name):
                result.error("name", problem)

        if not version:
            result.error("version", "version is required")
        elif not is_valid_semver(version):
            result.error("version", f"'{version}' is not a valid semantic version")

        if not package.get("license"):
            result.warn("license", "no license specified")
        if package.get("private"):
            result.error("private", "package is marked private and cannot be published")

        scripts = package.get("scripts") or {}
        if not scripts.get("lint"):
            result.warn("scripts.lint", "no lint script defined")

        await self._audit(result)

        for script in ("build", "test"):
            if scripts.get(script):
                run = await self.run("npm", ["run", script])
                if not run.ok:
                    result.error(f"scripts.{script}", f"'npm run {script}' failed: {run.stderr or run.stdout}")
        if scripts.get("lint"):
            run = await self.run("npm", ["run", "lint"])
            if not run.ok:
                result.warn("scripts.lint", "'npm run lint' reported problems")

        result.metadata = {
            "package_name": name,
            "version": version,
            "description": package.get("description"),
            "license": package.get("license"),
        }
        return result

    async def _audit(self, result: ValidationResult) -> None:
        audit = await self.run("npm", ["audit", "--json"])
        if audit.ok:
            return
        try:
            report = json.loads(audit.stdout or "{}")
        except json.JSONDecodeError:
            result.warn("dependencies", "npm audit could not be run")
            return
        counts = (report.get("metadata") or {}).get("vulnerabilities") or {}
        severe = int(counts.get("high", 0)) + int(counts.get("critical", 0))
        total = sum(int(v) for k, v in counts.items() if k != "total" and isinstance(v, int))
        if total:
            result.warn(
                "dependencies",
                f"npm audit found {total} vulnerabilities ({severe} high/critical)",
            )

    async def dry_run(self) -> DryRunResult:
        run = await self.run("npm", ["publish", "--dry-run"])
        output = self.mask(run.output)
        if not run.ok:
            return DryRunResult(
                success=False,
                output=output,
                errors=[FieldIssue("publish", run.stderr or "npm publish --dry-run failed")],
            )
        match = PACKAGE_SIZE_PATTERN.search(output)
        return DryRunResult(success=True, output=output, estimated_size=match.group(1) if match else None)

    async def publish(self, options: PublishOptions) -> PublishResult:
        package = get_package_json(self.project_root)
        name, version = package.get("name", ""), package.get("version")
        npm_config = self.config.registries.npm

        args = ["publish"]
        if options.otp:
            args.extend(["--otp", options.otp])
        if name.startswith("@"):
            args.extend(["--access", options.access or npm_config.access])
        args.extend(["--tag", options.tag or npm_config.tag])

        env = {"NODE_AUTH_TOKEN": self.token} if self.token else None
        result = await self.run_with_retry("npm", args, env=env)
        if result.success:
            result.version = version
            result.package_url = f"{PACKAGE_URL}/{name}"
        return result

    async def _registry_document(self, name: str) -> dict[str, Any] | None:
        return await self.fetch_json(f"{REGISTRY_URL}/{name.replace('/', '%2F')}")

    async def verify(self) -> VerificationResult:
        package = get_package_json(self.project_root)
        name, version = package.get("name", ""), package.get("version")
        url = f"{PACKAGE_URL}/{name}"
        try:
            document = await self._registry_document(name)
        except httpx.HTTPError as e:
            return VerificationResult(verified=False, version=version, error=f"Registry request failed: {e}")

        if document is None:
            return VerificationResult(verified=False, version=version, error=f"Package {name} not found on npm")
        if version not in (document.get("versions") or {}):
            return VerificationResult(
                verified=False, version=version, error=f"Version {version} not found on npm"
            )
        return VerificationResult(verified=True, version=version, url=f"{url}/v/{version}")

    def supports_rollback(self) -> bool:
        return True

    async def rollback(self, version: str) -> RollbackResult:
        """Unpublish within 72 hours of publishing, deprecate afterwards."""
        name = get_package_json(self.project_root).get("name", "")
        spec = f"{name}@{version}"

        published_at = None
        try:
            document = await self._registry_document(name)
            stamp = ((document or {}).get("time") or {}).get(version)
            if stamp:
                published_at = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Could not determine publish time of %s: %s", spec, e)

        if published_at is not None:
            hours = (datetime.now(timezone.utc) - published_at).total_seconds() / 3600
            if hours <= UNPUBLISH_WINDOW_HOURS:
                run = await self.run("npm", ["unpublish", spec])
                if run.ok:
                    return RollbackResult(success=True, message=f"Unpublished {spec} ({int(hours)}h after publish)")
                return RollbackResult(success=False, message=f"Failed to unpublish {spec}", error=self.mask(run.stderr))

        run = await self.run(
            "npm", ["deprecate", spec, "This version has been deprecated. Please use a newer version."]
        )
        if run.ok:
            return RollbackResult(
                success=True,
                message=f"Deprecated {spec} (unpublish is only possible within {UNPUBLISH_WINDOW_HOURS} hours)",
            )
        return RollbackResult(success=False, message=f"Failed to deprecate {spec}", error=self.mask(run.stderr))
