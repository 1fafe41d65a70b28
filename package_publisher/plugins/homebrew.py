"""Homebrew plugin for formula distribution.

Publishes a formula that lives in the project repository (a tap, or a
project that carries its own Formula/ directory) by committing and pushing
it with git.

Features:
- Formula parsing (class name, desc, homepage, url, sha256, license, version)
- brew audit before publishing
- Verification against the formulae.brew.sh API or the tap on GitHub
- Rollback support via git revert
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

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

logger = logging.getLogger(__name__)

FORMULA_API_URL = "https://formulae.brew.sh/api/formula"
RAW_TAP_URL = "https://raw.githubusercontent.com/{owner}/homebrew-{repo}/HEAD/Formula/{formula}.rb"

CLASS_PATTERN = re.compile(r"^\s*class\s+(\w+)\s*<\s*Formula\b", re.MULTILINE)
FIELD_PATTERN = re.compile(r"""^\s*(desc|homepage|url|sha256|license|version)\s+["']([^"']+)["']""", re.MULTILINE)
URL_VERSION_PATTERN = re.compile(r"[-_/]v?(\d+(?:\.\d+)+)(?:\.tar\.gz|\.tgz|\.tar\.xz|\.zip|/|$)")
SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")


@dataclass
class Formula:
    """Fields parsed from a formula file."""

    path: Path
    name: str
    class_name: str
    version: str | None = None
    url: str | None = None
    sha256: str | None = None
    desc: str | None = None
    homepage: str | None = None
    license: str | None = None


def to_formula_name(class_name: str) -> str:
    """Convert a Ruby class name to a formula name.

    Homebrew convention: CamelCase becomes hyphenated lowercase
    e.g., "MyTool" -> "my-tool"
    """
    return re.sub(r"(?<!^)(?=[A-Z])", "-", class_name).lower()


def find_formula_files(project_root: Path) -> list[Path]:
    formula_dir = project_root / "Formula"
    if formula_dir.is_dir():
        return sorted(formula_dir.glob("*.rb"))
    return sorted(project_root.glob("*.rb"))


def parse_formula(path: Path) -> Formula | None:
    """Parse a formula file. Returns None if it does not define a Formula class."""
    text = path.read_text(encoding="utf-8")
    class_match = CLASS_PATTERN.search(text)
    if not class_match:
        return None

    fields: dict[str, str] = {}
    for key, value in FIELD_PATTERN.findall(text):
        fields.setdefault(key, value)

    version = fields.get("version")
    if version is None and fields.get("url"):
        url_match = URL_VERSION_PATTERN.search(fields["url"])
        version = url_match.group(1) if url_match else None

    return Formula(
        path=path,
        name=path.stem,
        class_name=class_match.group(1),
        version=version,
        url=fields.get("url"),
        sha256=fields.get("sha256"),
        desc=fields.get("desc"),
        homepage=fields.get("homepage"),
        license=fields.get("license"),
    )


@PluginRegistry.register
class HomebrewPlugin(RegistryPlugin):
    """Plugin for Homebrew formulae.

    Configuration:
        registries:
            homebrew:
                tap: "owner/tap"  # verified via github.com/owner/homebrew-tap
    """

    name: ClassVar[str] = "homebrew"
    display_name: ClassVar[str] = "Homebrew"

    async def detect(self, project_root: Path) -> bool:
        return bool(find_formula_files(Path(project_root)))

    def _formula(self) -> Formula | None:
        for path in find_formula_files(self.project_root):
            formula = parse_formula(path)
            if formula is not None:
                return formula
        return None

    async def validate(self) -> ValidationResult:
        result = ValidationResult()
        formula = self._formula()
        if formula is None:
            result.error("formula", "no Formula class found in any .rb file")
            return result

        if to_formula_name(formula.class_name) != formula.name:
            result.warn("class", f"class {formula.class_name} does not match file name {formula.path.name}")
        if not formula.url:
            result.error("url", "formula url is required")
        if not formula.version:
            result.error("version", "version could not be determined from the formula")
        if not formula.sha256:
            result.warn("sha256", "no sha256 checksum")
        elif not SHA256_PATTERN.match(formula.sha256):
            result.error("sha256", "sha256 must be 64 lowercase hex characters")
        for key in ("desc", "homepage", "license"):
            if not getattr(formula, key):
                result.warn(key, f"no {key} specified")

        audit = await self.run("brew", ["audit", "--strict", "--formula", formula.name])
        if not audit.ok:
            result.warn("audit", f"brew audit reported problems: {audit.output}")

        result.metadata = {
            "package_name": formula.name,
            "version": formula.version,
            "description": formula.desc,
            "license": formula.license,
        }
        return result

    async def dry_run(self) -> DryRunResult:
        formula = self._formula()
        if formula is None:
            return DryRunResult(success=False, errors=[FieldIssue("formula", "no formula found")])

        install = await self.run(
            "brew",
            ["install", "--build-from-source", str(formula.path.relative_to(self.project_root))],
            timeout=1800,
        )
        if not install.ok:
            return DryRunResult(
                success=False,
                output=install.output,
                errors=[FieldIssue("install", f"brew install failed: {install.stderr}")],
            )
        return DryRunResult(success=True, output=install.output)

    async def publish(self, options: PublishOptions) -> PublishResult:
        formula = self._formula()
        if formula is None:
            return PublishResult.failed("No formula found to publish")

        relative = str(formula.path.relative_to(self.project_root))
        for args in (["add", relative], ["commit", "-m", f"{formula.name} {formula.version}"]):
            run = await self.run("git", args)
            if not run.ok:
                return PublishResult.failed(f"git {args[0]} failed: {run.stderr or run.stdout}", output=run.output)

        result = await self.run_with_retry("git", ["push"])
        if result.success:
            result.version = formula.version
            result.package_url = formula.homepage
        return result

    async def verify(self) -> VerificationResult:
        formula = self._formula()
        if formula is None:
            return VerificationResult(verified=False, error="No formula found")

        tap = self.config.registries.homebrew.tap
        try:
            if tap and "/" in tap:
                owner, repo = tap.split("/", 1)
                url = RAW_TAP_URL.format(owner=owner, repo=repo.removeprefix("homebrew-"), formula=formula.name)
                async with self.http_client() as client:
                    response = await client.get(url)
                if response.status_code == 404:
                    return VerificationResult(verified=False, version=formula.version, error=f"Formula not found in {tap}")
                response.raise_for_status()
                published = parse_formula_text(response.text)
                link = f"https://github.com/{owner}/homebrew-{repo.removeprefix('homebrew-')}"
            else:
                document = await self.fetch_json(f"{FORMULA_API_URL}/{formula.name}.json")
                if document is None:
                    return VerificationResult(
                        verified=False, version=formula.version, error=f"Formula {formula.name} not found"
                    )
                published = (document.get("versions") or {}).get("stable")
                link = f"https://formulae.brew.sh/formula/{formula.name}"
        except httpx.HTTPError as e:
            return VerificationResult(verified=False, version=formula.version, error=f"Request failed: {e}")

        if published != formula.version:
            return VerificationResult(
                verified=False,
                version=formula.version,
                error=f"Published version is {published}, expected {formula.version}",
            )
        return VerificationResult(verified=True, version=formula.version, url=link)

    def supports_rollback(self) -> bool:
        return True

    async def rollback(self, version: str) -> RollbackResult:
        """Revert the formula commit and push."""
        revert = await self.run("git", ["revert", "--no-edit", "HEAD"])
        if not revert.ok:
            return RollbackResult(success=False, message="Failed to revert formula commit", error=revert.stderr)
        push = await self.run("git", ["push"])
        if not push.ok:
            return RollbackResult(success=False, message="Reverted locally but push failed", error=push.stderr)
        return RollbackResult(success=True, message=f"Reverted formula update for {version}")


def parse_formula_text(text: str) -> str | None:
    """Extract the version from formula source fetched over the network."""
    fields = dict(reversed(FIELD_PATTERN.findall(text)))
    if fields.get("version"):
        return fields["version"]
    if fields.get("url"):
        match = URL_VERSION_PATTERN.search(fields["url"])
        return match.group(1) if match else None
    return None
