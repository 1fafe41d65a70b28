"""Version and package-name validation shared by the registry plugins.

npm and crates.io require Semantic Versioning 2.0.0, PyPI requires PEP 440.
"""

import re

# Semantic Versioning 2.0.0, including pre-release and build metadata
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# PEP 440 public version identifiers (canonical and common non-canonical spellings)
PEP440_PATTERN = re.compile(
    r"^v?(?:(\d+)!)?(\d+(?:\.\d+)*)"
    r"(?:[-_.]?(a|b|rc|alpha|beta|c|pre|preview)[-_.]?(\d+)?)?"
    r"(?:-(\d+)|[-_.]?(post|rev|r)[-_.]?(\d+)?)?"
    r"(?:[-_.]?(dev)[-_.]?(\d+)?)?"
    r"(?:\+([a-z0-9]+(?:[-_.][a-z0-9]+)*))?$",
    re.IGNORECASE,
)

# npm package names: lowercase, URL-safe, optionally @scope/ prefixed
NPM_NAME_PATTERN = re.compile(r"^(?:@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")
NPM_NAME_MAX_LENGTH = 214

# crates.io names: ASCII alphanumerics, '-' and '_', starting with a letter
CRATE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")

# PyPI project names (PEP 508)
PYPI_NAME_PATTERN = re.compile(r"^([A-Z0-9]|[A-Z0-9][A-Z0-9._-]*[A-Z0-9])$", re.IGNORECASE)


def is_valid_semver(version: str) -> bool:
    """Check whether a version string is valid Semantic Versioning 2.0.0."""
    return bool(version) and SEMVER_PATTERN.match(version.strip()) is not None


def is_valid_pep440(version: str) -> bool:
    """Check whether a version string is a valid PEP 440 version."""
    return bool(version) and PEP440_PATTERN.match(version.strip()) is not None


def npm_name_errors(name: str) -> list[str]:
    """Return the npm naming rules a package name violates.

    Examples:
        >>> npm_name_errors("left-pad")
        []
        >>> npm_name_errors("Left Pad")
        ['name can only contain URL-friendly lowercase characters']
    """
    problems = []
    if len(name) > NPM_NAME_MAX_LENGTH:
        problems.append(f"name cannot be longer than {NPM_NAME_MAX_LENGTH} characters")
    if name.startswith((".", "_")):
        problems.append("name cannot start with a period or underscore")
    if name != name.strip():
        problems.append("name cannot contain leading or trailing spaces")
    if not NPM_NAME_PATTERN.match(name):
        problems.append("name can only contain URL-friendly lowercase characters")
    return problems
