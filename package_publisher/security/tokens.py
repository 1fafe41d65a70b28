"""Registry credentials lookup and token masking.

Plugins receive a CredentialsLookup at construction instead of reading the
process environment themselves, so tests can inject tokens directly.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Mapping

# Environment variable holding the publish token for each registry
TOKEN_ENV_VARS: dict[str, str] = {
    "npm": "NPM_TOKEN",
    "crates.io": "CARGO_REGISTRY_TOKEN",
    "pypi": "PYPI_TOKEN",
    "homebrew": "HOMEBREW_GITHUB_API_TOKEN",
}

CredentialsLookup = Callable[[str], "str | None"]


def env_credentials(registry: str, environ: Mapping[str, str] | None = None) -> str | None:
    """Read a registry token from the environment.

    Args:
        registry: Registry name (e.g. "npm", "crates.io")
        environ: Mapping to read from; defaults to os.environ

    Returns:
        The token, or None if unset, empty, or the registry is unknown
    """
    var = TOKEN_ENV_VARS.get(registry)
    if var is None:
        return None
    value = (environ if environ is not None else os.environ).get(var, "").strip()
    return value or None


def static_credentials(tokens: Mapping[str, str]) -> CredentialsLookup:
    """Build a lookup over a fixed registry -> token mapping."""
    snapshot = dict(tokens)

    def lookup(registry: str) -> str | None:
        return snapshot.get(registry) or None

    return lookup


def mask_token(token: str) -> str:
    """Mask a token, keeping three characters at each end.

    Examples:
        >>> mask_token("npm_abcdefghijklmnop")
        'npm...nop'
        >>> mask_token("short")
        '****'
    """
    if len(token) < 10:
        return "****"
    return f"{token[:3]}...{token[-3:]}"


def mask_tokens(text: str, tokens: Iterable[str | None]) -> str:
    """Replace every occurrence of each known token in ``text`` with its mask."""
    for token in tokens:
        if token:
            text = text.replace(token, mask_token(token))
    return text
