"""Security gates: secrets scanning and credential handling."""

from package_publisher.security.secrets import (
    ScanReport,
    SecretFinding,
    SecretsScanner,
    Severity,
    format_report,
    mask_secret,
)
from package_publisher.security.tokens import (
    TOKEN_ENV_VARS,
    CredentialsLookup,
    env_credentials,
    mask_token,
    mask_tokens,
    static_credentials,
)

__all__ = [
    "SecretsScanner",
    "ScanReport",
    "SecretFinding",
    "Severity",
    "format_report",
    "mask_secret",
    "TOKEN_ENV_VARS",
    "CredentialsLookup",
    "env_credentials",
    "static_credentials",
    "mask_token",
    "mask_tokens",
]
