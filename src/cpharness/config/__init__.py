"""
cpharness configuration.

- Pydantic-based settings (environment variables, .env files)
- Credential vault resolution (env, file, GCP Secret Manager)
"""

from cpharness.config.secrets import (
    BaseSecretBackend,
    EnvSecretBackend,
    FileSecretBackend,
    GCPSecretBackend,
    SecretBackend,
    apply_credentials,
    load_credentials,
    resolve_settings,
)
from cpharness.config.settings import Settings, get_settings

__all__ = [
    "BaseSecretBackend",
    "EnvSecretBackend",
    "FileSecretBackend",
    "GCPSecretBackend",
    "SecretBackend",
    "Settings",
    "apply_credentials",
    "get_settings",
    "load_credentials",
    "resolve_settings",
]
