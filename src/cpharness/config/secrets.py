"""
Credential vault access.

Resolves a named secret (name + version) to a JSON credential blob at process
startup and overlays it onto the settings. The blob is opaque to the rest of
the harness apart from the keys `apply_credentials` knows about.

Backends:
- Environment variables (default)
- Credentials file (YAML)
- GCP Secret Manager (requires google-cloud-secret-manager, loaded on demand)
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import SecretStr

from cpharness.config.settings import Settings
from cpharness.core.errors import ConfigurationError

logger = structlog.get_logger()


class SecretBackend(StrEnum):
    """Supported secret backends."""

    ENV = "env"
    FILE = "file"
    GCP = "gcp"


def _sanitize_name(name: str) -> str:
    """Only log the first characters of a secret name."""
    if len(name) <= 3:
        return "***"
    return f"{name[:2]}***"


class BaseSecretBackend(ABC):
    """Base class for secret backends."""

    @abstractmethod
    def get_secret(self, name: str, version: str = "latest") -> str | None:
        """Get a secret payload by name and version."""


class EnvSecretBackend(BaseSecretBackend):
    """Environment variable secret backend; versions are ignored."""

    def __init__(self, prefix: str = "CPHARNESS_SECRET_"):
        self.prefix = prefix

    def get_secret(self, name: str, version: str = "latest") -> str | None:
        return os.environ.get(self._name_to_env(name))

    def _name_to_env(self, name: str) -> str:
        normalized = name.replace("/", "_").replace("-", "_").upper()
        return f"{self.prefix}{normalized}"


class FileSecretBackend(BaseSecretBackend):
    """YAML credentials file: `{name: {version: payload}}` or `{name: payload}`."""

    def __init__(self, credentials_file: Path):
        self.credentials_file = credentials_file
        self._cache: dict[str, Any] | None = None

    def _load_credentials(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.credentials_file.exists():
            self._cache = {}
            return self._cache

        with open(self.credentials_file) as f:
            self._cache = yaml.safe_load(f) or {}
        return self._cache

    def get_secret(self, name: str, version: str = "latest") -> str | None:
        entry = self._load_credentials().get(name)
        if entry is None:
            return None
        if isinstance(entry, dict) and version in entry:
            entry = entry[version]
        if isinstance(entry, (dict, list)):
            return json.dumps(entry)
        return str(entry)


class GCPSecretBackend(BaseSecretBackend):
    """Google Cloud Secret Manager backend."""

    def __init__(self, project_id: str, client: Any | None = None):
        self.project_id = project_id
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        from google.cloud import secretmanager

        self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_secret(self, name: str, version: str = "latest") -> str | None:
        client = self._get_client()
        secret_path = f"projects/{self.project_id}/secrets/{name}/versions/{version}"
        response = client.access_secret_version(request={"name": secret_path})
        return response.payload.data.decode("UTF-8")


def build_backend(settings: Settings) -> BaseSecretBackend:
    """Instantiate the configured backend."""
    try:
        backend = SecretBackend(settings.secret_backend)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown secret backend {settings.secret_backend!r}",
            details={"choices": [b.value for b in SecretBackend]},
        ) from exc

    if backend == SecretBackend.FILE:
        path = settings.credentials_file or str(Path.home() / ".cpharness" / "credentials.yaml")
        return FileSecretBackend(Path(path))
    if backend == SecretBackend.GCP:
        if not settings.gcp_project_id:
            raise ConfigurationError("gcp_project_id is required for the gcp secret backend")
        return GCPSecretBackend(settings.gcp_project_id)
    return EnvSecretBackend()


def load_credentials(
    settings: Settings,
    backend: BaseSecretBackend | None = None,
) -> dict[str, Any]:
    """Fetch and decode the credential blob named in the settings."""
    backend = backend or build_backend(settings)
    name = settings.credentials_secret_name
    payload = backend.get_secret(name, settings.credentials_secret_version)
    if payload is None:
        logger.warning("credentials_not_found", secret=_sanitize_name(name))
        return {}
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "Credential secret is not valid JSON",
            details={"secret": _sanitize_name(name)},
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Credential secret must decode to an object")
    logger.info("credentials_loaded", secret=_sanitize_name(name), keys=sorted(data))
    return data


def apply_credentials(settings: Settings, credentials: dict[str, Any]) -> Settings:
    """Return a copy of the settings with vault credentials overlaid.

    Understood keys: `operator_email`, `operator_password`, `tester_password`,
    and the nested form `{"teamuser": {"email", "pw"}, "tester": {"pw"}}`.
    """
    update: dict[str, Any] = {}

    team = credentials.get("teamuser") or {}
    tester = credentials.get("tester") or {}
    operator_email = credentials.get("operator_email") or team.get("email")
    operator_password = credentials.get("operator_password") or team.get("pw")
    tester_password = credentials.get("tester_password") or tester.get("pw")

    if operator_email:
        update["operator_email"] = operator_email
    if operator_password:
        update["operator_password"] = SecretStr(str(operator_password))
    if tester_password:
        update["tester_password"] = SecretStr(str(tester_password))

    return settings.model_copy(update=update)


def resolve_settings(settings: Settings, backend: BaseSecretBackend | None = None) -> Settings:
    """Overlay vault credentials on local runs; CI injects them via env."""
    if not settings.local_run:
        return settings
    return apply_credentials(settings, load_credentials(settings, backend))
