"""
Harness settings using Pydantic.

Provides environment-based configuration loading with CPHARNESS_ prefix.
"""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CPHARNESS_",
        extra="ignore",
    )

    # Remote control plane
    remote: str = "localhost"
    api_gateway_url: str | None = None
    project_region: str = "us-west1-c1"
    root_project: str | None = None

    # Operator ("team user") identity used for harness-attributed calls
    operator_email: str = "qa.team.user@example.com"
    operator_password: SecretStr | None = None

    # Password shared by generated tester users
    tester_password: SecretStr | None = None

    # Source repositories for service builds
    examples_repository: str = "https://github.com/example-org/qa-examples/tree/master"
    hosting_repository: str = "https://github.com/example-org/qa-examples/tree/hosting"

    # HTTP client settings
    http_timeout: float = 30.0

    # Retry budgets
    create_retry_attempts: int = 3
    create_retry_delay_seconds: float = 0.0
    readback_retry_attempts: int = 3
    readback_retry_delay_seconds: float = 30.0

    # Credential vault
    local_run: bool = True
    secret_backend: str = "env"
    credentials_secret_name: str = "functional_tests_credentials_json"
    credentials_secret_version: str = "latest"
    credentials_file: str | None = None
    gcp_project_id: str | None = None

    @property
    def gateway_url(self) -> str:
        """Base URL of the control-plane API gateway."""
        if self.api_gateway_url:
            return self.api_gateway_url.rstrip("/")
        return f"https://apigateway.{self.remote}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
