"""Tests for config/settings.py and config/secrets.py."""

import json
from unittest.mock import MagicMock

import pytest

from cpharness.config import (
    EnvSecretBackend,
    FileSecretBackend,
    GCPSecretBackend,
    Settings,
    apply_credentials,
    load_credentials,
    resolve_settings,
)
from cpharness.config.secrets import _sanitize_name, build_backend
from cpharness.core.errors import ConfigurationError


class StaticBackend(EnvSecretBackend):
    def __init__(self, payload):
        super().__init__()
        self.payload = payload
        self.requests = []

    def get_secret(self, name, version="latest"):
        self.requests.append((name, version))
        return self.payload


class TestSettings:
    """Tests for Settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CPHARNESS_REMOTE", "acme.st")
        monkeypatch.setenv("CPHARNESS_CREATE_RETRY_ATTEMPTS", "5")

        settings = Settings(_env_file=None)

        assert settings.remote == "acme.st"
        assert settings.create_retry_attempts == 5
        assert settings.gateway_url == "https://apigateway.acme.st"

    def test_gateway_override(self):
        settings = Settings(_env_file=None, api_gateway_url="http://localhost:8080/")
        assert settings.gateway_url == "http://localhost:8080"

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.readback_retry_attempts == 3
        assert settings.readback_retry_delay_seconds == 30.0
        assert settings.project_region == "us-west1-c1"


class TestBackends:
    """Tests for secret backends."""

    def test_env_backend_name_mapping(self, monkeypatch):
        monkeypatch.setenv("CPHARNESS_SECRET_FUNCTIONAL_TESTS_CREDENTIALS_JSON", "{}")
        assert EnvSecretBackend().get_secret("functional-tests/credentials-json") == "{}"
        assert EnvSecretBackend().get_secret("other") is None

    def test_file_backend_versions(self, tmp_path):
        path = tmp_path / "credentials.yaml"
        path.write_text(
            "creds:\n"
            "  latest:\n"
            "    teamuser:\n"
            "      email: ops@test.com\n"
            "plain: hello\n"
        )
        backend = FileSecretBackend(path)

        assert json.loads(backend.get_secret("creds")) == {"teamuser": {"email": "ops@test.com"}}
        assert backend.get_secret("plain") == "hello"
        assert backend.get_secret("missing") is None

    def test_file_backend_missing_file(self, tmp_path):
        assert FileSecretBackend(tmp_path / "nope.yaml").get_secret("creds") is None

    def test_gcp_backend_uses_version_path(self):
        client = MagicMock()
        client.access_secret_version.return_value.payload.data = b'{"a": 1}'
        backend = GCPSecretBackend("proj", client=client)

        assert backend.get_secret("creds", "7") == '{"a": 1}'
        client.access_secret_version.assert_called_once_with(
            request={"name": "projects/proj/secrets/creds/versions/7"}
        )

    def test_build_backend(self, tmp_path):
        assert isinstance(build_backend(Settings(_env_file=None)), EnvSecretBackend)
        file_settings = Settings(_env_file=None, secret_backend="file", credentials_file=str(tmp_path / "c.yaml"))
        assert isinstance(build_backend(file_settings), FileSecretBackend)

    def test_build_backend_errors(self):
        with pytest.raises(ConfigurationError):
            build_backend(Settings(_env_file=None, secret_backend="vault"))
        with pytest.raises(ConfigurationError):
            build_backend(Settings(_env_file=None, secret_backend="gcp"))

    def test_sanitize_name(self):
        assert _sanitize_name("abc") == "***"
        assert _sanitize_name("functional") == "fu***"


class TestCredentials:
    """Tests for load/apply/resolve."""

    def test_load_uses_configured_name_and_version(self):
        backend = StaticBackend('{"tester_password": "pw"}')
        settings = Settings(_env_file=None, credentials_secret_version="3")

        assert load_credentials(settings, backend) == {"tester_password": "pw"}
        assert backend.requests == [("functional_tests_credentials_json", "3")]

    def test_load_missing_secret(self):
        assert load_credentials(Settings(_env_file=None), StaticBackend(None)) == {}

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
    def test_load_rejects_bad_payload(self, payload):
        with pytest.raises(ConfigurationError):
            load_credentials(Settings(_env_file=None), StaticBackend(payload))

    def test_apply_nested_form(self):
        settings = apply_credentials(
            Settings(_env_file=None),
            {"teamuser": {"email": "ops@test.com", "pw": "op"}, "tester": {"pw": "tp"}},
        )

        assert settings.operator_email == "ops@test.com"
        assert settings.operator_password.get_secret_value() == "op"
        assert settings.tester_password.get_secret_value() == "tp"

    def test_apply_leaves_unset_fields(self):
        base = Settings(_env_file=None, operator_email="keep@test.com")
        assert apply_credentials(base, {}).operator_email == "keep@test.com"

    def test_resolve_skipped_outside_local_runs(self):
        backend = StaticBackend('{"tester_password": "pw"}')
        settings = Settings(_env_file=None, local_run=False)

        assert resolve_settings(settings, backend) is settings
        assert backend.requests == []

    def test_resolve_local_run(self):
        settings = resolve_settings(Settings(_env_file=None), StaticBackend('{"operator_password": "op"}'))
        assert settings.operator_password.get_secret_value() == "op"
