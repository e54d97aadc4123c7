"""Root test configuration."""

import json
import logging
from unittest.mock import AsyncMock

import pytest
import respx
import structlog
from httpx import Response

from cpharness.auth import AuthTokenCache
from cpharness.clients import ControlPlaneTransport

BASE_URL = "https://apigateway.test"
OPERATOR_EMAIL = "qa.team.user@example.com"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def bearer(email: str = OPERATOR_EMAIL) -> str:
    return f"Bearer token-{email}"


def _login(request):
    body = json.loads(request.content)
    return Response(200, json={"token": f"token-{body['email']}"})


@pytest.fixture
def api():
    """respx router for the gateway with a working /login route named "login"."""
    with respx.mock(base_url=BASE_URL, assert_all_called=False) as router:
        router.post("/login", name="login").mock(side_effect=_login)
        yield router


@pytest.fixture
def transport():
    return ControlPlaneTransport(BASE_URL)


@pytest.fixture
def tokens(transport):
    return AuthTokenCache(
        transport,
        operator_email=OPERATOR_EMAIL,
        operator_password="operator-pw",
        default_password="tester-pw",
    )


@pytest.fixture
def sleep():
    return AsyncMock()
