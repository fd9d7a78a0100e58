"""Shared pytest fixtures for Rentally tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from fakes import FakeDatabase, FakeInvoicingClient, FakeMailer  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Reset module-level caches so tests do not leak into each other.

    Settings, the OIDC JWKS cache and the tasks client singleton all live
    at module level and persist between tests.
    """
    import rentally.api.deps as deps_module
    from rentally.api.auth import reset_jwks_cache
    from rentally.infra.settings import set_settings

    set_settings(None)
    reset_jwks_cache()
    deps_module._tasks_client = None
    yield
    set_settings(None)
    reset_jwks_cache()
    deps_module._tasks_client = None


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def settings():
    from rentally.infra.settings import Settings

    return Settings(ops_notification_email="ops@example.com")


@pytest.fixture
def invoicing() -> FakeInvoicingClient:
    return FakeInvoicingClient()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()
