"""Pytest configuration and fixtures."""

import os

import pytest

# Some modules are imported at collection time, before session fixtures run
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("APP_ENV", "test")

from app.core.config import get_settings  # noqa: E402
from app.core.rate_limiter import get_inbound_rate_limiter  # noqa: E402
from app.core.security_context import (  # noqa: E402
    build_admin_context,
    build_contact_context,
    build_system_context,
)
from app.db import supabase_client  # noqa: E402
from app.db.tool_access_keys import hash_api_key  # noqa: E402
from tests.fakes.fake_supabase import FakeSupabase  # noqa: E402
from tests.fixtures_tenants import COMPANY_A, HOMEOWNER_ID, seed_tenants  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["APP_ENV"] = "test"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings and rate limit buckets between tests."""
    get_settings.cache_clear()
    get_inbound_rate_limiter.cache_clear()
    yield
    get_settings.cache_clear()
    get_inbound_rate_limiter.cache_clear()


@pytest.fixture
def fake_db(monkeypatch):
    """Route every app.db query to an in-memory database."""
    db = FakeSupabase()
    supabase_client.get_supabase.cache_clear()
    monkeypatch.setattr(supabase_client, "create_client", lambda url, key: db)
    yield db
    supabase_client.get_supabase.cache_clear()


@pytest.fixture
def tenants(fake_db):
    """Two companies with projects and contacts (see tests/fixtures_tenants.py)."""
    seed_tenants(fake_db)
    return fake_db


@pytest.fixture
def admin_context():
    return build_admin_context(COMPANY_A, "user-1")


@pytest.fixture
def system_context():
    return build_system_context(COMPANY_A)


@pytest.fixture
def homeowner_context():
    return build_contact_context(COMPANY_A, HOMEOWNER_ID)


@pytest.fixture
def api_key(tenants):
    """Raw X-API-Key for company A with every tool enabled."""
    raw_key = "pat_company_a_test_key"
    tenants.seed("tool_access_keys", company_id=COMPANY_A, name="approval-ui", key_hash=hash_api_key(raw_key))
    return raw_key
