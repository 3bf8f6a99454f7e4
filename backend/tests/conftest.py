"""
Dial-by-Name Directory - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import os
import sys
from typing import Dict, Generator, List, Optional, Tuple, Union

import pytest
from fastapi.testclient import TestClient

# Ensure backend package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dialbyname.config import Settings
from dialbyname.core.cache import ResultCache
from dialbyname.core.types import Failure, FetchResult, Ok, RawUser
from dialbyname.telephony.flow import CallFlowController
from dialbyname.telephony.models import DirectoryEvent, DirectoryOptions
from dialbyname.telephony.session_store import InMemoryCallSessionStore


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Sample Data Helpers
# =============================================================================

def api_user(
    extension: str,
    first: str,
    last: str,
    enabled: str = "yes",
    service_code: str = "",
    **extra,
) -> dict:
    """A user record shaped like the directory API returns it."""
    record = {
        "user": extension,
        "name-first-name": first,
        "name-last-name": last,
        "directory-annouce-in-dial-by-name-enabled": enabled,
        "service-code": service_code,
    }
    record.update(extra)
    return record


class FakeUserSource:
    """
    In-memory directory source.

    Results are keyed by (site, department); a Failure value makes that
    sub-query fail. Every fetch is recorded in `calls`.
    """

    def __init__(
        self,
        users: Optional[List[dict]] = None,
        by_query: Optional[Dict[Tuple[Optional[str], Optional[str]], Union[List[dict], Failure]]] = None,
        auto_attendants: Optional[List[str]] = None,
    ):
        self._by_query = dict(by_query or {})
        if users is not None:
            self._by_query.setdefault((None, None), users)
        self._auto_attendants = set(auto_attendants or [])
        self.calls: List[Tuple[str, Optional[str], Optional[str]]] = []
        self.aa_checks: List[Tuple[str, str]] = []

    async def fetch_users(
        self,
        domain: str,
        site: Optional[str] = None,
        department: Optional[str] = None,
    ) -> FetchResult:
        self.calls.append((domain, site, department))
        result = self._by_query.get((site, department), [])
        if isinstance(result, Failure):
            return result
        return Ok([RawUser.model_validate(record) for record in result])

    async def is_auto_attendant(self, domain: str, user: str) -> bool:
        self.aa_checks.append((domain, user))
        return user in self._auto_attendants


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """
    Create test settings with safe defaults.

    Cache lives in a per-test directory and never purges on its own.
    """
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",  # Reduce noise in tests
        ns_api_host="pbx.example.com",
        ns_api_key="test-key",
        cache_enabled=True,
        cache_dir=str(tmp_path / "cache"),
        cache_ttl_seconds=300,
        cache_purge_chance=0,
        session_backend="memory",
        operator_extension="",
        exit_url="",
        exit_action="forward",
    )


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def sample_users() -> List[dict]:
    """A small directory with a mix of eligible and ineligible records."""
    return [
        api_user("1001", "Bob", "Smith"),
        api_user("1002", "Ann", "smith"),
        api_user("1003", "Carol", "Jones"),
        api_user("1004", "David", "Brown"),
        api_user("1005", "Erin", "Ames"),
        api_user("1006", "Hidden", "Person", enabled="no"),
        api_user("aa100", "Main", "Menu", service_code="system-aa"),
    ]


@pytest.fixture
def fake_source(sample_users) -> FakeUserSource:
    """Directory source backed by sample_users."""
    return FakeUserSource(users=sample_users, auto_attendants=["aa100"])


@pytest.fixture
def result_cache(test_settings: Settings) -> ResultCache:
    """Cache in the per-test directory."""
    return ResultCache(
        test_settings.cache_dir,
        ttl_seconds=test_settings.cache_ttl_seconds,
        purge_chance=0,
    )


# =============================================================================
# Call Flow Fixtures
# =============================================================================

@pytest.fixture
def session_store() -> InMemoryCallSessionStore:
    """Create a fresh in-memory session store."""
    return InMemoryCallSessionStore(max_sessions=100, session_ttl_seconds=3600)


@pytest.fixture
def controller(
    test_settings: Settings,
    fake_source: FakeUserSource,
    session_store: InMemoryCallSessionStore,
) -> CallFlowController:
    """Call flow without a result cache, so every search hits the source."""
    return CallFlowController(
        settings=test_settings,
        source=fake_source,
        store=session_store,
        cache=None,
    )


@pytest.fixture
def make_event():
    """Build a DirectoryEvent with sensible call metadata."""
    def _make(digits: str = "", call_id: str = "call-1", **fields) -> DirectoryEvent:
        data = {
            "ToDomain": "example.com",
            "OrigCallID": call_id,
            "NmsAni": "1234",
            "NmsDnis": "5000",
            "Digits": digits,
        }
        data.update(fields)
        return DirectoryEvent.model_validate(data)
    return _make


@pytest.fixture
def make_options(test_settings: Settings):
    """Resolve options for an event against the test settings."""
    def _make(event: DirectoryEvent, settings: Optional[Settings] = None) -> DirectoryOptions:
        return DirectoryOptions.resolve(
            event, settings or test_settings, "https://dbn.example.com/directory"
        )
    return _make


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def app(test_settings: Settings, fake_source: FakeUserSource):
    """Create a FastAPI app wired to the fake directory source."""
    # Import here to avoid circular imports
    from dialbyname.main import create_app

    return create_app(settings=test_settings, source=fake_source)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as c:
        yield c
