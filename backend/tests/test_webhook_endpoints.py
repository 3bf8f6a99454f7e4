"""
Dial-by-Name Directory - API Endpoint Tests

Tests for HTTP endpoints using FastAPI TestClient.
These tests verify:
- The /directory webhook (JSON, form and query input)
- Callback URLs and XML responses
- Error handling
- Health endpoints

Run with: pytest tests/test_webhook_endpoints.py -v
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeUserSource
from dialbyname.core.exceptions import SessionStoreError


class BrokenSessionStore:
    """Session store whose backend is down."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def get(self, call_id):
        raise SessionStoreError("Session read failed")

    async def set(self, call_id, payload):
        raise SessionStoreError("Session write failed")

    async def clear(self, call_id):
        raise SessionStoreError("Session delete failed")


class ExplodingSource:
    """Directory source with a bug."""

    async def fetch_users(self, domain, site=None, department=None):
        raise RuntimeError("unexpected payload shape")

    async def is_auto_attendant(self, domain, user):
        return False


class TestDirectoryWebhook:
    """Tests for the web responder endpoint."""

    def test_json_first_event_prompts(self, client: TestClient):
        """An empty first event returns the name prompt as XML."""
        response = client.post(
            "/directory",
            json={"ToDomain": "example.com", "OrigCallID": "c1", "Digits": ""},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        body = response.text
        assert body.startswith('<Response><Gather numDigits="4" timeout="10" action="http://testserver/directory">')
        assert '<Say voice="female" language="en-US">Welcome to the dial by name directory.' in body
        assert body.endswith("</Gather></Response>")

    def test_form_encoded_call_transfers(self, client: TestClient):
        """Form fields work and a unique match forwards the call."""
        client.post("/directory", data={"ToDomain": "example.com", "OrigCallID": "c2"})
        response = client.post(
            "/directory",
            data={"ToDomain": "example.com", "OrigCallID": "c2", "Digits": "2637"},
        )

        assert response.status_code == 200
        assert response.text == (
            '<Response><Say voice="female" language="en-US">'
            "Transferring to Erin Ames. Please hold.</Say>"
            '<Forward ByCaller="yes">1005@example.com</Forward></Response>'
        )

    def test_get_with_query_parameters(self, client: TestClient):
        """GET requests carry everything in the query string."""
        response = client.get("/directory", params={"domain": "example.com", "call_id": "c3", "digits": "7648"})

        assert response.status_code == 200
        assert '<Gather input="dtmf" numDigits="1"' in response.text
        assert "1, Ann smith. 2, Bob Smith." in response.text

    def test_query_overrides_body(self, client: TestClient):
        response = client.post(
            "/directory?ToDomain=example.com",
            json={"ToDomain": "", "OrigCallID": "c4"},
        )
        assert "Welcome to the dial by name directory." in response.text

    def test_snake_case_and_platform_names_equivalent(self, client: TestClient):
        a = client.post("/directory", json={"domain": "example.com", "call_id": "c5", "digits": "7648"})
        b = client.post("/directory", json={"ToDomain": "example.com", "TermCallID": "c6", "Digits": "7648"})
        assert a.text == b.text

    def test_callback_preserves_options(self, client: TestClient):
        """Non-default options ride along in the callback URL."""
        response = client.post(
            "/directory?site=NYC,LA&maxresults=5&mode=firstname&bycaller=no",
            json={"ToDomain": "example.com", "OrigCallID": "c7"},
        )

        body = response.text
        assert 'action="http://testserver/directory?site=NYC%2CLA&amp;mode=firstname&amp;maxresults=5"' in body
        assert "bycaller" not in body

    def test_missing_domain_hangs_up(self, client: TestClient, fake_source: FakeUserSource):
        response = client.post("/directory", json={"OrigCallID": "c8", "Digits": "7648"})

        assert response.status_code == 200
        assert response.text == (
            '<Response><Say voice="female" language="en-US">'
            "System configuration error. Domain is required.</Say><Hangup/></Response>"
        )
        assert fake_source.calls == []

    def test_invalid_json_rejected(self, client: TestClient):
        response = client.post(
            "/directory",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400

    def test_non_object_json_rejected(self, client: TestClient):
        response = client.post("/directory", json=["ToDomain", "example.com"])
        assert response.status_code == 400

    def test_numeric_fields_accepted(self, client: TestClient):
        """JSON numbers are read as their string form."""
        response = client.post(
            "/directory",
            json={"ToDomain": "example.com", "OrigCallID": 12345, "Digits": 2637},
        )
        assert "1005@example.com" in response.text

    def test_directory_outage_apologizes(self, test_settings):
        from dialbyname.core.types import Failure
        from dialbyname.main import create_app

        source = FakeUserSource(by_query={(None, None): Failure("timeout")})
        with TestClient(create_app(settings=test_settings, source=source)) as client:
            response = client.post("/directory", json={"ToDomain": "example.com", "Digits": "7648"})

        assert "the directory is temporarily unavailable" in response.text
        assert response.text.endswith("<Hangup/></Response>")

    def test_internal_error_hangs_up_politely(self, test_settings, fake_source):
        from dialbyname.main import create_app

        app = create_app(settings=test_settings, source=fake_source, session_store=BrokenSessionStore())
        with TestClient(app) as client:
            response = client.post("/directory", json={"ToDomain": "example.com", "Digits": ""})

        assert response.status_code == 200
        assert "An error occurred. Please try again later." in response.text
        assert response.text.endswith("<Hangup/></Response>")

    def test_unexpected_error_hangs_up_politely(self, test_settings):
        """Errors outside the application hierarchy still get a spoken hangup."""
        from dialbyname.main import create_app

        with TestClient(create_app(settings=test_settings, source=ExplodingSource())) as client:
            response = client.post("/directory", json={"ToDomain": "example.com", "Digits": "7648"})

        assert response.status_code == 200
        assert response.text == (
            '<Response><Say voice="female" language="en-US">'
            "An error occurred. Please try again later.</Say><Hangup/></Response>"
        )

    def test_unusable_cache_dir_still_answers(self, tmp_path, test_settings, fake_source):
        """A broken cache directory falls back to a fresh fetch."""
        from dialbyname.main import create_app

        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")
        settings = test_settings.model_copy(update={"cache_dir": str(blocker)})

        with TestClient(create_app(settings=settings, source=fake_source)) as client:
            response = client.post("/directory", json={"ToDomain": "example.com", "Digits": "7648"})

        assert response.status_code == 200
        assert "1, Ann smith. 2, Bob Smith." in response.text


class TestHealthEndpoints:
    """Tests for the system endpoints."""

    def test_health(self, client: TestClient):
        response = client.get("/api/system/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["checks"]) == {"directory_api", "cache", "sessions"}
        assert data["environment"] == "testing"

    def test_ready_and_live(self, client: TestClient):
        assert client.get("/api/system/ready").json()["ready"] is True
        assert client.get("/api/system/live").json()["alive"] is True

    def test_cache_status_counts_entries(self, client: TestClient):
        """A search fills the cache and the status endpoint reports it."""
        client.post("/directory", json={"ToDomain": "example.com", "OrigCallID": "c9", "Digits": "7648"})

        data = client.get("/api/system/cache_status").json()
        assert data["enabled"] is True
        assert data["ttl_seconds"] == 300
        assert data["entries"] == 1
        assert data["valid"] == 1
        assert data["users"] == 5

    def test_cache_disabled(self, test_settings, fake_source):
        from dialbyname.main import create_app

        settings = test_settings.model_copy(update={"cache_enabled": False})
        with TestClient(create_app(settings=settings, source=fake_source)) as client:
            assert client.get("/api/system/cache_status").json()["enabled"] is False
            assert client.get("/api/system/health").json()["checks"]["cache"]["status"] == "disabled"

    def test_root(self, client: TestClient):
        data = client.get("/").json()
        assert data["service"] == "Dial-by-Name Directory"
        assert data["status"] == "operational"
