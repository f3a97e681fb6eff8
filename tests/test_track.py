import pytest
from fastapi.testclient import TestClient

from src.config import settings
from src.enrichment import anonymize_ip
from src.errors import StoreError
from src.main import app
from src.services.sinks import EventSink, get_event_sink
from src.services.throttle import OwnerThrottle, get_owner_throttle

from conftest import API_KEY, SESSION_OWNER

TRACK_URL = "/api/analytics/track"
ORIGIN = {"Origin": "https://www.example.com"}

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def pageview(**overrides):
    body = {"eventType": "pageview", "domain": "www.example.com", "path": "/blog"}
    body.update(overrides)
    return body


class FailingSink(EventSink):
    def append(self, event):
        raise StoreError("Failed to track event")


class CountingRedis:
    """Just enough of redis-py's pipeline for OwnerThrottle."""

    def __init__(self):
        self.counts = {}

    def pipeline(self):
        return self

    def incr(self, key):
        self._key = key

    def expire(self, key, seconds):
        pass

    def execute(self):
        self.counts[self._key] = self.counts.get(self._key, 0) + 1
        return [self.counts[self._key], True]


class TestAuthentication:
    """Session mode first, then API key, otherwise rejected"""

    def test_session_without_api_key_succeeds(self, client: TestClient, session_cookie, stored_events):
        response = client.post(TRACK_URL, json=pageview(), headers=session_cookie)
        assert response.status_code == 200
        assert response.json() == {"success": True}

        events = stored_events()
        assert len(events) == 1
        assert events[0].owner_id == SESSION_OWNER

    def test_session_succeeds_when_no_api_key_configured(self, client, session_cookie, stored_events, monkeypatch):
        monkeypatch.setattr(settings, "ANALYTICS_API_KEY", None)

        response = client.post(TRACK_URL, json=pageview(), headers=session_cookie)
        assert response.status_code == 200
        assert len(stored_events()) == 1

    def test_session_ignores_body_user_id(self, client, session_cookie, stored_events):
        response = client.post(TRACK_URL, json=pageview(userId="someone-else"), headers=session_cookie)
        assert response.status_code == 200
        assert stored_events()[0].owner_id == SESSION_OWNER

    def test_api_key_uses_default_owner(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})
        assert response.status_code == 200
        assert stored_events()[0].owner_id == "owner-default"

    def test_api_key_body_user_id_wins(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(userId="owner-42"), headers={"x-api-key": API_KEY})
        assert response.status_code == 200
        assert stored_events()[0].owner_id == "owner-42"

    def test_wrong_api_key_is_rejected(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": "nope", **ORIGIN})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized - Invalid API key"}
        assert "access-control-allow-origin" in response.headers
        assert stored_events() == []

    def test_missing_api_key_is_rejected(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(), headers=ORIGIN)
        assert response.status_code == 401
        assert stored_events() == []

    def test_api_key_rejected_when_server_has_none(self, client, stored_events, monkeypatch):
        monkeypatch.setattr(settings, "ANALYTICS_API_KEY", None)
        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})
        assert response.status_code == 401
        assert stored_events() == []

    def test_expired_session_falls_back_to_api_key_check(self, client, db_session, stored_events):
        from datetime import timedelta
        from src.api.security import issue_dashboard_session

        token = issue_dashboard_session(db_session, SESSION_OWNER, ttl=timedelta(seconds=-1))
        cookie = {"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}

        response = client.post(TRACK_URL, json=pageview(), headers=cookie)
        assert response.status_code == 401
        assert stored_events() == []

    def test_missing_owner_in_api_key_mode(self, client, stored_events, monkeypatch):
        monkeypatch.setattr(settings, "ANALYTICS_OWNER_ID", None)
        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert "User ID required" in response.json()["error"]
        assert stored_events() == []

    def test_rejected_before_validation(self, client):
        """An unauthenticated bad payload is an auth failure, not a validation one"""
        response = client.post(TRACK_URL, json={"eventType": "pageview"})
        assert response.status_code == 401


class TestValidation:
    """Required fields and payload shape"""

    def test_missing_domain(self, client, stored_events):
        body = pageview()
        del body["domain"]
        response = client.post(TRACK_URL, json=body, headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: eventType, domain, path"}
        assert stored_events() == []

    def test_empty_path(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(path=""), headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert stored_events() == []

    def test_unknown_event_type(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(eventType="scroll"), headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert stored_events() == []

    def test_bad_optional_field(self, client, stored_events):
        response = client.post(TRACK_URL, json=pageview(screenWidth="wide"), headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid fields: screenWidth"}
        assert stored_events() == []

    @pytest.mark.parametrize("field, value", [("screenWidth", 10**30), ("screenHeight", -1)])
    def test_screen_size_out_of_range(self, client, stored_events, field, value):
        response = client.post(TRACK_URL, json=pageview(**{field: value}), headers={"x-api-key": API_KEY})
        assert response.status_code == 400
        assert response.json() == {"error": f"Invalid fields: {field}"}
        assert stored_events() == []

    def test_body_not_json(self, client, stored_events):
        response = client.post(
            TRACK_URL,
            content=b"not json",
            headers={"x-api-key": API_KEY, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert stored_events() == []


class TestEnrichment:
    """Server-side enrichment of stored events"""

    def test_forwarded_for_is_anonymized(self, client, stored_events):
        response = client.post(
            TRACK_URL,
            json=pageview(),
            headers={"x-api-key": API_KEY, "x-forwarded-for": "203.0.113.7, 10.0.0.1"},
        )
        assert response.status_code == 200

        event = stored_events()[0]
        assert event.ip_token == anonymize_ip("203.0.113.7")
        assert "203.0.113.7" not in event.ip_token

    def test_real_ip_fallback(self, client, stored_events):
        client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY, "x-real-ip": "198.51.100.2"})
        assert stored_events()[0].ip_token == anonymize_ip("198.51.100.2")

    def test_unknown_address(self, client, stored_events):
        client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})
        assert stored_events()[0].ip_token == anonymize_ip("unknown")

    def test_classifies_user_agent_header(self, client, stored_events):
        client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY, "User-Agent": CHROME_WINDOWS})

        event = stored_events()[0]
        assert event.user_agent == CHROME_WINDOWS
        assert (event.device_type, event.browser, event.os) == ("desktop", "Chrome", "Windows")

    def test_body_user_agent_when_header_empty(self, client, stored_events):
        client.post(
            TRACK_URL,
            json=pageview(userAgent=CHROME_WINDOWS),
            headers={"x-api-key": API_KEY, "User-Agent": ""},
        )
        event = stored_events()[0]
        assert event.user_agent == CHROME_WINDOWS
        assert event.browser == "Chrome"

    def test_client_overrides_win(self, client, stored_events):
        client.post(
            TRACK_URL,
            json=pageview(deviceType="tablet", browser="Kiosk", os="KioskOS"),
            headers={"x-api-key": API_KEY, "User-Agent": CHROME_WINDOWS},
        )
        event = stored_events()[0]
        assert (event.device_type, event.browser, event.os) == ("tablet", "Kiosk", "KioskOS")

    def test_custom_event_fields_are_stored(self, client, stored_events):
        body = {
            "eventType": "custom",
            "domain": "photos.example.com",
            "path": "/gallery",
            "sessionId": "1700000000000-abc123xyz",
            "screenWidth": 1920,
            "screenHeight": 1080,
            "country": "CA",
            "metadata": {"eventName": "download", "photo": 12},
        }
        client.post(TRACK_URL, json=body, headers={"x-api-key": API_KEY})

        event = stored_events()[0]
        assert event.event_type == "custom"
        assert event.session_id == "1700000000000-abc123xyz"
        assert (event.screen_width, event.screen_height) == (1920, 1080)
        assert event.country == "CA"
        assert event.event_metadata == {"eventName": "download", "photo": 12}
        assert event.created_at is not None


class TestCors:
    """Cross-origin behaviour of the track route"""

    def test_preflight_without_auth(self, client):
        response = client.options(
            TRACK_URL,
            headers={
                **ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type, x-api-key",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", ORIGIN["Origin"])
        assert "POST" in response.headers["access-control-allow-methods"]
        assert response.content == b""

    def test_preflight_with_extra_requested_header_is_not_refused(self, client):
        response = client.options(
            TRACK_URL,
            headers={
                **ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type, x-api-key, x-requested-with",
            },
        )
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == ORIGIN["Origin"]
        assert "x-requested-with" in response.headers["access-control-allow-headers"]

    def test_preflight_from_disallowed_origin_still_succeeds(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CORS_ALLOW_ORIGINS", ["https://cms.example.com"])
        response = client.options(
            TRACK_URL,
            headers={**ORIGIN, "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    def test_plain_options(self, client):
        response = client.options(TRACK_URL)
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"

    def test_success_carries_cors_headers(self, client):
        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY, **ORIGIN})
        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers

    def test_client_script_is_served(self, client):
        response = client.get("/analytics.js")
        assert response.status_code == 200
        assert "CMSAnalytics" in response.text


class TestStoreAndThrottle:
    """Failures after authentication"""

    def test_store_failure_is_500_with_cors(self, client, stored_events):
        app.dependency_overrides[get_event_sink] = lambda: FailingSink()

        response = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY, **ORIGIN})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to track event"}
        assert "access-control-allow-origin" in response.headers
        assert stored_events() == []

    def test_owner_throttle(self, client, stored_events):
        throttle = OwnerThrottle(CountingRedis(), limit=1)
        app.dependency_overrides[get_owner_throttle] = lambda: throttle

        first = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})
        second = client.post(TRACK_URL, json=pageview(), headers={"x-api-key": API_KEY})

        assert first.status_code == 200
        assert second.status_code == 429
        assert len(stored_events()) == 1
