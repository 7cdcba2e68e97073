"""
Test suite for API rate limiting to avoid tripping Spotify's own 429s.
"""

import pytest
from fastapi.testclient import TestClient

from moodify.api import app


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Reset rate limiter state between tests."""
    if hasattr(app.state, 'limiter'):
        app.state.limiter.reset()
    yield
    if hasattr(app.state, 'limiter'):
        app.state.limiter.reset()


@pytest.fixture
def client(resolver, monkeypatch):
    monkeypatch.setattr("moodify.api._resolver", resolver, raising=True)
    return TestClient(app)


class TestMoodRecommendationsRateLimiting:
    """/spotify/mood-recommendations allows 30 requests per minute."""

    def test_allows_requests_under_limit(self, client):
        for _ in range(5):
            response = client.get("/spotify/mood-recommendations", params={"mood": "happy"})
            assert response.status_code == 200

    def test_requests_over_limit_get_429(self, client):
        responses = [
            client.get("/spotify/mood-recommendations", params={"mood": "happy"})
            for _ in range(31)
        ]

        assert responses[0].status_code == 200
        assert responses[-1].status_code == 429
        for i, resp in enumerate(responses, start=1):
            assert resp.status_code in (200, 429), f"Request {i} returned unexpected status {resp.status_code}"

    def test_limit_does_not_consume_token_exchanges(self, client, fake_http):
        for _ in range(3):
            client.get("/spotify/mood-recommendations", params={"mood": "calm"})

        assert len(fake_http.token_calls) == 1


class TestUnlimitedEndpoints:
    def test_health_not_rate_limited(self, client):
        for _ in range(40):
            assert client.get("/health").status_code == 200

    def test_moods_not_rate_limited(self, client):
        for _ in range(40):
            assert client.get("/spotify/moods").status_code == 200
