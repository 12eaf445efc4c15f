"""
Pytest configuration and shared fixtures for marketplace tests.

This module provides the test client, logged-in sessions for the demo
accounts and factories for applications and reviews.
"""

import logging
from typing import Callable, Dict

import pytest
from fastapi.testclient import TestClient

from src.marketplace_server import routes
from src.marketplace_server.main import app
from src.marketplace_server.storage import MarketplaceStore
from src.shared.credentials import CredentialIssuer


DEMO_PASSWORDS = {
    "alice": "password123",
    "bob": "secret456",
    "carol": "mypass789"
}


@pytest.fixture(autouse=True)
def disable_logging():
    """Disable logging during tests to reduce noise."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


@pytest.fixture(autouse=True)
def reset_stores():
    """Start every test with an empty marketplace and no sessions."""
    routes.marketplace_store.reset()
    routes.session_store.reset()
    yield
    routes.marketplace_store.reset()
    routes.session_store.reset()


@pytest.fixture
def client() -> TestClient:
    """Test client for the marketplace server."""
    return TestClient(app)


@pytest.fixture
def login(client) -> Callable[[str], Dict[str, str]]:
    """Log a demo user in and return Authorization headers for the session."""
    def _login(username: str) -> Dict[str, str]:
        response = client.post("/login", data={
            "username": username,
            "password": DEMO_PASSWORDS[username]
        })
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login


@pytest.fixture
def alice(login) -> Dict[str, str]:
    return login("alice")


@pytest.fixture
def bob(login) -> Dict[str, str]:
    return login("bob")


@pytest.fixture
def carol(login) -> Dict[str, str]:
    return login("carol")


@pytest.fixture
def app_payload() -> Dict[str, str]:
    """Valid application registration payload."""
    return {
        "name": "Weather Widget",
        "description": "Shows the forecast for your calendar events",
        "homepage_url": "https://weather.example.com/home",
        "callback_url": "https://weather.example.com/oauth/callback",
        "logo_url": "https://weather.example.com/logo.png"
    }


@pytest.fixture
def create_app(client, app_payload) -> Callable[..., Dict]:
    """Register an application for the given session, optionally published."""
    def _create(headers: Dict[str, str], publish: bool = False, **overrides) -> Dict:
        response = client.post("/api/oauth-apps/", json={**app_payload, **overrides}, headers=headers)
        assert response.status_code == 201, response.text
        created = response.json()
        if publish:
            response = client.post(f"/api/oauth-apps/{created['id']}/publish", headers=headers)
            assert response.status_code == 200, response.text
            created = response.json()
        return created
    return _create


@pytest.fixture
def store() -> MarketplaceStore:
    """A fresh store independent of the server's."""
    return MarketplaceStore()


@pytest.fixture
def issuer() -> CredentialIssuer:
    return CredentialIssuer()


@pytest.fixture
def app_data() -> Dict[str, str]:
    """Application fields in the shape the store receives them."""
    return {
        "name": "Calendar Sync",
        "description": "Keeps two calendars in sync",
        "homepage_url": "https://calendar.example.com/",
        "callback_url": "https://calendar.example.com/callback",
        "logo_url": None
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def pytest_collection_modifyitems(config, items):
    """Mark endpoint tests as integration tests."""
    for item in items:
        if "endpoints" in item.nodeid or "edge_cases" in item.nodeid:
            item.add_marker(pytest.mark.integration)


def assert_error_body(response_data: dict, error_code: str):
    """Assert a {error, error_description} body with the given code."""
    assert isinstance(response_data, dict)
    assert response_data["error"] == error_code
    assert isinstance(response_data["error_description"], str)
    assert len(response_data["error_description"]) > 0


pytest.assert_error_body = assert_error_body
