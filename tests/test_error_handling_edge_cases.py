"""
Error handling and edge case tests for the marketplace server.

Tests malformed requests, injection attempts, secret leakage and the
shape of error responses across endpoints.
"""

import pytest

from src.marketplace_server import routes


API = "/api/oauth-apps"


class TestMalformedRequestHandling:
    """Requests the server must reject without side effects."""

    @pytest.mark.parametrize("body", [
        {},
        {"name": "No URLs", "description": "Missing both URLs"},
        {"name": "x" * 101, "description": "d", "homepage_url": "https://a.example", "callback_url": "https://a.example/cb"}
    ])
    def test_malformed_app_registration(self, client, alice, body):
        response = client.post(f"{API}/", json=body, headers=alice)

        assert response.status_code == 422
        assert client.get("/health").json()["storage"]["applications"] == 0

    @pytest.mark.parametrize("body", [
        {},
        {"rating": 4, "review_text": "x" * 5001}
    ])
    def test_malformed_review(self, client, alice, bob, create_app, body):
        app = create_app(alice, publish=True)

        response = client.post(f"{API}/{app['id']}/reviews", json=body, headers=bob)

        assert response.status_code == 422
        assert client.get(f"{API}/{app['id']}/reviews").json() == []

    def test_non_integer_ids(self, client, alice):
        assert client.get(f"{API}/abc", headers=alice).status_code == 422
        assert client.put(f"{API}/reviews/abc", json={"rating": 3}, headers=alice).status_code == 422

    def test_login_requires_form_fields(self, client):
        assert client.post("/login", data={"username": "alice"}).status_code == 422
        assert client.post("/login", json={"username": "alice", "password": "password123"}).status_code == 422

    def test_http_method_validation(self, client, alice):
        assert client.get(f"{API}/1/credentials", headers=alice).status_code == 405
        assert client.patch(f"{API}/1", json={}, headers=alice).status_code == 405

    def test_missing_records(self, client, alice):
        for method, path, code in [
            ("delete", f"{API}/pricing-plans/77", "plan_not_found"),
            ("delete", f"{API}/reviews/77", "review_not_found"),
            ("post", f"{API}/77/publish", "app_not_found"),
        ]:
            response = getattr(client, method)(path, headers=alice)
            assert response.status_code == 404
            pytest.assert_error_body(response.json(), code)


class TestSecretHandling:
    """The client secret is only ever returned by the credentials endpoint."""

    def test_secret_not_exposed_after_issue(self, client, alice, create_app):
        app = create_app(alice, publish=True)
        secret = client.post(f"{API}/{app['id']}/credentials", headers=alice).json()["client_secret"]

        for path in [f"{API}/", f"{API}/{app['id']}", f"{API}/marketplace/list",
                     f"{API}/marketplace/recent", f"{API}/marketplace/top-rated"]:
            response = client.get(path, headers=alice)
            assert response.status_code == 200
            assert secret not in response.text

    def test_credentials_endpoint_not_cacheable(self, client, alice, create_app):
        app = create_app(alice)

        response = client.post(f"{API}/{app['id']}/credentials", headers=alice)

        assert "no-store" in response.headers["cache-control"]
        assert response.headers["pragma"] == "no-cache"


class TestSecurityVulnerabilities:
    """Injection-style input is stored inertly."""

    @pytest.mark.parametrize("text", [
        "<script>alert('xss')</script>",
        "'; DROP TABLE reviews; --",
        "\x00\x01hidden"
    ])
    def test_review_text_stored_inertly(self, client, alice, bob, create_app, text):
        app = create_app(alice, publish=True)

        response = client.post(f"{API}/{app['id']}/reviews", json={"rating": 3, "review_text": text}, headers=bob)

        assert response.status_code == 201
        stored = response.json()["review_text"]
        assert "\x00" not in stored
        assert response.headers["content-type"].startswith("application/json")

    def test_search_with_special_characters(self, client, alice, create_app):
        create_app(alice, publish=True, name="Alpha")

        for term in ["%", "' OR 1=1 --", ".*", "<b>"]:
            response = client.get(f"{API}/marketplace/list", params={"search": term})
            assert response.status_code == 200
            assert response.json() == []

    def test_javascript_urls_rejected(self, client, alice, app_payload):
        response = client.post(f"{API}/", json={**app_payload, "callback_url": "javascript:alert(1)"}, headers=alice)
        assert response.status_code == 422

    def test_invalid_session_does_not_leak_user(self, client, alice):
        response = client.get("/me", headers={"Authorization": "Bearer " + "x" * 43})

        assert response.status_code == 401
        assert "alice" not in response.text


class TestErrorResponseFormat:
    """Every domain error uses the {error, error_description} body."""

    def test_domain_error_format(self, client, alice, bob, create_app):
        app = create_app(alice, publish=True)
        client.post(f"{API}/{app['id']}/reviews", json={"rating": 4}, headers=bob)

        cases = [
            (client.post(f"{API}/{app['id']}/reviews", json={"rating": 4}, headers=bob), 409, "duplicate_review"),
            (client.post(f"{API}/{app['id']}/reviews", json={"rating": 7}, headers=alice), 400, "invalid_rating"),
            (client.delete(f"{API}/{app['id']}", headers=bob), 403, "forbidden"),
            (client.get(f"{API}/4040"), 404, "app_not_found"),
        ]

        for response, status, code in cases:
            assert response.status_code == status
            pytest.assert_error_body(response.json(), code)

    def test_session_error_format(self, client):
        response = client.get("/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401
        pytest.assert_error_body(response.json()["detail"], "invalid_authorization_format")

    def test_duplicate_check_wins_over_rating_check(self, client, alice, bob, create_app):
        app = create_app(alice, publish=True)
        client.post(f"{API}/{app['id']}/reviews", json={"rating": 4}, headers=bob)

        response = client.post(f"{API}/{app['id']}/reviews", json={"rating": 0}, headers=bob)

        assert response.status_code == 409

    def test_concurrent_rotation_conflict_maps_to_409(self, client, alice, create_app, monkeypatch):
        app = create_app(alice)
        client.post(f"{API}/{app['id']}/credentials", headers=alice)
        real_get_credentials = routes.marketplace_store.get_credentials

        # Another request rotates between this request's read and its write
        def get_then_rotate(app_id):
            current = real_get_credentials(app_id)
            rotation = routes.credential_issuer.regenerate(app_id, routes.marketplace_store.all_client_ids(), current)
            routes.marketplace_store.replace_credentials(rotation)
            return current

        monkeypatch.setattr(routes.marketplace_store, "get_credentials", get_then_rotate)

        response = client.post(f"{API}/{app['id']}/credentials", headers=alice)

        assert response.status_code == 409
        pytest.assert_error_body(response.json(), "credential_conflict")
