"""HTTP behaviour of the public claim endpoints."""

import pytest
import requests

from cdk.ratelimit import (
    ADMIN_RATE_LIMITER_KEY,
    RATE_LIMITER_KEY,
    VERIFY_RATE_LIMITER_KEY,
    FixedWindowRateLimiter,
)

from conftest import ADMIN_PASSWORD, CLAIM_PASSWORD


def _create_project(client, cards=("A", "B", "C"), **extra):
    payload = {
        "name": "Spring Drop",
        "password": CLAIM_PASSWORD,
        "adminPassword": ADMIN_PASSWORD,
        "cards": list(cards),
    }
    payload.update(extra)
    resp = client.post("/api/projects", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]["project"]["id"]


def _claim(client, project_id, password=CLAIM_PASSWORD, ip="203.0.113.5", **extra):
    body = {"projectId": project_id, "password": password}
    body.update(extra)
    return client.post("/api/claim", json=body, headers={"X-Forwarded-For": ip})


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "CDK API is running"


def test_claim_requires_login(client):
    resp = client.post("/api/claim", json={"projectId": "x", "password": "y"})
    assert resp.status_code == 401
    assert resp.get_json()["requireLogin"] is True


def test_login_can_be_disabled(app, client):
    app.config["CDK_REQUIRE_LOGIN"] = False
    resp = client.post("/api/claim", json={"projectId": "missing", "password": CLAIM_PASSWORD})
    assert resp.status_code == 404


def test_claim_missing_fields(login):
    client = login()
    resp = client.post("/api/claim", json={"projectId": "abc"})
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_claim_and_reclaim(login):
    client = login()
    project_id = _create_project(client)

    first = _claim(client, project_id)
    assert first.status_code == 200
    data = first.get_json()["data"]
    assert data["card"] in {"A", "B", "C"}
    assert data["alreadyClaimed"] is False

    again = _claim(client, project_id)
    assert again.status_code == 200
    assert again.get_json()["data"]["card"] == data["card"]
    assert again.get_json()["data"]["alreadyClaimed"] is True

    status = client.get(f"/api/claim/{project_id}", headers={"X-Forwarded-For": "203.0.113.5"})
    body = status.get_json()["data"]
    assert body["hasClaimed"] is True
    assert body["claimRecord"]["cardContent"] == data["card"]
    assert body["claimRecord"]["username"] == "alice"
    assert body["project"]["claimedCards"] == 1


def test_distinct_origins_get_distinct_cards(login):
    client = login()
    project_id = _create_project(client)

    first = _claim(client, project_id, ip="198.51.100.1").get_json()["data"]["card"]
    second = _claim(client, project_id, ip="198.51.100.2").get_json()["data"]["card"]

    assert first != second


def test_bad_password(login):
    client = login()
    project_id = _create_project(client)

    resp = _claim(client, project_id, password="wrong-pass")

    assert resp.status_code == 401
    assert resp.get_json()["reason"] == "BadPassword"
    status = client.get(f"/api/claim/{project_id}", headers={"X-Forwarded-For": "203.0.113.5"})
    assert status.get_json()["data"]["project"]["claimedCards"] == 0


def test_unknown_project(login):
    resp = _claim(login(), "does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json()["reason"] == "NotFound"


def test_inactive_project(login):
    client = login()
    project_id = _create_project(client)
    client.post(
        f"/api/projects/{project_id}/toggle-status",
        json={"adminPassword": ADMIN_PASSWORD, "isActive": False},
    )

    resp = _claim(client, project_id)

    assert resp.status_code == 403
    assert resp.get_json()["reason"] == "Inactive"


def test_exhausted_is_gone(login):
    client = login()
    project_id = _create_project(client, cards=["only"])
    assert _claim(client, project_id, ip="198.51.100.1").status_code == 200

    resp = _claim(client, project_id, ip="198.51.100.2")

    assert resp.status_code == 410
    assert resp.get_json()["reason"] == "Exhausted"


def test_claim_status_before_claim_and_unknown(login):
    client = login()
    project_id = _create_project(client)

    body = client.get(f"/api/claim/{project_id}").get_json()["data"]
    assert body["hasClaimed"] is False
    assert body["claimRecord"] is None
    assert body["project"]["remainingCards"] == 3
    assert client.get("/api/claim/missing").status_code == 404


def test_verify_password(login):
    client = login()
    project_id = _create_project(client)

    good = client.post("/api/verify", json={"projectId": project_id, "password": CLAIM_PASSWORD})
    assert good.get_json()["data"]["valid"] is True
    assert good.get_json()["data"]["project"]["totalCards"] == 3

    bad = client.post("/api/verify", json={"projectId": project_id, "password": "nope-nope"})
    assert bad.status_code == 200
    assert bad.get_json()["data"] == {"valid": False, "project": None}

    assert client.post("/api/verify", json={"projectId": "x"}).status_code == 400
    assert client.post("/api/verify", json={"projectId": "x", "password": "y"}).status_code == 404


def test_rate_limit(app, login):
    client = login()
    project_id = _create_project(client)
    app.extensions[RATE_LIMITER_KEY] = FixedWindowRateLimiter(2, 60)

    assert _claim(client, project_id).status_code == 200
    assert _claim(client, project_id).status_code == 200
    limited = _claim(client, project_id)

    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) >= 1


def test_verify_is_rate_limited(app, login):
    client = login()
    project_id = _create_project(client)
    app.extensions[VERIFY_RATE_LIMITER_KEY] = FixedWindowRateLimiter(3, 60)

    codes = [
        client.post("/api/verify", json={"projectId": project_id, "password": "guess-guess"}).status_code
        for _ in range(5)
    ]

    assert codes == [200, 200, 200, 429, 429]
    # Claims draw from their own budget.
    assert _claim(client, project_id).status_code == 200


def test_verify_admin_is_rate_limited(app, login):
    client = login()
    project_id = _create_project(client)
    app.extensions[VERIFY_RATE_LIMITER_KEY] = FixedWindowRateLimiter(2, 60)

    body = {"projectId": project_id, "adminPassword": "wrong-guess"}
    assert client.post("/api/verify-admin", json=body).status_code == 200
    assert client.post("/api/verify-admin", json=body).status_code == 200
    limited = client.post("/api/verify-admin", json=body)

    assert limited.status_code == 429
    assert "Retry-After" in limited.headers


def test_admin_routes_are_rate_limited(app, login):
    client = login()
    app.extensions[ADMIN_RATE_LIMITER_KEY] = FixedWindowRateLimiter(2, 60)

    assert client.get("/api/projects").status_code == 200
    assert client.get("/api/projects").status_code == 200
    assert client.get("/api/projects").status_code == 429


def test_turnstile_config_disabled(client):
    resp = client.get("/api/turnstile/config")
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"enabled": False, "siteKey": None}


class _FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


@pytest.fixture
def turnstile_app(app):
    app.config["TURNSTILE_ENABLED"] = True
    app.config["TURNSTILE_SECRET_KEY"] = "secret"
    return app


def test_turnstile_config_exposes_site_key(turnstile_app):
    turnstile_app.config["TURNSTILE_SITE_KEY"] = "0x-site-key"
    resp = turnstile_app.test_client().get("/api/turnstile/config")
    assert resp.get_json()["data"] == {"enabled": True, "siteKey": "0x-site-key"}


def test_turnstile_token_required(turnstile_app, login):
    client = login()
    project_id = _create_project(client)
    resp = _claim(client, project_id)
    assert resp.status_code == 400


def test_turnstile_rejected(turnstile_app, login, monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: _FakeResponse({"success": False, "error-codes": ["bad"]}))
    client = login()
    project_id = _create_project(client)

    resp = _claim(client, project_id, turnstileToken="token")

    assert resp.status_code == 400


def test_turnstile_accepted(turnstile_app, login, monkeypatch):
    seen = {}

    def fake_post(url, data=None, timeout=None):
        seen.update(data)
        return _FakeResponse({"success": True})

    monkeypatch.setattr(requests, "post", fake_post)
    client = login()
    project_id = _create_project(client)

    resp = _claim(client, project_id, turnstileToken="token")

    assert resp.status_code == 200
    assert seen["response"] == "token"
    assert seen["secret"] == "secret"
    assert seen["remoteip"] == "203.0.113.5"


def test_turnstile_network_failure(turnstile_app, login, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "post", boom)
    client = login()
    project_id = _create_project(client)

    assert _claim(client, project_id, turnstileToken="token").status_code == 400


def test_maintenance_mode(app, client):
    app.config["MAINTENANCE_MODE"] = True
    assert client.post("/api/claim", json={}).status_code == 503
    assert client.get("/api/health").status_code == 200


def test_unknown_route_is_json(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False
