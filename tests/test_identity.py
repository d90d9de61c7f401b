import hashlib

from flask import request

from cdk import identity


def _ip_for(app, headers=None, remote_addr="10.0.0.9"):
    with app.test_request_context("/", headers=headers or {}, environ_base={"REMOTE_ADDR": remote_addr}):
        return identity.client_ip(request)


def test_cloudflare_header_wins(app):
    headers = {
        "CF-Connecting-IP": "1.1.1.1",
        "X-Forwarded-For": "2.2.2.2",
        "X-Real-IP": "3.3.3.3",
    }
    assert _ip_for(app, headers) == "1.1.1.1"


def test_forwarded_for_uses_first_hop(app):
    assert _ip_for(app, {"X-Forwarded-For": "2.2.2.2, 10.0.0.1, 10.0.0.2"}) == "2.2.2.2"


def test_real_ip_before_remote_addr(app):
    assert _ip_for(app, {"X-Real-IP": "3.3.3.3"}) == "3.3.3.3"


def test_falls_back_to_remote_addr(app):
    assert _ip_for(app) == "10.0.0.9"


def test_hash_uses_configured_salt(app):
    expected = hashlib.sha256(b"1.1.1.1test-salt").hexdigest()
    with app.app_context():
        assert identity.hash_identity("1.1.1.1") == expected
    assert identity.hash_identity("1.1.1.1") == hashlib.sha256(b"1.1.1.1cdk-salt").hexdigest()


def test_claimant_identity_is_stable_per_origin(app):
    with app.test_request_context("/", headers={"X-Real-IP": "3.3.3.3"}):
        first = identity.claimant_identity(request)
    with app.test_request_context("/", headers={"X-Real-IP": "3.3.3.3"}):
        second = identity.claimant_identity(request)
    with app.test_request_context("/", headers={"X-Real-IP": "4.4.4.4"}):
        other = identity.claimant_identity(request)

    assert first == second
    assert first != other
    assert "3.3.3.3" not in first
