"""Claimant identity helpers: client IP resolution and privacy-preserving hashing."""

from __future__ import annotations

import hashlib
from typing import Optional

from flask import current_app, has_app_context

DEFAULT_IDENTITY_SALT = "cdk-salt"

IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")


def client_ip(request) -> str:
    """Best-effort caller IP, trusting the proxy headers in priority order."""
    for header in IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        # X-Forwarded-For may carry a chain; the first hop is the client.
        first = value.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "127.0.0.1"


def hash_identity(ip: str, salt: Optional[str] = None) -> str:
    if salt is None:
        salt = _configured_salt()
    return hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()


def claimant_identity(request) -> str:
    return hash_identity(client_ip(request))


def _configured_salt() -> str:
    if has_app_context():
        return current_app.config.get("CDK_IDENTITY_SALT") or DEFAULT_IDENTITY_SALT
    return DEFAULT_IDENTITY_SALT
