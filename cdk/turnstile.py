"""Optional Cloudflare Turnstile verification for the claim endpoint."""

from __future__ import annotations

from typing import Optional

import requests
from flask import current_app

SITEVERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
REQUEST_TIMEOUT_SECONDS = 10


def turnstile_enabled() -> bool:
    return bool(current_app.config.get("TURNSTILE_ENABLED"))


def turnstile_site_key() -> Optional[str]:
    """Public widget key for clients; None while the challenge is off."""
    if not turnstile_enabled():
        return None
    return current_app.config.get("TURNSTILE_SITE_KEY") or None


def verify_turnstile_token(token: Optional[str], remote_ip: Optional[str] = None) -> bool:
    """Ask Cloudflare whether the challenge token is valid; any failure counts as invalid."""
    if not token:
        return False

    secret = current_app.config.get("TURNSTILE_SECRET_KEY")
    if not secret:
        current_app.logger.warning("Turnstile is enabled but TURNSTILE_SECRET_KEY is not configured.")
        return False

    payload = {"secret": secret, "response": token}
    if remote_ip:
        payload["remoteip"] = remote_ip

    try:
        resp = requests.post(SITEVERIFY_URL, data=payload, timeout=REQUEST_TIMEOUT_SECONDS)
        resp.raise_for_status()
        result = resp.json()
    except (requests.RequestException, ValueError) as exc:
        current_app.logger.warning("Turnstile verification request failed: %s", exc)
        return False

    if result.get("success"):
        return True
    current_app.logger.warning("Turnstile verification rejected: %s", result.get("error-codes"))
    return False
