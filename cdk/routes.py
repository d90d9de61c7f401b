"""Public claim Blueprint: password check, claim, claim status and Turnstile config."""

from __future__ import annotations

from typing import Callable, Optional, Union

from flask import Blueprint, current_app, request

from . import engine
from .identity import claimant_identity, client_ip
from .ratelimit import RATE_LIMITER_KEY, VERIFY_RATE_LIMITER_KEY, rate_limited_response
from .responses import error_response, request_json, success_response
from .turnstile import turnstile_enabled, turnstile_site_key, verify_turnstile_token

UserProvider = Callable[[], Optional[dict]]


def create_claim_blueprint(current_user_provider: UserProvider) -> Blueprint:
    """Factory so the app can inject its session-based user lookup."""

    bp = Blueprint("cdk_claim", __name__, url_prefix="/api")

    def _require_user() -> Union[dict, tuple]:
        user = current_user_provider()
        if user:
            return user
        if not current_app.config.get("CDK_REQUIRE_LOGIN", True):
            return {}
        return error_response("Please log in first.", 401, requireLogin=True)

    def _extract_username(user: dict) -> Optional[str]:
        for key in ("username", "name"):
            value = user.get(key)
            if value:
                text = str(value).strip()
                if text:
                    return text
        return None

    @bp.post("/verify")
    def verify_password():
        user = _require_user()
        if not isinstance(user, dict):
            return user

        data = request_json(request)
        project_id = data.get("projectId")
        password = data.get("password")
        if not project_id or not password:
            return error_response("Project ID and password are required.", 400)

        limited = rate_limited_response(VERIFY_RATE_LIMITER_KEY, f"verify:{claimant_identity(request)}")
        if limited:
            return limited

        reason, summary = engine.verify_claim_password(project_id, password)
        if reason in (engine.NOT_FOUND, engine.INACTIVE):
            return error_response(
                engine.REASON_MESSAGES[reason],
                engine.REASON_STATUS_CODES[reason],
                reason=reason,
            )
        return success_response({"valid": reason is None, "project": summary})

    @bp.post("/claim")
    def claim():
        user = _require_user()
        if not isinstance(user, dict):
            return user

        data = request_json(request)
        project_id = data.get("projectId")
        password = data.get("password")
        if not project_id or not password:
            return error_response("Project ID and password are required.", 400)

        identity = claimant_identity(request)

        limited = rate_limited_response(
            RATE_LIMITER_KEY,
            f"claim:{identity}",
            "Too many claim attempts, please slow down.",
        )
        if limited:
            return limited

        if turnstile_enabled():
            token = data.get("turnstileToken") or data.get("cf-turnstile-response")
            if not token:
                return error_response("Security challenge token is missing.", 400)
            if not verify_turnstile_token(token, client_ip(request)):
                return error_response("Security challenge failed, please try again.", 400)

        result = engine.claim_card(
            project_id,
            password,
            identity,
            username=_extract_username(user),
        )
        if not result.success:
            return error_response(result.message, result.status_code, reason=result.reason)

        return success_response(
            {
                "card": result.card_content,
                "alreadyClaimed": result.already_claimed,
                "message": result.message,
                "claimedAt": result.claimed_at,
            }
        )

    @bp.get("/turnstile/config")
    def turnstile_config():
        return success_response({"enabled": turnstile_enabled(), "siteKey": turnstile_site_key()})

    @bp.get("/claim/<project_id>")
    def claim_status(project_id: str):
        user = _require_user()
        if not isinstance(user, dict):
            return user

        status = engine.get_claim_status(project_id, claimant_identity(request))
        if status is None:
            return error_response(engine.REASON_MESSAGES[engine.NOT_FOUND], 404, reason=engine.NOT_FOUND)
        return success_response(
            {
                "hasClaimed": status["claimed"],
                "claimRecord": status["entry"],
                "project": status["project"],
            }
        )

    return bp
