"""Project management Blueprint; every mutation is gated by the project's admin password."""

from __future__ import annotations

from typing import Callable, Optional, Tuple, Union

from flask import Blueprint, current_app, request

from models import Project
from . import cards as card_store
from . import projects
from . import validation
from .errors import ValidationError
from .identity import claimant_identity
from .ratelimit import ADMIN_RATE_LIMITER_KEY, VERIFY_RATE_LIMITER_KEY, rate_limited_response
from .responses import error_response, request_json, success_response

UserProvider = Callable[[], Optional[dict]]


def create_project_admin_blueprint(current_user_provider: UserProvider) -> Blueprint:
    """Factory mirroring the claim blueprint so both share one login check."""

    bp = Blueprint("cdk_admin", __name__, url_prefix="/api")

    @bp.errorhandler(ValidationError)
    def _validation_failed(exc: ValidationError):
        return error_response(str(exc), 400)

    @bp.before_request
    def _require_user():
        if not current_user_provider() and current_app.config.get("CDK_REQUIRE_LOGIN", True):
            return error_response("Please log in first.", 401, requireLogin=True)
        return rate_limited_response(ADMIN_RATE_LIMITER_KEY, f"admin:{claimant_identity(request)}")

    def _authorize(project_id: str, data: dict) -> Tuple[Optional[Project], Optional[tuple]]:
        admin_password = data.get("adminPassword")
        if not admin_password:
            return None, error_response("Admin password is required.", 400)
        project = projects.get_project(project_id)
        if project is None:
            return None, error_response("Project not found.", 404)
        if not projects.verify_admin_password(project, admin_password):
            current_app.logger.warning("Rejected admin password for project %s", project_id)
            return None, error_response("Incorrect admin password.", 401)
        return project, None

    @bp.get("/projects")
    def list_projects():
        return success_response([project.to_public_dict() for project in projects.list_projects()])

    @bp.post("/projects")
    def create_project():
        data = request_json(request)
        name = validation.validate_name(data.get("name"))
        password = validation.validate_password(data.get("password"))
        admin_password = validation.validate_admin_password(data.get("adminPassword"))
        description = validation.validate_description(data.get("description"))
        limit_one_per_user = _optional_bool(data, "limitOnePerUser", default=True)

        cards = _cards_from_payload(data)
        cards = validation.remove_duplicate_cards(cards)
        validation.check_card_count(cards)

        project = projects.create_project(
            name,
            password,
            admin_password,
            description,
            limit_one_per_user=limit_one_per_user,
            cards=cards,
        )
        current_app.logger.info("Created project %s with %d cards", project.id, len(cards))
        return success_response({"project": project.to_public_dict(), "cardsAdded": len(cards)}, 201)

    @bp.get("/projects/<project_id>")
    def get_project(project_id: str):
        project = projects.get_project(project_id)
        if project is None:
            return error_response("Project not found.", 404)
        return success_response(project.to_public_dict())

    @bp.put("/projects/<project_id>")
    def update_project(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        updates = {}
        if data.get("name") is not None:
            updates["name"] = validation.validate_name(data.get("name"))
        if data.get("password") is not None:
            updates["password"] = validation.validate_password(data.get("password"))
        if data.get("newAdminPassword") is not None:
            updates["admin_password"] = validation.validate_admin_password(data.get("newAdminPassword"))
        if "description" in data:
            updates["description"] = validation.validate_description(data.get("description"))
        if "isActive" in data:
            updates["is_active"] = _optional_bool(data, "isActive")
        if "limitOnePerUser" in data:
            updates["limit_one_per_user"] = _optional_bool(data, "limitOnePerUser")

        project = projects.update_project(project.id, **updates)
        current_app.logger.info("Updated project %s fields: %s", project.id, ", ".join(sorted(updates)) or "none")
        return success_response(project.to_public_dict())

    @bp.delete("/projects/<project_id>")
    def delete_project(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        projects.delete_project(project.id)
        current_app.logger.info("Deleted project %s", project_id)
        return success_response({"message": "Project deleted."})

    @bp.post("/projects/<project_id>/cards")
    def add_cards(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        submitted = _cards_from_payload(data)
        cards = submitted
        if _optional_bool(data, "removeDuplicates", default=True):
            cards = validation.remove_duplicate_cards(submitted)
        validation.check_card_count(cards, limit=validation.MAX_CARDS_PER_ADD)

        added = card_store.add_cards(project.id, cards)
        current_app.logger.info("Added %d cards to project %s", added, project_id)
        return success_response({"added": added, "duplicates": len(submitted) - len(cards)})

    @bp.post("/projects/<project_id>/cards/list")
    def list_cards(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        claimed = data.get("claimed")
        if claimed is not None and not isinstance(claimed, bool):
            return error_response("claimed must be a boolean.", 400)
        rows = card_store.list_cards(project.id, claimed=claimed)
        return success_response({"cards": [card.to_admin_dict() for card in rows]})

    @bp.delete("/projects/<project_id>/cards/<card_id>")
    def delete_card(project_id: str, card_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        card = card_store.get_card(project.id, card_id)
        if card is None:
            return error_response("Card not found.", 404)
        if card.is_claimed or not card_store.delete_card(project.id, card_id):
            return error_response("Claimed cards cannot be deleted.", 400)

        current_app.logger.info("Deleted card %s from project %s", card_id, project_id)
        return success_response({"message": "Card deleted."})

    @bp.post("/projects/<project_id>/toggle-status")
    def toggle_status(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure

        is_active = data.get("isActive")
        if not isinstance(is_active, bool):
            return error_response("isActive must be a boolean.", 400)

        project = projects.update_project(project.id, is_active=is_active)
        current_app.logger.info("Project %s is now %s", project_id, "active" if is_active else "inactive")
        return success_response(
            {
                "project": project.to_public_dict(),
                "message": "Project enabled." if is_active else "Project disabled.",
            }
        )

    @bp.post("/projects/<project_id>/stats")
    def project_stats(project_id: str):
        data = request_json(request)
        project, failure = _authorize(project_id, data)
        if failure:
            return failure
        return success_response(projects.project_stats(project.id))

    @bp.post("/verify-admin")
    def verify_admin():
        data = request_json(request)
        project_id = data.get("projectId")
        if not project_id or not data.get("adminPassword"):
            return error_response("Project ID and admin password are required.", 400)

        limited = rate_limited_response(VERIFY_RATE_LIMITER_KEY, f"verify-admin:{claimant_identity(request)}")
        if limited:
            return limited

        project = projects.get_project(project_id)
        if project is None:
            return error_response("Project not found.", 404)
        valid = projects.verify_admin_password(project, data.get("adminPassword"))
        return success_response({"valid": valid})

    return bp


def _cards_from_payload(data: dict) -> list:
    raw = data.get("cards")
    if raw is None:
        raise ValidationError("Provide at least one card.")
    if isinstance(raw, str):
        return validation.parse_cards(raw, data.get("cardFormat") or "text")
    return validation.coerce_card_list(raw)


def _optional_bool(data: dict, key: str, default: Union[bool, None] = None) -> Optional[bool]:
    value = data.get(key, default)
    if value is None or isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be a boolean.")
