"""JSON envelope shared by every CDK endpoint."""

from __future__ import annotations

from flask import jsonify


def success_response(data=None, status_code: int = 200):
    return jsonify({"success": True, "data": data}), status_code


def error_response(message: str, status_code: int = 400, **extra):
    payload = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status_code


def request_json(request) -> dict:
    """Parsed JSON object body, or an empty dict for anything else."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
