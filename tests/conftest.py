"""Shared pytest fixtures: a throwaway app on a temporary SQLite file."""

from __future__ import annotations

import pytest

from app import create_app
from cdk import projects
from extensions import db

CLAIM_PASSWORD = "open-sesame"
ADMIN_PASSWORD = "admin-secret"


@pytest.fixture
def app_config(tmp_path):
    return {
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'cdk-test.db'}",
        "CDK_REQUIRE_LOGIN": True,
        "CDK_CLAIM_RATE_LIMIT": 1000,
        "CDK_VERIFY_RATE_LIMIT": 1000,
        "CDK_ADMIN_RATE_LIMIT": 1000,
        "CDK_IDENTITY_SALT": "test-salt",
        "TURNSTILE_ENABLED": False,
    }


@pytest.fixture
def app(app_config):
    flask_app = create_app(app_config)
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def make_project(app_ctx):
    """Factory creating a project with the default test passwords."""

    def _make(cards=("A", "B", "C"), **overrides):
        options = {
            "name": "Spring Drop",
            "password": CLAIM_PASSWORD,
            "admin_password": ADMIN_PASSWORD,
            "description": "Test pool",
        }
        options.update(overrides)
        return projects.create_project(
            options.pop("name"),
            options.pop("password"),
            options.pop("admin_password"),
            options.pop("description"),
            cards=list(cards),
            **options,
        )

    return _make


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Put an OAuth-style user dict into the session, as the login flow would."""

    def _login(username="alice"):
        with client.session_transaction() as sess:
            sess["user"] = {"id": f"id-{username}", "username": username}
        return client

    return _login
