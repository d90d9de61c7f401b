"""Shared Flask extensions used by the CDK blueprints and services."""

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance initialized in app.py so blueprints/services can import `db`.
db = SQLAlchemy()
