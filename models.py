"""Database models for the CDK distribution service."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from extensions import db


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(db.Model):
    """A named pool of cards sharing one claim password and one admin password."""

    __tablename__ = "projects"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(50), nullable=False)
    password = db.Column(db.String(64), nullable=False)
    admin_password = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(200), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    limit_one_per_user = db.Column(db.Boolean, default=True, nullable=False)

    total_cards = db.Column(db.Integer, default=0, nullable=False)
    claimed_cards = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("claimed_cards <= total_cards", name="ck_projects_claimed_le_total"),
    )

    @property
    def remaining_cards(self) -> int:
        return max(0, (self.total_cards or 0) - (self.claimed_cards or 0))

    def to_public_dict(self) -> dict:
        """Serialize without either password; safe for any caller."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": bool(self.is_active),
            "limitOnePerUser": bool(self.limit_one_per_user),
            "totalCards": self.total_cards,
            "claimedCards": self.claimed_cards,
            "remainingCards": self.remaining_cards,
            "createdAt": _isoformat_or_none(self.created_at),
            "updatedAt": _isoformat_or_none(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Project id={self.id} name={self.name!r} {self.claimed_cards}/{self.total_cards}>"


class Card(db.Model):
    """One redeemable secret; transitions unclaimed -> claimed exactly once."""

    __tablename__ = "cards"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    project_id = db.Column(
        db.String(32),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = db.Column(db.Text, nullable=False)
    is_claimed = db.Column(db.Boolean, default=False, nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_by = db.Column(db.String(64), nullable=True, index=True)

    __table_args__ = (
        db.Index("ix_cards_project_available", "project_id", "is_claimed"),
    )

    def to_admin_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "content": self.content,
            "isClaimed": bool(self.is_claimed),
            "claimedAt": _isoformat_or_none(self.claimed_at),
            "claimedBy": self.claimed_by,
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Card id={self.id} project={self.project_id} claimed={self.is_claimed}>"


class ClaimRecord(db.Model):
    """Audit entry for one successful claim (unique per project/identity when limited)."""

    __tablename__ = "claim_records"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    project_id = db.Column(
        db.String(32),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Copied from the card so history survives card deletion.
    card_content = db.Column(db.Text, nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    ip_hash = db.Column(db.String(64), nullable=False)
    username = db.Column(db.String(120), nullable=True)
    # Equals ip_hash for one-per-identity projects, NULL otherwise; NULLs never collide.
    dedupe_key = db.Column(db.String(64), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("project_id", "dedupe_key", name="uq_claim_project_identity"),
        db.Index("ix_claim_records_project_identity", "project_id", "ip_hash"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "cardContent": self.card_content,
            "claimedAt": _isoformat_or_none(self.claimed_at),
            "ipHash": self.ip_hash,
            "username": self.username,
        }

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<ClaimRecord id={self.id} project={self.project_id} user={self.username!r}>"


def _isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    aware = _ensure_aware(value)
    return aware.astimezone(timezone.utc).isoformat()


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
