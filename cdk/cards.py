"""Card store: per-project card rows and the conditional claim primitive."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func

from extensions import db
from models import Card, Project
from .errors import AlreadyClaimed, ProjectNotFound


def add_cards(project_id: str, contents: Iterable[str], commit: bool = True) -> int:
    """Insert one card per content string and bump the project's total in the same unit."""
    if db.session.get(Project, project_id) is None:
        raise ProjectNotFound(project_id)

    rows = [Card(project_id=project_id, content=content) for content in contents]
    if not rows:
        return 0

    db.session.add_all(rows)
    (
        db.session.query(Project)
        .filter(Project.id == project_id)
        .update(
            {
                Project.total_cards: Project.total_cards + len(rows),
                Project.updated_at: _utcnow(),
            },
            synchronize_session=False,
        )
    )
    if commit:
        _commit_or_rollback()
    return len(rows)


def pick_unclaimed_card(project_id: str) -> Optional[str]:
    """Return a random unclaimed card id, or None once the pool is exhausted.

    The pick is not a reservation; two callers may receive the same id and
    :func:`mark_claimed` decides which of them gets it.
    """
    row = (
        db.session.query(Card.id)
        .filter(Card.project_id == project_id, Card.is_claimed.is_(False))
        .order_by(func.random())
        .limit(1)
        .first()
    )
    return row[0] if row else None


def mark_claimed(card_id: str, claimant_identity: str, claimed_at: Optional[datetime] = None) -> Card:
    """Flip one card to claimed with a single compare-and-set UPDATE.

    Raises AlreadyClaimed when no unclaimed row matched. Does not commit: the
    claim engine commits this together with the ledger insert and the counter.
    """
    claimed_at = claimed_at or _utcnow()
    matched = (
        db.session.query(Card)
        .filter(Card.id == card_id, Card.is_claimed.is_(False))
        .update(
            {
                Card.is_claimed: True,
                Card.claimed_at: claimed_at,
                Card.claimed_by: claimant_identity,
            },
            synchronize_session=False,
        )
    )
    if matched != 1:
        raise AlreadyClaimed(card_id)
    return db.session.get(Card, card_id, populate_existing=True)


def delete_card(project_id: str, card_id: str) -> bool:
    """Delete an unclaimed card; claimed or missing cards return False."""
    deleted = (
        db.session.query(Card)
        .filter(
            Card.id == card_id,
            Card.project_id == project_id,
            Card.is_claimed.is_(False),
        )
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.session.rollback()
        return False

    (
        db.session.query(Project)
        .filter(Project.id == project_id)
        .update(
            {
                Project.total_cards: Project.total_cards - 1,
                Project.updated_at: _utcnow(),
            },
            synchronize_session=False,
        )
    )
    _commit_or_rollback()
    return True


def get_card(project_id: str, card_id: str) -> Optional[Card]:
    return Card.query.filter_by(project_id=project_id, id=card_id).first()


def list_card_ids(project_id: str) -> List[str]:
    rows = db.session.query(Card.id).filter(Card.project_id == project_id).all()
    return [row[0] for row in rows]


def list_cards(project_id: str, claimed: Optional[bool] = None) -> List[Card]:
    """Admin listing, unclaimed first; pass ``claimed`` to filter by state."""
    query = Card.query.filter(Card.project_id == project_id)
    if claimed is not None:
        query = query.filter(Card.is_claimed.is_(claimed))
    return query.order_by(Card.is_claimed.asc(), Card.claimed_at.desc()).all()


def count_claimed(project_id: str) -> int:
    return (
        db.session.query(func.count(Card.id))
        .filter(Card.project_id == project_id, Card.is_claimed.is_(True))
        .scalar()
        or 0
    )


def _commit_or_rollback() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
