"""Project aggregate: metadata, credentials and the running card counters."""

from __future__ import annotations

import hmac
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from extensions import db
from models import Card, ClaimRecord, Project
from . import cards as card_store
from . import ledger

# Counters are deliberately absent; only card_store and the claim engine move them.
EDITABLE_FIELDS = (
    "name",
    "password",
    "admin_password",
    "description",
    "is_active",
    "limit_one_per_user",
)


def create_project(
    name: str,
    password: str,
    admin_password: str,
    description: Optional[str] = None,
    *,
    limit_one_per_user: bool = True,
    is_active: bool = True,
    cards: Iterable[str] = (),
) -> Project:
    """Create a project together with its initial card batch in one commit."""
    now = datetime.now(timezone.utc)
    project = Project(
        name=name,
        password=password,
        admin_password=admin_password,
        description=description or None,
        is_active=is_active,
        limit_one_per_user=limit_one_per_user,
        total_cards=0,
        claimed_cards=0,
        created_at=now,
        updated_at=now,
    )
    db.session.add(project)
    try:
        db.session.flush()
        card_store.add_cards(project.id, cards, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return project


def get_project(project_id: str) -> Optional[Project]:
    if not project_id:
        return None
    return db.session.get(Project, project_id)


def list_projects() -> List[Project]:
    return Project.query.order_by(Project.created_at.desc()).all()


def update_project(project_id: str, **fields) -> Optional[Project]:
    """Merge the given editable fields into the project.

    None leaves a field untouched, except for the description where a falsy
    value clears it.
    """
    project = get_project(project_id)
    if project is None:
        return None

    for key in EDITABLE_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key == "description":
            value = value or None
        elif value is None:
            continue
        setattr(project, key, value)
    project.updated_at = datetime.now(timezone.utc)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return project


def delete_project(project_id: str) -> bool:
    """Delete the project with every card and ledger entry it owns."""
    project = get_project(project_id)
    if project is None:
        return False

    try:
        (
            db.session.query(ClaimRecord)
            .filter(ClaimRecord.project_id == project_id)
            .delete(synchronize_session=False)
        )
        db.session.query(Card).filter(Card.project_id == project_id).delete(synchronize_session=False)
        db.session.delete(project)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return True


def increment_claimed(project_id: str) -> None:
    """Add one to claimed_cards inside the caller's claim transaction."""
    (
        db.session.query(Project)
        .filter(Project.id == project_id)
        .update(
            {Project.claimed_cards: Project.claimed_cards + 1},
            synchronize_session=False,
        )
    )


def project_stats(project_id: str, history_limit: int = ledger.DEFAULT_HISTORY_LIMIT) -> Optional[dict]:
    project = get_project(project_id)
    if project is None:
        return None
    history = ledger.list_recent(project_id, history_limit)
    return {
        "projectId": project.id,
        "totalCards": project.total_cards,
        "claimedCards": project.claimed_cards,
        "remainingCards": project.remaining_cards,
        "claimHistory": [entry.to_dict() for entry in history],
    }


def verify_admin_password(project: Project, candidate: Optional[str]) -> bool:
    return _secrets_match(project.admin_password, candidate)


def verify_claim_password(project: Project, candidate: Optional[str]) -> bool:
    return _secrets_match(project.password, candidate)


def _secrets_match(expected: Optional[str], candidate: Optional[str]) -> bool:
    if not expected or candidate is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), str(candidate).encode("utf-8"))
