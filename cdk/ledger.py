"""Claim ledger: append-only audit of successful claims."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import ClaimRecord, Project
from .errors import DuplicateClaim

DEFAULT_HISTORY_LIMIT = 100

IDENTITY_CONSTRAINT = "uq_claim_project_identity"

# SQLite reports the offending columns instead of the constraint name.
SQLITE_IDENTITY_COLUMNS = "claim_records.project_id, claim_records.dedupe_key"


def record_claim(
    project: Project,
    card_content: str,
    claimant_identity: str,
    username: Optional[str] = None,
    claimed_at: Optional[datetime] = None,
) -> ClaimRecord:
    """Insert a ledger entry inside the caller's unit of work.

    When the project limits claims to one per identity, the insert carries a
    dedupe key and the (project, dedupe key) unique constraint rejects a second
    entry with DuplicateClaim. The session then needs a rollback, which the
    caller owns.
    """
    # A failed flush rolls back and expires the project, so capture its fields first.
    project_id = project.id
    limit_one_per_user = project.limit_one_per_user
    record = ClaimRecord(
        project_id=project_id,
        card_content=card_content,
        claimed_at=claimed_at or datetime.now(timezone.utc),
        ip_hash=claimant_identity,
        username=username,
        dedupe_key=claimant_identity if limit_one_per_user else None,
    )
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError as exc:
        if _is_unique_violation(exc):
            raise DuplicateClaim(project_id, claimant_identity) from exc
        raise
    return record


def find_claim(project_id: str, claimant_identity: str) -> Optional[ClaimRecord]:
    """Return the earliest claim made by this identity in the project, if any."""
    return (
        ClaimRecord.query.filter_by(project_id=project_id, ip_hash=claimant_identity)
        .order_by(ClaimRecord.claimed_at.asc())
        .first()
    )


def list_recent(project_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ClaimRecord]:
    return (
        ClaimRecord.query.filter_by(project_id=project_id)
        .order_by(ClaimRecord.claimed_at.desc(), ClaimRecord.id.desc())
        .limit(max(0, int(limit)))
        .all()
    )


def count_claims(project_id: str) -> int:
    return (
        db.session.query(func.count(ClaimRecord.id))
        .filter(ClaimRecord.project_id == project_id)
        .scalar()
        or 0
    )


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc))
    return IDENTITY_CONSTRAINT in message or SQLITE_IDENTITY_COLUMNS in message
