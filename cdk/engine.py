"""Claim engine: password gate, idempotent re-claim and the atomic card allocation.

A claim walks START -> VALIDATED -> DUPLICATE_CHECKED -> ALLOCATED -> COMMITTED.
Correctness never depends on in-process locks: the conditional card UPDATE
decides races on a card and the ledger's unique constraint decides races on an
identity. The card flip, ledger insert and counter bump share one transaction,
so a rollback is the compensating release.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from flask import current_app, has_app_context

from extensions import db
from models import ClaimRecord, Project
from . import cards as card_store
from . import ledger
from . import projects
from .errors import AlreadyClaimed, DuplicateClaim

DEFAULT_MAX_ATTEMPTS = 5

NOT_FOUND = "NotFound"
INACTIVE = "Inactive"
BAD_PASSWORD = "BadPassword"
EXHAUSTED = "Exhausted"
RACE_LOST = "RaceLost"

REASON_STATUS_CODES = {
    NOT_FOUND: 404,
    INACTIVE: 403,
    BAD_PASSWORD: 401,
    EXHAUSTED: 410,
    RACE_LOST: 500,
}

REASON_MESSAGES = {
    NOT_FOUND: "Project not found.",
    INACTIVE: "This project is not accepting claims.",
    BAD_PASSWORD: "Incorrect claim password.",
    EXHAUSTED: "All cards have been claimed.",
    RACE_LOST: "The service is busy, please try again.",
}


@dataclass
class ClaimResult:
    """Outcome of one claim attempt, transport agnostic."""

    success: bool
    card_content: Optional[str] = None
    already_claimed: bool = False
    reason: Optional[str] = None
    message: Optional[str] = None
    claimed_at: Optional[str] = None

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return REASON_STATUS_CODES.get(self.reason, 500)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def rejected(cls, reason: str) -> "ClaimResult":
        return cls(success=False, reason=reason, message=REASON_MESSAGES[reason])

    @classmethod
    def from_record(cls, record: ClaimRecord) -> "ClaimResult":
        return cls(
            success=True,
            card_content=record.card_content,
            already_claimed=True,
            message="You have already claimed a card from this project.",
            claimed_at=_isoformat(record.claimed_at),
        )


def claim_card(
    project_id: str,
    password: str,
    claimant_identity: str,
    username: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> ClaimResult:
    """Run the full claim protocol for one request."""
    attempts = _resolve_max_attempts(max_attempts)

    project = projects.get_project(project_id)
    if project is None:
        return ClaimResult.rejected(NOT_FOUND)
    if not project.is_active:
        return ClaimResult.rejected(INACTIVE)
    if not projects.verify_claim_password(project, password):
        return ClaimResult.rejected(BAD_PASSWORD)

    project_id = project.id
    if project.limit_one_per_user:
        existing = ledger.find_claim(project_id, claimant_identity)
        if existing is not None:
            return ClaimResult.from_record(existing)

    for attempt in range(1, attempts + 1):
        card_id = card_store.pick_unclaimed_card(project_id)
        if card_id is None:
            return ClaimResult.rejected(EXHAUSTED)

        try:
            content, claimed_at = _commit_claim(project, card_id, claimant_identity, username)
        except AlreadyClaimed:
            _log("warning", "Card %s in project %s lost a race (attempt %d/%d)", card_id, project_id, attempt, attempts)
            continue
        except DuplicateClaim:
            # A concurrent request from the same identity committed first; hand back its card.
            _log("warning", "Concurrent duplicate claim in project %s; returning the winning entry", project_id)
            winner = ledger.find_claim(project_id, claimant_identity)
            if winner is not None:
                return ClaimResult.from_record(winner)
            continue

        _log("info", "Card %s claimed in project %s by %s", card_id, project_id, username or "anonymous")
        return ClaimResult(
            success=True,
            card_content=content,
            already_claimed=False,
            message="Card claimed.",
            claimed_at=_isoformat(claimed_at),
        )

    _log("warning", "Giving up on project %s after %d contended attempts", project_id, attempts)
    return ClaimResult.rejected(RACE_LOST)


def get_claim_status(project_id: str, claimant_identity: str) -> Optional[dict]:
    """Read-only view used by status pages; None when the project does not exist."""
    project = projects.get_project(project_id)
    if project is None:
        return None
    entry = ledger.find_claim(project.id, claimant_identity)
    return {
        "claimed": entry is not None,
        "entry": entry.to_dict() if entry is not None else None,
        "project": _project_summary(project),
    }


def verify_claim_password(project_id: str, password: str) -> Tuple[Optional[str], Optional[dict]]:
    """Check a claim password without claiming.

    Returns ``(reason, summary)``: reason is NotFound/Inactive/BadPassword or
    None, and summary is only filled in for a correct password.
    """
    project = projects.get_project(project_id)
    if project is None:
        return NOT_FOUND, None
    if not project.is_active:
        return INACTIVE, None
    if not projects.verify_claim_password(project, password):
        return BAD_PASSWORD, None
    return None, _project_summary(project)


def _commit_claim(
    project: Project,
    card_id: str,
    claimant_identity: str,
    username: Optional[str],
) -> Tuple[str, datetime]:
    now = datetime.now(timezone.utc)
    try:
        card = card_store.mark_claimed(card_id, claimant_identity, now)
        content = card.content
        ledger.record_claim(project, content, claimant_identity, username, now)
        projects.increment_claimed(project.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return content, now


def _project_summary(project: Project) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "totalCards": project.total_cards,
        "claimedCards": project.claimed_cards,
        "remainingCards": project.remaining_cards,
    }


def _resolve_max_attempts(override: Optional[int]) -> int:
    value = override
    if value is None and has_app_context():
        value = current_app.config.get("CDK_CLAIM_MAX_ATTEMPTS")
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return DEFAULT_MAX_ATTEMPTS


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _log(level: str, message: str, *args) -> None:
    if not has_app_context():
        return
    logger = getattr(current_app, "logger", None)
    if logger:
        getattr(logger, level)(message, *args)
