"""Input rules for project fields and card batches."""

from __future__ import annotations

import json
from typing import Iterable, List, Optional

import bleach

from .errors import ValidationError

NAME_MIN_LENGTH = 1
NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 20
ADMIN_PASSWORD_MAX_LENGTH = 128
DESCRIPTION_MAX_LENGTH = 200
MAX_CARDS_PER_CREATE = 10_000
MAX_CARDS_PER_ADD = 1_000

CARD_FORMATS = ("text", "csv", "json")


def clean_text(value) -> str:
    """Strip every HTML tag and surrounding whitespace."""
    if value is None:
        return ""
    return bleach.clean(str(value), tags=[], attributes={}, strip=True).strip()


def validate_name(raw) -> str:
    name = clean_text(raw)
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Project name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
        )
    return name


def validate_password(raw) -> str:
    password = raw if isinstance(raw, str) else ""
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Claim password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters."
        )
    return password


def validate_admin_password(raw) -> str:
    password = raw if isinstance(raw, str) else ""
    if not password:
        raise ValidationError("Admin password is required.")
    if len(password) > ADMIN_PASSWORD_MAX_LENGTH:
        raise ValidationError(f"Admin password cannot exceed {ADMIN_PASSWORD_MAX_LENGTH} characters.")
    return password


def validate_description(raw) -> Optional[str]:
    description = clean_text(raw)
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters.")
    return description or None


def parse_cards(raw: str, fmt: str = "text") -> List[str]:
    """Split pasted card input; invalid JSON falls back to one card per line."""
    if fmt not in CARD_FORMATS:
        raise ValidationError(f"Card format must be one of: {', '.join(CARD_FORMATS)}.")
    if not raw:
        return []

    if fmt == "json":
        try:
            parsed = json.loads(raw)
        except ValueError:
            return _split_lines(raw)
        if isinstance(parsed, list):
            return [
                item.strip() if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
                for item in parsed
                if not (isinstance(item, str) and not item.strip())
            ]
        return [json.dumps(parsed, ensure_ascii=False)]

    if fmt == "csv":
        pieces = raw.replace("，", ",").split(",")
        return [piece.strip() for piece in pieces if piece.strip()]

    return _split_lines(raw)


def coerce_card_list(raw) -> List[str]:
    """Accept either a JSON array of strings or a newline separated blob."""
    if isinstance(raw, str):
        return parse_cards(raw)
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("Cards must be a list of strings.")
    cards: List[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError("Cards must be a list of strings.")
        item = item.strip()
        if item:
            cards.append(item)
    return cards


def remove_duplicate_cards(cards: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(cards))


def check_card_count(cards: List[str], limit: int = MAX_CARDS_PER_CREATE) -> None:
    """Bound one batch of cards; projects themselves have no total cap."""
    if not cards:
        raise ValidationError("Provide at least one card.")
    if len(cards) > limit:
        raise ValidationError(f"At most {limit} cards can be submitted at once.")


def _split_lines(raw: str) -> List[str]:
    return [line.strip() for line in raw.splitlines() if line.strip()]
