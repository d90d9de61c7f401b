#!/usr/bin/env python
"""
Bulk-load cards from a file into an existing project.

Usage (from the repo root, or anywhere after `pip install -e .`):
    python -m scripts.import_cards PROJECT_ID cards.txt
    python scripts/import_cards.py PROJECT_ID cards.txt [--format text|csv|json] [--keep-duplicates]

Uses the same DATABASE_URL / data/cdk.db the web app uses.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from app import create_app
from cdk import cards as card_store
from cdk import projects
from cdk.errors import ProjectNotFound, ValidationError
from cdk.validation import CARD_FORMATS, check_card_count, parse_cards, remove_duplicate_cards


def import_cards(project_id: str, path: Path, fmt: str = "text", keep_duplicates: bool = False) -> int:
    """Parse ``path`` and append its cards to the project; returns the number added."""
    if not path.exists():
        raise FileNotFoundError(f"Card file not found: {path}")

    raw = path.read_text(encoding="utf-8")
    cards = parse_cards(raw, fmt)
    if not keep_duplicates:
        cards = remove_duplicate_cards(cards)

    project = projects.get_project(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    check_card_count(cards)
    return card_store.add_cards(project.id, cards)


def main() -> None:
    parser = argparse.ArgumentParser(description="Import cards into a CDK project.")
    parser.add_argument("project_id", help="Target project ID")
    parser.add_argument("path", type=Path, help="File with one card per line (or CSV/JSON)")
    parser.add_argument("--format", dest="fmt", choices=CARD_FORMATS, default="text", help="Input format")
    parser.add_argument(
        "--keep-duplicates",
        action="store_true",
        help="Insert repeated entries instead of collapsing them",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        try:
            added = import_cards(args.project_id, args.path, args.fmt, args.keep_duplicates)
        except (ProjectNotFound, ValidationError) as exc:
            parser.error(str(exc))
    print(f"✅ Added {added} cards to project {args.project_id}.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit("\n⚠️ Import cancelled by user.")
