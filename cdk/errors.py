"""Exceptions raised by the CDK services; the blueprints translate them to JSON."""

from __future__ import annotations


class CdkError(Exception):
    """Base class for every error raised by the card services."""


class ValidationError(CdkError):
    """Admin or claimant input failed a shape/length rule."""


class ProjectNotFound(CdkError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id!r} does not exist.")
        self.project_id = project_id


class AlreadyClaimed(CdkError):
    """The conditional claim update matched no unclaimed row."""

    def __init__(self, card_id: str) -> None:
        super().__init__(f"Card {card_id!r} was claimed by another request.")
        self.card_id = card_id


class DuplicateClaim(CdkError):
    """The ledger uniqueness constraint rejected a second claim for one identity."""

    def __init__(self, project_id: str, claimant_identity: str) -> None:
        super().__init__(f"Identity already holds a claim in project {project_id!r}.")
        self.project_id = project_id
        self.claimant_identity = claimant_identity
