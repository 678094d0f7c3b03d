"""Exception hierarchy for the sprint board."""

from __future__ import annotations


class SprintboardError(Exception):
    """Base class for all sprint board errors."""


class NotFoundError(SprintboardError):
    """A sprint, task or workspace does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidFieldError(SprintboardError):
    """A create or patch request violates a field rule."""


class CommitError(SprintboardError):
    """The persistence collaborator rejected or failed a write."""


class AnalysisUnavailable(SprintboardError):
    """The analysis service is not configured or not reachable."""
