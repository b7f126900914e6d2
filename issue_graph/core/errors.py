"""Error kinds, exceptions, and the warning record carried by result bundles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ErrorKind(StrEnum):
    MALFORMED_INPUT = "MalformedInput"
    MISSING_DEPENDENCY_TARGET = "MissingDependencyTarget"
    COMPUTATION_DEADLINE_EXCEEDED = "ComputationDeadlineExceeded"
    CACHE_MISS = "CacheMiss"
    NON_CONVERGENCE = "NonConvergence"


class IssueGraphError(Exception):
    """Base class for engine errors."""


class MalformedInput(IssueGraphError, ValueError):
    """A record or edge violates the data model (unknown kind, invalid enum, ...)."""

    def __init__(self, message: str, *, issue_id: str | None = None):
        super().__init__(message)
        self.issue_id = issue_id


class ComputationDeadlineExceeded(IssueGraphError, TimeoutError):
    """Raised by a deadline check; algorithms catch it and return partial results."""

    def __init__(self, stage: str):
        super().__init__(f"Deadline exceeded during {stage}")
        self.stage = stage


@dataclass(frozen=True, slots=True)
class AnalysisWarning:
    kind: ErrorKind
    message: str
    issue_id: str | None = None

    @classmethod
    def from_error(cls, exc: MalformedInput) -> AnalysisWarning:
        return cls(kind=ErrorKind.MALFORMED_INPUT, message=str(exc), issue_id=exc.issue_id)
