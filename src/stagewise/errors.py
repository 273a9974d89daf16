"""Exception taxonomy for the stage transition engine.

``validate_transition`` reports the user-correctable kinds (Unauthorized,
InvalidReason, ValidationError, ProjectClosed) as data rather than raising
them; the exception classes still exist so the committer and the surfaces
can raise them with the same names. ConfigurationError and
ConcurrentModification are always raised.
"""

from __future__ import annotations

from typing import Literal

ErrorKind = Literal[
    "Unauthorized",
    "InvalidReason",
    "ValidationError",
    "ConfigurationError",
    "ProjectClosed",
    "ConcurrentModification",
]


class StagewiseError(ValueError):
    """Base class for engine errors. ``kind`` names the taxonomy entry."""

    kind: ErrorKind = "ValidationError"
    code: str = "error"


class Unauthorized(StagewiseError):
    """The actor cannot reach the target stage from the current stage."""

    kind: ErrorKind = "Unauthorized"
    code = "unauthorized"

    def __init__(self, actor_id: str, from_stage: str, to_stage: str, allowed: list[str] | None = None) -> None:
        self.actor_id = actor_id
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.allowed = list(allowed or [])
        hint = f" Allowed targets: {', '.join(self.allowed)}." if self.allowed else " No transitions are available."
        super().__init__(f"Actor '{actor_id}' may not move a project from '{from_stage}' to '{to_stage}'.{hint}")


class InvalidReason(StagewiseError):
    """The change reason is not permitted for the target stage."""

    kind: ErrorKind = "InvalidReason"
    code = "invalid_reason"

    def __init__(self, reason: str, to_stage: str, valid_reasons: list[str] | None = None) -> None:
        self.reason = reason
        self.to_stage = to_stage
        self.valid_reasons = list(valid_reasons or [])
        super().__init__(f"Change reason '{reason}' is not valid for stage '{to_stage}'")


class ValidationError(StagewiseError):
    """One or more custom or approval fields are missing or malformed."""

    kind: ErrorKind = "ValidationError"
    code = "validation_error"

    def __init__(self, messages: list[str], fields: list[str] | None = None) -> None:
        self.messages = list(messages)
        self.fields = list(fields or [])
        super().__init__("; ".join(self.messages) or "Validation failed")


class ConfigurationError(StagewiseError):
    """Pipeline configuration is incomplete or a reference does not resolve."""

    kind: ErrorKind = "ConfigurationError"
    code = "configuration_error"


class ProjectClosed(StagewiseError):
    """The project already has a completion status."""

    kind: ErrorKind = "ProjectClosed"
    code = "project_closed"

    def __init__(self, project_id: str, completion_status: str) -> None:
        self.project_id = project_id
        self.completion_status = completion_status
        super().__init__(f"Project {project_id} is closed ({completion_status}) and accepts no further transitions")


class ConcurrentModification(StagewiseError):
    """The project changed between validation and commit."""

    kind: ErrorKind = "ConcurrentModification"
    code = "concurrent_modification"

    def __init__(self, project_id: str, detail: str = "") -> None:
        self.project_id = project_id
        msg = f"Project {project_id} was modified by another request"
        if detail:
            msg += f": {detail}"
        super().__init__(msg + ". Reload the project and try again.")
