# src/stagewise/notifications.py
"""Notification payloads for committed transitions.

The engine only renders subject/body text. Delivery belongs to whatever
dispatcher the surrounding system plugs in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from stagewise.pipeline import NotificationTemplate

if TYPE_CHECKING:
    from stagewise.core import Project, TransitionRecord
    from stagewise.pipeline import ProjectType

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = NotificationTemplate(
    subject="{project_id} moved to {to_stage}",
    body="{actor} moved {project_id} from {from_stage} to {to_stage}.\nReason: {reason}",
)

PLACEHOLDERS = (
    "project_id",
    "project_type",
    "description",
    "from_stage",
    "to_stage",
    "reason",
    "notes",
    "actor",
    "assignee",
)


class _SafeDict(dict[str, Any]):
    """Leaves unknown ``{placeholders}`` in the output instead of raising."""

    def __missing__(self, key: str) -> str:
        logger.debug("Unknown notification placeholder: %s", key)
        return "{" + key + "}"


@dataclass(frozen=True)
class NotificationPayload:
    subject: str
    body: str
    recipient_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"subject": self.subject, "body": self.body, "recipient_id": self.recipient_id}


def render(template: NotificationTemplate, values: dict[str, Any]) -> NotificationPayload:
    ctx = _SafeDict(values)
    return NotificationPayload(
        subject=template.subject.format_map(ctx),
        body=template.body.format_map(ctx),
        recipient_id=values.get("assignee") or None,
    )


def build_notification(project_type: ProjectType, project: Project, record: TransitionRecord) -> NotificationPayload:
    """Render the project type's template (or the default) for a committed move."""
    values = {
        "project_id": project.id,
        "project_type": project_type.display_name,
        "description": project.description,
        "from_stage": record.from_stage,
        "to_stage": record.to_stage,
        "reason": record.reason,
        "notes": record.notes,
        "actor": record.actor_id,
        "assignee": record.assignee_id or "",
    }
    return render(project_type.notification or DEFAULT_TEMPLATE, values)
