"""Pure helpers and constants shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, TypeVar, cast

from mcp.types import TextContent

from stagewise.authorizer import Actor
from stagewise.errors import StagewiseError, Unauthorized
from stagewise.types.api import ErrorResponse, UnauthorizedError
from stagewise.validation import sanitize_actor, sanitize_role

if TYPE_CHECKING:
    from stagewise.core import StagewiseDB

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _parse_args(arguments: dict[str, Any], cls: type[_T]) -> _T:
    """Cast MCP arguments to a typed dict for static analysis.

    Safety: MCP SDK validates argument presence/types against JSON Schema
    before handler invocation. Core validates authoritatively. This cast()
    provides mypy type narrowing only; no runtime validation.
    """
    return cast(_T, arguments)


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(message: str, code: str) -> list[TextContent]:
    return _text(ErrorResponse(error=message, code=code))


def _validate_actor(actor: Any, role: Any = None) -> tuple[Actor | None, list[TextContent] | None]:
    """Sanitize actor and role, returning (Actor, None) or (None, error_response)."""
    cleaned, err = sanitize_actor(actor)
    if err:
        return None, _error(err, "validation_error")
    cleaned_role, err = sanitize_role("ordinary" if role is None else role)
    if err:
        return None, _error(err, "validation_error")
    return Actor(cleaned, cleaned_role), None


def _stagewise_error(tracker: StagewiseDB, project_id: str, exc: StagewiseError, actor: Actor | None = None) -> list[TextContent]:
    """Error envelope for an engine exception, with legal targets for Unauthorized."""
    if isinstance(exc, Unauthorized) and actor is not None:
        data: UnauthorizedError = {"error": str(exc), "code": exc.code, "legal_targets": []}
        try:
            data["legal_targets"] = [s.name for s in tracker.list_legal_transitions(project_id, actor)]
        except (KeyError, StagewiseError):
            logger.debug("Could not resolve legal targets for %s", project_id, exc_info=True)
        return _text(data)
    return _error(str(exc), exc.code)
