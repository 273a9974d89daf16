"""Shared CLI helpers used by ``cli.py`` and ``cli_commands/*.py``.

Provides ``get_db()`` and the small parsing/output helpers the command
modules share, without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import Any, NoReturn

import click

from stagewise.authorizer import Actor
from stagewise.core import STAGEWISE_DIR_NAME, StagewiseDB, find_stagewise_root
from stagewise.logging import setup_logging
from stagewise.validation import sanitize_actor, sanitize_role


def get_db() -> StagewiseDB:
    """Discover .stagewise/ and return an initialized StagewiseDB."""
    try:
        stagewise_dir = find_stagewise_root()
    except FileNotFoundError:
        click.echo(f"No {STAGEWISE_DIR_NAME}/ found. Run 'stagewise init' first.", err=True)
        sys.exit(1)
    setup_logging(stagewise_dir)
    return StagewiseDB.from_project(stagewise_dir.parent)


def fail(message: str, *, as_json: bool = False, code: str = "error", **extra: Any) -> NoReturn:
    """Report an error (stderr, or a JSON envelope on stdout) and exit 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message, "code": code, **extra}, indent=2, default=str))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def get_actor(ctx: click.Context, *, as_json: bool = False) -> Actor:
    """The acting user from the global ``--actor``/``--role`` options."""
    actor_id, err = sanitize_actor(ctx.obj["actor"])
    if err:
        fail(err, as_json=as_json, code="validation_error")
    role, err = sanitize_role(ctx.obj["role"])
    if err:
        fail(err, as_json=as_json, code="validation_error")
    return Actor(actor_id, role)


def parse_pairs(pairs: tuple[str, ...], *, option: str, as_json: bool = False) -> dict[str, str]:
    """Parse repeated ``key=value`` options into a dict of raw strings."""
    parsed: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            fail(f"Invalid {option} format: {pair} (expected key=value)", as_json=as_json, code="validation_error")
        key, value = pair.split("=", 1)
        parsed[key.strip()] = value
    return parsed


_TRUE = frozenset({"true", "yes", "y", "1"})
_FALSE = frozenset({"false", "no", "n", "0"})


def coerce_value(raw: str, field_type: str | None) -> Any:
    """Turn a CLI string into the JSON value a field of *field_type* expects.

    Strings that don't fit are passed through so the validator reports them.
    """
    if field_type == "boolean":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        return raw
    if field_type == "multi_select":
        if raw.lstrip().startswith("["):
            try:
                return json_mod.loads(raw)
            except json_mod.JSONDecodeError:
                return raw
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw
