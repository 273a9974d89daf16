"""CLI for the stagewise stage transition engine.

Convention-based: discovers .stagewise/ by walking up from cwd.

Usage:
    stagewise init                                       # Initialize .stagewise/ in cwd
    stagewise types                                      # List project types
    stagewise type-info standard                         # Show a pipeline
    stagewise reasons standard/done                      # Reasons for moves into a stage
    stagewise fields standard/in_progress/rework         # Fields a reason collects
    stagewise approval-fields standard/approval/sign_off # Fields of an approval gate
    stagewise create standard -d "Q3 close"              # Create project
    stagewise transitions <id>                           # Legal targets for the actor
    stagewise validate <id> --to done -r finished        # Check a move
    stagewise move <id> --to done -r finished -a signed_off=true
    stagewise bulk-eligibility standard in_progress      # Can projects move together?
    stagewise bulk-move <id> <id> --to in_progress -r assigned
    stagewise complete <id>                              # Close a project in a final stage
    stagewise history <id>                               # Transition audit trail
    stagewise clock <id>                                 # Business time in current stage
    stagewise overdue                                    # Projects past their stage limit
"""

from __future__ import annotations

from pathlib import Path

import click

from stagewise import __version__
from stagewise.clock import BusinessCalendar
from stagewise.core import (
    DB_FILENAME,
    PIPELINES_DIRNAME,
    STAGEWISE_DIR_NAME,
    StagewiseDB,
    read_config,
    write_config,
)


@click.group()
@click.version_option(version=__version__, prog_name="stagewise")
@click.option("--actor", default="cli", help="Actor identity for audit trail (default: cli)")
@click.option("--role", default="ordinary", help="Actor role used for transition checks (default: ordinary)")
@click.pass_context
def cli(ctx: click.Context, actor: str, role: str) -> None:
    """Stagewise: configurable stage pipelines for projects."""
    ctx.ensure_object(dict)
    ctx.obj["actor"] = actor
    ctx.obj["role"] = role


@cli.command()
@click.option("--prefix", default=None, help="ID prefix for projects (default: directory name)")
def init(prefix: str | None) -> None:
    """Initialize .stagewise/ in the current directory."""
    cwd = Path.cwd()
    stagewise_dir = cwd / STAGEWISE_DIR_NAME

    if stagewise_dir.exists():
        click.echo(f"{STAGEWISE_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(stagewise_dir)
        with StagewiseDB(stagewise_dir / DB_FILENAME, prefix=config.get("prefix", "sw")) as db:
            db.initialize()
        return

    prefix = prefix or cwd.name
    stagewise_dir.mkdir()
    (stagewise_dir / PIPELINES_DIRNAME).mkdir()
    write_config(stagewise_dir, {"prefix": prefix, "version": 1, "business_hours": BusinessCalendar().to_config()})

    with StagewiseDB(stagewise_dir / DB_FILENAME, prefix=prefix) as db:
        db.initialize()

    click.echo(f"Initialized {STAGEWISE_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {stagewise_dir / DB_FILENAME}")
    click.echo(f"  Custom pipelines: {stagewise_dir / PIPELINES_DIRNAME}/*.json")


def _register_commands() -> None:
    from stagewise.cli_commands import pipeline, projects

    for command in (
        pipeline.types_cmd,
        pipeline.type_info,
        pipeline.reasons,
        pipeline.fields,
        pipeline.approval_fields,
        projects.create,
        projects.show,
        projects.list_projects,
        projects.transitions,
        projects.validate_cmd,
        projects.move,
        projects.bulk_eligibility,
        projects.bulk_move,
        projects.complete,
        projects.history,
        projects.clock,
        projects.overdue,
        projects.assign_role,
        projects.roles,
    ):
        cli.add_command(command)


_register_commands()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
