"""CLI commands for pipeline configuration: types, type-info, reasons, fields, approval-fields."""

from __future__ import annotations

import json as json_mod
import sys

import click

from stagewise.cli_common import fail, get_db
from stagewise.db_transitions import approval_field_info, custom_field_info, reason_info
from stagewise.errors import ConfigurationError


@click.command("types")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def types_cmd(as_json: bool) -> None:
    """List all registered project types."""
    with get_db() as db:
        types_list = sorted(db.list_project_types(), key=lambda t: t["type"])
        if as_json:
            click.echo(json_mod.dumps(types_list, indent=2))
            return
        for t in types_list:
            stages = " -> ".join(s.name for s in db.pipelines.stages_for(t["type"]))
            click.echo(f"  {t['type']:<15} {stages}")


@click.command("type-info")
@click.argument("type_name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def type_info(type_name: str, as_json: bool) -> None:
    """Show the full pipeline for a project type."""
    with get_db() as db:
        info = db.get_project_type_info(type_name)
        if info is None:
            click.echo(f"Unknown type: {type_name}", err=True)
            sys.exit(1)
        if as_json:
            click.echo(json_mod.dumps(info, indent=2))
            return

        click.echo(f"{info['display_name']} ({info['type']})")
        if info["description"]:
            click.echo(f"  {info['description']}")
        click.echo("\n  Stages:")
        for s in info["stages"]:
            flags = []
            if s["max_instance_time_hours"]:
                flags.append(f"SLA {s['max_instance_time_hours']:g}h")
            if s["assigned_role_id"]:
                flags.append(f"role {s['assigned_role_id']}")
            if s["stage_approval_id"]:
                flags.append("gated")
            if s["is_final"]:
                flags.append("final")
            suffix = f" ({', '.join(flags)})" if flags else ""
            click.echo(f"    {s['order']}. {s['name']}{suffix}")
        click.echo("\n  Transitions:")
        click.echo(f"    elevated roles: {', '.join(info['elevated_roles']) or '(none)'}")
        for tier, table in info["allow_lists"].items():
            for from_stage, targets in table.items():
                click.echo(f"    [{tier}] {from_stage} -> {', '.join(targets)}")


@click.command("reasons")
@click.argument("stage_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def reasons(stage_id: str, as_json: bool) -> None:
    """List change reasons for moves into a stage (by stage id, e.g. standard/done)."""
    with get_db() as db:
        try:
            items = [reason_info(r) for r in db.list_reasons(stage_id)]
        except ConfigurationError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(items, indent=2))
            return
        if not items:
            click.echo("(no reasons configured)")
        for r in items:
            gated = " [approval]" if r["stage_approval_id"] else ""
            click.echo(f"  {r['reason']}{gated}  ({r['id']})")


@click.command("fields")
@click.argument("reason_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def fields(reason_id: str, as_json: bool) -> None:
    """List the custom fields a change reason collects."""
    with get_db() as db:
        try:
            items = [custom_field_info(f) for f in db.list_custom_fields(reason_id)]
        except ConfigurationError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(items, indent=2))
            return
        if not items:
            click.echo("(no fields)")
        for f in items:
            req = " (required)" if f["is_required"] else ""
            opts = f" [{', '.join(f['options'])}]" if "options" in f else ""
            click.echo(f"  {f['field_name']}: {f['field_type']}{req}{opts}")


@click.command("approval-fields")
@click.argument("approval_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def approval_fields(approval_id: str, as_json: bool) -> None:
    """List the fields of an approval gate."""
    with get_db() as db:
        try:
            items = [approval_field_info(f) for f in db.list_approval_fields(approval_id)]
        except ConfigurationError as e:
            fail(str(e), as_json=as_json, code=e.code)
        if as_json:
            click.echo(json_mod.dumps(items, indent=2))
            return
        for f in items:
            expect = ""
            if "expected_value_boolean" in f:
                expect = f" must be {str(f['expected_value_boolean']).lower()}"
            elif "expected_value_number" in f:
                expect = f" {f.get('comparison_type', 'equal_to')} {f['expected_value_number']:g}"
            click.echo(f"  {f['field_name']}: {f['field_type']}{expect}")
