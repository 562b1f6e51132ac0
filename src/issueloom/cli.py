"""CLI for the issueloom tracker.

Convention-based: discovers .issueloom/ by walking up from cwd unless
``--db`` (or ``ISSUELOOM_DB``) names a database file inside the project.

Usage:
    issueloom init                              # Initialize .issueloom/ in cwd
    issueloom --db data/issues.db init          # Initialize an explicit database file
    issueloom mcp                               # Run the MCP server on stdio
    issueloom viewer --port 3000                # Serve the JSON API on 127.0.0.1
    issueloom list --status=open                # List issues
    issueloom show ERR-001                      # Show issue details
    issueloom summary                           # Backlog summary
    issueloom systems                           # System names in use
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path

import click

from issueloom import __version__
from issueloom.core import (
    CONFIG_FILENAME,
    DB_FILENAME,
    ISSUELOOM_DIR_NAME,
    IssueloomDB,
    find_issueloom_root,
    limits_from_config,
    read_config,
    validate_db_path,
    write_config,
)
from issueloom.db_base import NotFound
from issueloom.validation import (
    ALLOWED_CATEGORIES,
    ALLOWED_PRIORITIES,
    ALLOWED_STATUSES,
    DEFAULT_LIMITS,
    REVIEWER_ROLE,
    parse_filters,
)


def _resolve_db_path(ctx: click.Context) -> Path:
    """The --db path (checked to be inside cwd) or the discovered .issueloom/ database."""
    raw = ctx.obj.get("db")
    if raw:
        try:
            return validate_db_path(raw)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    try:
        issueloom_dir = find_issueloom_root()
    except FileNotFoundError:
        click.echo(f"No {ISSUELOOM_DIR_NAME}/ found. Run 'issueloom init' first.", err=True)
        sys.exit(1)
    return issueloom_dir / DB_FILENAME


def _get_db(ctx: click.Context) -> IssueloomDB:
    """Open and initialize the database for this invocation."""
    db_path = _resolve_db_path(ctx)
    config = read_config(db_path.parent)
    db = IssueloomDB(
        db_path,
        limits=limits_from_config(config),
        reviewer_role=config.get("reviewer_role", REVIEWER_ROLE),
    )
    db.initialize()
    return db


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="issueloom")
@click.option(
    "--db",
    envvar="ISSUELOOM_DB",
    default=None,
    help=f"Database file inside the project (default: discover {ISSUELOOM_DIR_NAME}/{DB_FILENAME})",
)
@click.pass_context
def cli(ctx: click.Context, db: str | None) -> None:
    """issueloom: issue tracker for AI agent teams."""
    ctx.ensure_object(dict)
    ctx.obj["db"] = db


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize .issueloom/ in the current directory (or the --db file)."""
    if ctx.obj.get("db"):
        db_path = _resolve_db_path(ctx)
        with IssueloomDB(db_path) as db:
            db.initialize()
        click.echo(f"Issue tracker database initialized at: {db_path}")
        return

    cwd = Path.cwd()
    issueloom_dir = cwd / ISSUELOOM_DIR_NAME

    if issueloom_dir.exists():
        click.echo(f"{ISSUELOOM_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        with IssueloomDB(issueloom_dir / DB_FILENAME) as db:
            db.initialize()
        return

    issueloom_dir.mkdir()
    write_config(
        issueloom_dir,
        {"version": 1, "reviewer_role": REVIEWER_ROLE, "limits": {"bulk": DEFAULT_LIMITS.bulk}},
    )
    with IssueloomDB(issueloom_dir / DB_FILENAME) as db:
        db.initialize()

    click.echo(f"Initialized {ISSUELOOM_DIR_NAME}/ in {cwd}")
    click.echo(f"  Database: {issueloom_dir / DB_FILENAME}")
    click.echo(f"  Config:   {issueloom_dir / CONFIG_FILENAME}")
    click.echo("\nNext: issueloom mcp")


@cli.command()
@click.pass_context
def mcp(ctx: click.Context) -> None:
    """Run the MCP server on stdio."""
    from issueloom.mcp_server import main as mcp_main

    argv = ["--db", ctx.obj["db"]] if ctx.obj.get("db") else []
    mcp_main(argv)


@cli.command()
@click.option("--port", default=3000, type=click.IntRange(1, 65535), help="Port (default 3000)")
@click.pass_context
def viewer(ctx: click.Context, port: int) -> None:
    """Serve the JSON API for the browser viewer on 127.0.0.1."""
    from issueloom.dashboard import main as dashboard_main

    dashboard_main(_resolve_db_path(ctx), port)


@cli.command("list")
@click.option("--status", type=click.Choice(ALLOWED_STATUSES), default=None, help="Filter by status")
@click.option("--category", type=click.Choice(ALLOWED_CATEGORIES), default=None, help="Filter by category")
@click.option("--system", "related_system", default=None, help="Filter by related system")
@click.option("--iteration", default=None, help="Filter by iteration")
@click.option("--priority", type=click.Choice(ALLOWED_PRIORITIES), default=None, help="Filter by priority")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_issues(
    ctx: click.Context,
    status: str | None,
    category: str | None,
    related_system: str | None,
    iteration: str | None,
    priority: str | None,
    as_json: bool,
) -> None:
    """List issues with optional filters."""
    try:
        filters = parse_filters(
            {
                "status": status,
                "category": category,
                "related_system": related_system,
                "iteration": iteration,
                "priority": priority,
            }
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    with _get_db(ctx) as db:
        issues = db.list_issues(filters)

    if as_json:
        click.echo(json_mod.dumps([i.to_dict() for i in issues], indent=2, default=str))
        return

    for issue in issues:
        blocked_marker = f" (blocked by {', '.join(issue.blocked_by)})" if issue.blocked_by else ""
        click.echo(
            f"{issue.issue_number:<9} {issue.status:<12} {issue.priority:<8} "
            f"[{issue.related_system}] {issue.title}{blocked_marker}"
        )
    click.echo(f"\n{len(issues)} issues")


@cli.command()
@click.argument("issue_number")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, issue_number: str, as_json: bool) -> None:
    """Show issue details."""
    with _get_db(ctx) as db:
        result = db.get_issue(issue_number)

    if isinstance(result, NotFound):
        click.echo(result.message, err=True)
        sys.exit(1)

    if as_json:
        click.echo(json_mod.dumps(result.to_dict(), indent=2, default=str))
        return

    issue = result.issue
    click.echo(f"Issue:    {issue.issue_number}")
    click.echo(f"Title:    {issue.title}")
    click.echo(f"Category: {issue.category}")
    click.echo(f"System:   {issue.related_system}")
    click.echo(f"Status:   {issue.status}")
    click.echo(f"Priority: {issue.priority}")
    click.echo(f"Created:  {issue.created_at} by {issue.created_by}")
    if issue.iteration:
        click.echo(f"Iteration: {issue.iteration}")
    if issue.resolved_at:
        click.echo(f"Resolved: {issue.resolved_at}")
    if issue.blocked_by:
        click.echo(f"Blocked by: {', '.join(issue.blocked_by)}")
    click.echo(f"\n{issue.description}")
    if result.relations:
        click.echo("\nRelations:")
        for rel in result.relations:
            arrow = "->" if rel["direction"] == "outgoing" else "<-"
            click.echo(f"  #{rel['id']} {arrow} {rel['relation_type']} {rel['related_issue']}")
    if result.comments:
        click.echo("\nComments:")
        for c in result.comments:
            click.echo(f"  [{c.created_at}] {c.author}: {c.content}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def summary(ctx: click.Context, as_json: bool) -> None:
    """Backlog summary: status counts, open work per system, blockers."""
    with _get_db(ctx) as db:
        data = db.get_summary()

    if as_json:
        click.echo(json_mod.dumps(data, indent=2, default=str))
        return

    click.echo(f"Total issues: {data['total_issues']}")
    for row in data["status_summary"]:
        click.echo(f"  {row['status']:<12} {row['count']}")
    if data["system_category_distribution"]:
        click.echo("\nUnresolved by system:")
        for row in data["system_category_distribution"]:
            click.echo(f"  {row['related_system']:<24} {row['category']:<14} {row['count']}")
    if data["blocked_issues"]:
        click.echo("\nBlocked:")
        for pair in data["blocked_issues"]:
            click.echo(f"  {pair['blocked_issue']} blocked by {pair['blocked_by']}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def systems(ctx: click.Context, as_json: bool) -> None:
    """List the related_system names in use."""
    with _get_db(ctx) as db:
        names = db.distinct_systems()
    if as_json:
        click.echo(json_mod.dumps(names))
        return
    for name in names:
        click.echo(name)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
