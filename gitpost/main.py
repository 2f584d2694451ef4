"""
gitpost — CLI Entry Point

Usage:
    gitpost serve [--host HOST] [--port PORT] [--debug] [--no-bootstrap]
    gitpost init-repo
    gitpost list-posts [--json]
    gitpost clean-orphans [--dry-run]
    gitpost check-config
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

# Find .env in project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
import sys
from typing import Optional

import click

from .config.loader import BlogConfig, generate_master_config_template, load_config
from .errors import ConfigError, GitPostError
from .logging_config import setup_logging
from .store.base import ContentStore
from .store.layout import RepoLayout


def _open_store(config: BlogConfig) -> ContentStore:
    """GitHub store for the configured repository."""
    from .store.github import GitHubContentStore
    return GitHubContentStore(config.require())


def _connect(ctx: click.Context):
    """(store, layout), exiting with a readable message on bad config."""
    config: BlogConfig = ctx.obj["config"]
    try:
        store = _open_store(config)
    except ConfigError as e:
        click.secho(f"✗ {e.message}", fg="red", err=True)
        click.echo("  Run 'gitpost check-config' for details.", err=True)
        sys.exit(2)
    return store, RepoLayout.from_config(config)


@click.group()
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """gitpost — Blog backend stored in a GitHub repository."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    if "config" not in ctx.obj:
        ctx.obj["config"] = load_config()


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 5000)")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
@click.option("--no-bootstrap", is_flag=True, help="Skip repository setup on start")
@click.pass_context
def serve(ctx: click.Context, host: str, port: Optional[int], debug: bool, no_bootstrap: bool) -> None:
    """Run the blog API server."""
    from .admin.server import create_app, run_server
    from .engine.bootstrap import RepoBootstrapper

    config: BlogConfig = ctx.obj["config"]
    store, layout = _connect(ctx)

    if not no_bootstrap:
        report = RepoBootstrapper(store, layout).run()
        for error in report.errors:
            click.secho(f"  ⚠ bootstrap: {error['file']}: {error['error']}", fg="yellow", err=True)

    app = create_app(store=store, config=config)
    run_server(app, host=host, port=port or config.port, debug=debug)


@cli.command("init-repo")
@click.pass_context
def init_repo(ctx: click.Context) -> None:
    """Create directories, index and README in the repository."""
    from .engine.bootstrap import RepoBootstrapper

    store, layout = _connect(ctx)
    report = RepoBootstrapper(store, layout).run()

    for path in report.created:
        click.secho(f"  + {path}", fg="green")
    for path in report.updated:
        click.secho(f"  ~ {path}", fg="yellow")
    for path in report.unchanged:
        click.echo(f"  = {path}")
    for error in report.errors:
        click.secho(f"  ✗ {error['file']}: {error['error']}", fg="red")

    if report.errors:
        sys.exit(1)


@cli.command("list-posts")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_posts(ctx: click.Context, as_json: bool) -> None:
    """List posts, newest first."""
    from .engine.sync import PostSyncEngine

    store, layout = _connect(ctx)
    posts = PostSyncEngine(store, layout).list_posts()

    if as_json:
        click.echo(json.dumps([p.to_record() for p in posts], indent=2, ensure_ascii=False))
        return

    if not posts:
        click.echo("No posts.")
        return
    for post in posts:
        media = len(post.content_files) + len(post.files)
        click.echo(f"{post.created_at[:19]:<20} {post.id}  {post.title}  ({media} file(s))")


@cli.command("clean-orphans")
@click.option("--dry-run", is_flag=True, help="Only report what would be deleted")
@click.pass_context
def clean_orphans(ctx: click.Context, dry_run: bool) -> None:
    """Delete media files no post references."""
    from .engine.cleanup import OrphanCollector

    store, layout = _connect(ctx)
    try:
        result = OrphanCollector(store, layout, progress=click.echo).collect(dry_run=dry_run)
    except GitPostError as e:
        click.secho(f"✗ Cleanup aborted: {e.message}", fg="red", err=True)
        sys.exit(1)

    if dry_run:
        for path in result.deleted:
            click.echo(f"  would delete {path}")
    for error in result.errors:
        click.secho(f"  ✗ {error['file']}: {error['error']}", fg="red")
    click.secho(result.message, bold=True)

    if result.errors:
        sys.exit(1)


@cli.command("check-config")
@click.option("--template", is_flag=True, help="Print a GITPOST_CONFIG template")
@click.pass_context
def check_config(ctx: click.Context, template: bool) -> None:
    """Check repository configuration."""
    if template:
        click.echo(generate_master_config_template())
        return

    config: BlogConfig = ctx.obj["config"]
    click.echo("\n📋 gitpost configuration\n")
    for key, value in config.describe().items():
        click.echo(f"  {key:<12} {value}")
    click.echo()

    missing = config.missing()
    if missing:
        click.secho(f"✗ Missing: {', '.join(missing)}", fg="red")
        sys.exit(1)
    click.secho("✓ Configuration complete", fg="green")


if __name__ == "__main__":
    cli()
