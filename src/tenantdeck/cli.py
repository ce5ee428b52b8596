"""Click CLI for tenantdeck."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import click
import httpx
from trogon import tui

from tenantdeck import __version__
from tenantdeck.config import LOG_LEVELS, DeckConfig
from tenantdeck.deletion import DeleteController
from tenantdeck.dispatcher import legal_actions
from tenantdeck.errors import DeckError
from tenantdeck.forms import EDIT_CAVEAT
from tenantdeck.models import DEFAULT_IMAGE, DEFAULT_PORT, Project, ProjectAction
from tenantdeck.outcome import Outcome, OutcomeStatus
from tenantdeck.store import ProjectStore
from tenantdeck.workspace import Workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transport used for every control-plane call; None means real HTTP.
# Tests point this at an in-process control plane.
TRANSPORT: Optional[httpx.AsyncBaseTransport] = None


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    """Configure root logging for CLI and dashboard runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        filename=log_file,
        force=True,
    )


def make_workspace(ctx: click.Context) -> Workspace:
    """Build a workspace from the persisted config and CLI overrides."""
    obj = ctx.find_root().obj
    return Workspace.from_config(
        obj["config"],
        api_url=obj.get("api_url"),
        token=obj.get("token"),
        transport=TRANSPORT,
    )


def run(ctx: click.Context, body: Callable[[Workspace], Awaitable[T]]) -> T:
    """Run ``body`` against a fresh workspace, mapping failures to exit code 1."""

    async def runner() -> T:
        async with make_workspace(ctx) as workspace:
            return await body(workspace)

    try:
        return asyncio.run(runner())
    except DeckError as e:
        click.echo(f"Error: {e}", err=True)
        if getattr(e, "is_unauthorized", False):
            click.echo("Hint: run 'tenantdeck login' first.", err=True)
        raise SystemExit(1)


def finish(outcome: Outcome, success: str) -> None:
    """Print the outcome of a controller intent; exit 1 unless it succeeded."""
    if outcome.succeeded:
        click.echo(success)
        return
    if outcome.status is OutcomeStatus.CANCELLED:
        click.echo("Aborted.")
        return
    if outcome.status is OutcomeStatus.BUSY:
        click.echo(f"Error: project {outcome.project_id} is busy.", err=True)
    else:
        click.echo(f"Error: {outcome}", err=True)
    raise SystemExit(1)


def resolve_project(store: ProjectStore, ref: str) -> Project:
    """Find a cached project by id, subdomain or name."""
    project = store.get(ref)
    if project:
        return project
    for candidate in store:
        if candidate.subdomain == ref:
            return candidate
    matches = [p for p in store if p.name == ref]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise click.ClickException(f"'{ref}' matches {len(matches)} projects; use the id.")
    raise click.ClickException(f"Project '{ref}' not found.")


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="tenantdeck")
@click.option("--api-url", envvar="TENANTDECK_API_URL", help="Control plane base URL")
@click.option("--token", envvar="TENANTDECK_TOKEN", help="Bearer token (overrides saved login)")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default from config)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    api_url: Optional[str],
    token: Optional[str],
    log_level: Optional[str],
) -> None:
    """tenantdeck - manage your deployed applications.

    Create, edit, start, stop, deploy and delete container-backed
    projects served under per-project subdomains.

    Quick start:
        tenantdeck login              Sign in and save the token
        tenantdeck dashboard          Launch interactive TUI dashboard
        tenantdeck projects list      List your projects
        tenantdeck tui                Launch command explorer (Trogon)
    """
    config = DeckConfig.load()
    ctx.ensure_object(dict)
    ctx.obj.update(config=config, api_url=api_url, token=token)
    configure_logging(log_level or config.log_level, config.log_file)


@cli.command()
@click.pass_context
def dashboard(ctx: click.Context) -> None:
    """Launch the interactive TUI dashboard.

    Keyboard shortcuts:
        q - Quit
        r - Refresh
        n - New project
        e - Edit project
        s - Start / stop project
        p - Deploy (redeploy) project
        d - Delete project
        o - Open project URL
        l - Logout
    """
    from tenantdeck.tui import DeckApp

    config: DeckConfig = ctx.find_root().obj["config"]
    if not config.log_file:
        # Log records would be drawn over the dashboard
        logging.basicConfig(handlers=[logging.NullHandler()], force=True)

    workspace = make_workspace(ctx)
    app = DeckApp(workspace)
    app.run()


# =============================================================================
# Session Commands
# =============================================================================


@cli.command()
@click.option("--username", "-u", prompt=True, help="Account name")
@click.option("--password", "-p", prompt=True, hide_input=True, help="Account password")
@click.pass_context
def login(ctx: click.Context, username: str, password: str) -> None:
    """Sign in and save the issued token."""

    async def body(workspace: Workspace) -> None:
        await workspace.login(username, password)

    run(ctx, body)
    click.echo(f"✓ Logged in as {username}")


@cli.command()
@click.option("--username", "-u", prompt=True, help="Account name")
@click.option("--email", "-e", prompt=True, help="Contact email")
@click.option(
    "--password", "-p", prompt=True, hide_input=True, confirmation_prompt=True,
    help="Account password",
)
@click.pass_context
def register(ctx: click.Context, username: str, email: str, password: str) -> None:
    """Create a tenant account."""

    async def body(workspace: Workspace) -> None:
        await workspace.client.register(username, email, password)

    run(ctx, body)
    click.echo(f"✓ Registered {username}. Now run 'tenantdeck login'.")


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the saved token. No server call is made."""
    config: DeckConfig = ctx.find_root().obj["config"]
    if config.token:
        config.clear_token()
        click.echo("✓ Logged out")
    else:
        click.echo("Not logged in.")


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the signed-in tenant."""

    async def body(workspace: Workspace):
        if not workspace.session.authenticated:
            return None
        return await workspace.client.me()

    identity = run(ctx, body)
    if identity is None:
        click.echo("Not logged in.")
        return
    click.echo(f"{identity.username} (projects under *.{identity.base_domain})")


# =============================================================================
# Projects Commands
# =============================================================================


@cli.group()
def projects() -> None:
    """Manage deployed projects.

    Commands for listing, creating, editing, deleting and running projects.
    """
    pass


def _status_badge(project: Project) -> str:
    return "● running" if project.is_running else f"○ {project.status}"


@projects.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed information")
@click.option("--running", is_flag=True, help="Show only running projects")
@click.pass_context
def projects_list(ctx: click.Context, verbose: bool, running: bool) -> None:
    """List your projects."""

    async def body(workspace: Workspace):
        await workspace.startup()
        return workspace.store.projects, workspace.session

    items, session = run(ctx, body)
    if running:
        items = tuple(p for p in items if p.is_running)

    if not items:
        click.echo("No projects found.")
        return

    click.echo(f"\n📦 Projects ({session.greeting}):")
    click.echo("=" * 50)
    for project in items:
        click.echo(f"\n  {project.name} [{_status_badge(project)}]")
        click.echo(f"    {session.public_url(project)}")
        if verbose:
            click.echo(f"    ID: {project.id}")
            click.echo(f"    Image: {project.image_label}")
            if project.container_id:
                click.echo(f"    Container: {project.container_id}")
            actions = ", ".join(a.value for a in legal_actions(project))
            click.echo(f"    Actions: {actions}")

    click.echo(f"\nTotal: {len(items)} projects")


@projects.command("show")
@click.argument("ref")
@click.pass_context
def projects_show(ctx: click.Context, ref: str) -> None:
    """Show detailed information about a project.

    REF: Project id, subdomain or name
    """

    async def body(workspace: Workspace):
        await workspace.startup()
        project = resolve_project(workspace.store, ref)
        return await workspace.client.get_project(project.id), workspace.session

    project, session = run(ctx, body)
    click.echo(f"\n{'=' * 50}")
    click.echo(f"  {project.name}")
    click.echo(f"{'=' * 50}")
    click.echo(f"  ID: {project.id}")
    click.echo(f"  Status: {project.status}")
    click.echo(f"  URL: {session.public_url(project)}")
    click.echo(f"  Image: {project.image_name}")
    click.echo(f"  Port: {project.container_port}")
    click.echo(f"  Container: {project.container_id or '-'}")
    if project.created_at:
        click.echo(f"  Created: {project.created_at.strftime('%Y-%m-%d %H:%M')}")
    if project.updated_at:
        click.echo(f"  Updated: {project.updated_at.strftime('%Y-%m-%d %H:%M')}")
    click.echo()


@projects.command("create")
@click.option("--name", "-n", prompt="Project name", help="Display name")
@click.option("--subdomain", "-s", prompt="Subdomain", help="Subdomain (DNS label)")
@click.option("--image", "-i", default=DEFAULT_IMAGE, show_default=True, help="Container image")
@click.option("--port", "-p", default=str(DEFAULT_PORT), show_default=True, help="Container port")
@click.pass_context
def projects_create(ctx: click.Context, name: str, subdomain: str, image: str, port: str) -> None:
    """Create a new project (it is not deployed until you run deploy)."""

    async def body(workspace: Workspace) -> Outcome:
        forms = workspace.forms
        forms.open_create()
        forms.update(name=name, subdomain=subdomain, image=image, port=port)
        return await forms.submit()

    outcome = run(ctx, body)
    finish(outcome, f"✓ Created project: {name} ({subdomain})")


@projects.command("edit")
@click.argument("ref")
@click.option("--name", "-n", help="New display name")
@click.option("--subdomain", "-s", help="New subdomain")
@click.option("--image", "-i", help="New container image")
@click.option("--port", "-p", help="New container port")
@click.pass_context
def projects_edit(
    ctx: click.Context,
    ref: str,
    name: Optional[str],
    subdomain: Optional[str],
    image: Optional[str],
    port: Optional[str],
) -> None:
    """Edit a project's configuration.

    REF: Project id, subdomain or name
    """
    changes = {
        key: value
        for key, value in (("name", name), ("subdomain", subdomain), ("image", image), ("port", port))
        if value is not None
    }
    if not changes:
        click.echo("Nothing to change.")
        return

    async def body(workspace: Workspace) -> Outcome:
        await workspace.startup()
        project = resolve_project(workspace.store, ref)
        forms = workspace.forms
        forms.open_edit(project)
        forms.update(**changes)
        return await forms.submit()

    outcome = run(ctx, body)
    finish(outcome, f"✓ Updated project {outcome.project_id}. {EDIT_CAVEAT}")


@projects.command("delete")
@click.argument("ref")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def projects_delete(ctx: click.Context, ref: str, yes: bool) -> None:
    """Delete a project, stopping and removing its container.

    REF: Project id, subdomain or name
    """

    async def confirm(project: Optional[Project], project_id: str) -> bool:
        if yes:
            return True
        return click.confirm(DeleteController.prompt(project, project_id))

    async def body(workspace: Workspace) -> Outcome:
        await workspace.startup()
        project = resolve_project(workspace.store, ref)
        return await workspace.deleter.request_delete(project.id, confirm=confirm)

    outcome = run(ctx, body)
    finish(outcome, f"✓ Deleted project {outcome.project_id}")


def _action_command(action: ProjectAction, summary: str, done: str) -> None:
    @projects.command(action.value, help=f"{summary}\n\nREF: Project id, subdomain or name")
    @click.argument("ref")
    @click.pass_context
    def command(ctx: click.Context, ref: str) -> None:
        async def body(workspace: Workspace):
            await workspace.startup()
            project = resolve_project(workspace.store, ref)
            outcome = await workspace.dispatcher.dispatch(project.id, action)
            return outcome, workspace.store.get(project.id)

        outcome, project = run(ctx, body)
        status = f" (status: {project.status})" if project else ""
        finish(outcome, f"✓ {done} {outcome.project_id}{status}")


_action_command(ProjectAction.START, "Start a stopped project.", "Started")
_action_command(ProjectAction.STOP, "Stop a running project.", "Stopped")
_action_command(
    ProjectAction.DEPLOY,
    "Deploy (or redeploy) a project with its current configuration.",
    "Deployed",
)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group("config")
def config_group() -> None:
    """Inspect and change saved settings."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the current configuration."""
    config: DeckConfig = ctx.find_root().obj["config"]
    click.echo(f"Config file: {config.get_config_path()}")
    click.echo(f"  api_url: {config.api_url}")
    click.echo(f"  token: {'(saved)' if config.token else '(none)'}")
    click.echo(f"  timeout: {config.timeout}")
    click.echo(f"  theme: {config.theme}")
    click.echo(f"  close_form_on_send: {config.close_form_on_send}")
    click.echo(f"  log_level: {config.log_level}")
    click.echo(f"  log_file: {config.log_file or '-'}")


SETTABLE = {
    "api_url": str,
    "timeout": float,
    "theme": str,
    "close_form_on_send": lambda v: v.lower() in ("1", "true", "yes", "on"),
    "log_level": lambda v: v.upper(),
    "log_file": str,
}


@config_group.command("set")
@click.argument("key", type=click.Choice(sorted(SETTABLE)))
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Change one setting."""
    config: DeckConfig = ctx.find_root().obj["config"]
    try:
        converted = SETTABLE[key](value)
    except ValueError:
        click.echo(f"Error: invalid value for {key}: {value}", err=True)
        raise SystemExit(1)
    if key == "log_level" and converted not in LOG_LEVELS:
        click.echo(f"Error: log_level must be one of {', '.join(LOG_LEVELS)}", err=True)
        raise SystemExit(1)
    setattr(config, key, converted)
    config.save()
    click.echo(f"✓ {key} = {converted}")


@config_group.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Reset all settings (including the saved token) to defaults."""
    if not yes:
        click.confirm("Reset configuration to defaults?", abort=True)
    config: DeckConfig = ctx.find_root().obj["config"]
    config.reset()
    config.save()
    click.echo("✓ Configuration reset")


# =============================================================================
# Local Control Plane
# =============================================================================


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, help="Port to bind to")
@click.option("--base-domain", envvar="BASE_DOMAIN", default="localhost", help="Domain projects are routed under")
@click.option("--user", "users", multiple=True, help="Pre-register an account as NAME:PASSWORD")
def serve(host: str, port: int, base_domain: str, users: tuple[str, ...]) -> None:
    """Start a local in-memory control plane for development."""
    import uvicorn

    from tenantdeck.api import create_app

    accounts = {}
    for entry in users:
        username, sep, password = entry.partition(":")
        if not sep or not username or not password:
            click.echo(f"Error: --user expects NAME:PASSWORD, got '{entry}'", err=True)
            raise SystemExit(1)
        accounts[username] = password

    app = create_app(base_domain=base_domain, users=accounts)
    click.echo(f"Starting local control plane at http://{host}:{port}/api/v1")
    click.echo("Press Ctrl+C to stop")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
