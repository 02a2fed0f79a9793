"""gitgate command line: run the server and the git hooks it installs"""

import sys
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from gitgate import __version__
from gitgate.core.config import get_settings
from gitgate.core.hooks import BranchProtectionHook, GitAncestryChecker

app = typer.Typer(
    name="gitgate",
    help="Self-hosted Git Smart HTTP server",
    context_settings={"help_option_names": ["-h", "--help"]},
    pretty_exceptions_enable=False,
    no_args_is_help=True,
)
hook_app = typer.Typer(help="Entry points for installed git hooks")
app.add_typer(hook_app, name="hook")

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"gitgate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """gitgate: serve bare repositories over Git Smart HTTP."""


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Run the HTTP server."""
    # Imported here so the hook command starts without loading FastAPI
    from gitgate.api.app import create_app

    settings = get_settings()
    try:
        application = create_app(settings)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e} (set GITGATE_JWT_SECRET)")
        raise typer.Exit(1)

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    console.print(
        f"[green]gitgate v{__version__}[/green] serving {settings.data_root} "
        f"on {bind_host}:{bind_port}"
    )
    uvicorn.run(application, host=bind_host, port=bind_port, log_config=None)


@hook_app.command("pre-receive")
def pre_receive():
    """
    Check pushed ref updates read from stdin.

    Git relays everything this command prints to the pushing client, so the
    only output is the rejection message, on stderr.
    """
    settings = get_settings()
    hook = BranchProtectionHook(
        settings.protected_branches,
        GitAncestryChecker(settings.git_binary_path),
    )

    result = hook.run(sys.stdin)
    if not result.accepted:
        typer.echo(f"Error: {result.message}", err=True)
        raise typer.Exit(1)
