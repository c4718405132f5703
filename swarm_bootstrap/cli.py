"""Main CLI entry point for swarm bootstrap."""

import signal
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from swarm_bootstrap.exceptions import ConfigError, RuntimeCommandError
from swarm_bootstrap.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="swarm-bootstrap",
    help="Bootstrap Docker Swarm manager and worker nodes",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def _config_error(e: ConfigError) -> None:
    err_console.print(f"[red]Configuration Error:[/red] {escape(e.message)}")
    if e.details:
        err_console.print(escape(e.details))


# Global callback to set up logging
@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(
        None, "--log-file", help="Path to log file (e.g. /var/log/docker-swarm-setup.log)"
    ),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


@app.command()
def version() -> None:
    """Show version information."""
    from swarm_bootstrap import __version__

    typer.echo(f"swarm-bootstrap version {__version__}")


@app.command()
def bootstrap(
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    role: str | None = typer.Option(None, "--role", "-r", help="Node role: manager or worker"),
    manager_address: str | None = typer.Option(
        None, "--manager-address", "-m", help="Private address of the swarm manager"
    ),
    max_retries: int | None = typer.Option(None, "--max-retries", help="Join attempt budget"),
    retry_interval: int | None = typer.Option(
        None, "--retry-interval", help="Seconds to wait between join attempts"
    ),
    connect_timeout: int | None = typer.Option(
        None, "--connect-timeout", help="Seconds to wait when connecting to the manager"
    ),
    swarm_port: int | None = typer.Option(None, "--swarm-port", help="Swarm management port"),
    advertise_address: str | None = typer.Option(
        None, "--advertise-address", help="Address to advertise (default: instance private IP)"
    ),
    node_id: str | None = typer.Option(None, "--node-id", help="Node name (default: hostname)"),
    token_sources: list[str] | None = typer.Option(
        None, "--token-source", "-s", help="Token backend, repeatable: file, ssh or runtime"
    ),
    token_dir: Path | None = typer.Option(None, "--token-dir", help="Directory of token files"),
    ssh_user: str | None = typer.Option(None, "--ssh-user", help="SSH user on the manager"),
    ssh_key: Path | None = typer.Option(None, "--ssh-key", help="SSH identity file"),
    status_file: Path | None = typer.Option(
        None, "--status-file", help="File to write SETUP_COMPLETE / SETUP_FAILED to"
    ),
) -> None:
    """
    Initialize the swarm (manager) or join it (worker).

    Settings come from the --config file, then SWARM_BOOTSTRAP_* environment
    variables, then command line options. Exits 0 once the node is in the swarm,
    1 when joining gave up and 2 on invalid configuration.
    """
    from swarm_bootstrap.models.config import BootstrapConfig
    from swarm_bootstrap.models.node import NodeStatus
    from swarm_bootstrap.orchestrator import BootstrapOrchestrator, ExitCode

    try:
        config = BootstrapConfig.load(
            config_file,
            role=role,
            manager_address=manager_address,
            max_retries=max_retries,
            retry_interval_seconds=retry_interval,
            connect_timeout_seconds=connect_timeout,
            swarm_port=swarm_port,
            advertise_address=advertise_address,
            node_id=node_id,
            token_sources=token_sources or None,
            token_dir=token_dir,
            ssh_user=ssh_user,
            ssh_key=ssh_key,
            status_file=status_file,
        )
    except ConfigError as e:
        logger.error(f"Configuration error: {e.message}")
        _config_error(e)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR)

    cancel_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.warning(f"Received signal {signum}, cancelling bootstrap")
        cancel_event.set()

    previous_handlers = {
        sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        orchestrator = BootstrapOrchestrator(config, cancel_event=cancel_event)
        exit_code = orchestrator.run()
    except Exception as e:
        logger.error(f"Unexpected error during bootstrap: {e}", exc_info=True)
        err_console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
        err_console.print("\nRun with --verbose --log-file debug.log for more details")
        raise typer.Exit(code=ExitCode.FAILED)
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)

    summary = escape(orchestrator.record.summary())
    if orchestrator.record.status == NodeStatus.MEMBER:
        console.print(f"[green]✓[/green] {summary}")
    else:
        err_console.print(f"[red]✗[/red] {summary}")
    raise typer.Exit(code=int(exit_code))


@app.command()
def status(
    docker_host: str | None = typer.Option(
        None, "--docker-host", "-H", help="Docker engine to query (default: local)"
    ),
) -> None:
    """
    Show swarm membership of this node.

    Exits 0 when the swarm is active on the node (manager or worker) and 1
    otherwise, so it can be used as a health check.
    """
    from swarm_bootstrap.runtime import DockerSwarmRuntime

    try:
        membership = DockerSwarmRuntime(docker_host=docker_host).current_status()
    except RuntimeCommandError as e:
        err_console.print(f"[red]Docker Error:[/red] {escape(e.message)}")
        if e.details:
            err_console.print(escape(e.details))
        raise typer.Exit(code=1)

    if membership.is_active:
        console.print(f"[green]Swarm is active[/green] ({membership.value})")
        return

    console.print("[yellow]Swarm is not active[/yellow]")
    raise typer.Exit(code=1)


@app.command()
def probe(
    host: str = typer.Argument(..., help="Host to test"),
    port: int = typer.Option(2377, "--port", "-p", help="TCP port to test"),
    timeout: int = typer.Option(10, "--timeout", "-t", help="Connect timeout in seconds"),
) -> None:
    """Test connectivity to a swarm manager port."""
    from swarm_bootstrap.prober import ProbeResult, ReachabilityProber

    result = ReachabilityProber().probe(host, port, timeout)
    if result == ProbeResult.REACHABLE:
        console.print(f"[green]✓[/green] {escape(host)}:{port} is reachable")
        return

    console.print(f"[red]✗[/red] Cannot connect to {escape(host)}:{port}")
    raise typer.Exit(code=1)


@app.command()
def token(
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    manager_address: str | None = typer.Option(
        None, "--manager-address", "-m", help="Private address of the swarm manager"
    ),
    token_sources: list[str] | None = typer.Option(
        None, "--token-source", "-s", help="Token backend, repeatable: file, ssh or runtime"
    ),
    token_dir: Path | None = typer.Option(None, "--token-dir", help="Directory of token files"),
    show: bool = typer.Option(False, "--show", help="Print the full token instead of a masked one"),
) -> None:
    """Fetch the worker join token once through the configured backends."""
    from swarm_bootstrap.models.config import BootstrapConfig
    from swarm_bootstrap.token_store import build_token_source

    try:
        config = BootstrapConfig.load(
            config_file,
            role="WORKER",
            manager_address=manager_address,
            token_sources=token_sources or None,
            token_dir=token_dir,
        )
    except ConfigError as e:
        _config_error(e)
        raise typer.Exit(code=2)

    join_token = build_token_source(config).fetch_token(config.manager_address)
    if join_token is None:
        err_console.print(
            f"[yellow]No join token available from {escape(config.manager_address)}[/yellow]"
        )
        raise typer.Exit(code=1)

    if show:
        typer.echo(join_token.value)
    else:
        console.print(escape(str(join_token)))
