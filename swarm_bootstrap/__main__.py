"""Entry point for `python -m swarm_bootstrap`."""

from swarm_bootstrap.cli import app


def main() -> None:
    """Run the swarm-bootstrap CLI."""
    app()


if __name__ == "__main__":
    main()
