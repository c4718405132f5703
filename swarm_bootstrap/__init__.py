"""Docker Swarm node bootstrap coordinator."""

__version__ = "0.1.0"
