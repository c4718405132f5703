"""Data models for swarm join tokens."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NodeRole(str, Enum):
    """Role a node holds in the swarm."""

    MANAGER = "MANAGER"
    WORKER = "WORKER"

    @classmethod
    def parse(cls, value: "str | NodeRole") -> "NodeRole":
        """Parse a role name case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            allowed = [r.value for r in cls]
            raise ValueError(f"role must be one of {allowed}, got '{value}'")

    @property
    def token_kind(self) -> str:
        """Role name as used by `docker swarm join-token`."""
        return self.value.lower()


class ClusterToken(BaseModel):
    """Opaque secret authorizing a node to join the swarm in a given role.

    Issued once by the initializing manager and shared read-only with joiners.
    The raw secret is only available through ``value``; ``str()`` and ``repr()``
    show a masked form so tokens can be logged.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(repr=False)
    role: NodeRole = NodeRole.WORKER
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: str) -> str:
        """Validate the token is a single non-empty word."""
        v = v.strip()
        if not v:
            raise ValueError("token value cannot be empty")
        if any(c.isspace() for c in v):
            raise ValueError("token value cannot contain whitespace")
        return v

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        """Accept role names in any case."""
        return NodeRole.parse(v)

    def masked(self) -> str:
        """Return the token with everything but its prefix hidden."""
        if len(self.value) <= 12:
            return "***"
        return f"{self.value[:12]}..."

    def __str__(self) -> str:
        return f"{self.role.token_kind} token {self.masked()}"
