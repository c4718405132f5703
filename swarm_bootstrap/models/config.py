"""Bootstrap configuration model."""

import ipaddress
import os
import re
import socket
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from swarm_bootstrap.exceptions import ConfigError
from swarm_bootstrap.models.token import NodeRole

ENV_PREFIX = "SWARM_BOOTSTRAP_"

DEFAULT_METADATA_URL = "http://169.254.169.254/latest"

TokenSourceName = Literal["file", "ssh", "runtime"]

_HOSTNAME_PATTERN = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$", re.IGNORECASE
)


def _validate_host(v: str, field: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError(f"{field} cannot be empty")
    try:
        ipaddress.ip_address(v)
        return v
    except ValueError:
        pass
    if (
        len(v) > 253
        or not _HOSTNAME_PATTERN.match(v)
        or any(len(label) > 63 for label in v.split("."))
    ):
        raise ValueError(f"{field} '{v}' must be an IP address or a valid hostname")
    return v


class BootstrapConfig(BaseModel):
    """Configuration for one node's bootstrap run."""

    role: NodeRole
    manager_address: str | None = None
    max_retries: int = Field(default=10, ge=1)
    retry_interval_seconds: int = Field(default=30, ge=0)
    connect_timeout_seconds: int = Field(default=10, ge=1)
    swarm_port: int = Field(default=2377, ge=1, le=65535)
    advertise_address: str | None = None
    node_id: str = Field(default_factory=socket.gethostname)
    token_sources: list[TokenSourceName] = Field(default_factory=lambda: ["file", "ssh"])
    token_dir: Path = Path("/tmp")
    ssh_user: str = "ubuntu"
    ssh_key: Path | None = None
    docker_api_port: int = Field(default=2375, ge=1, le=65535)
    docker_host: str | None = None
    status_file: Path | None = None
    metadata_url: str = DEFAULT_METADATA_URL

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        """Accept role names in any case."""
        return NodeRole.parse(v)

    @field_validator("manager_address")
    @classmethod
    def validate_manager_address(cls, v: str | None) -> str | None:
        """Validate manager_address is an IP address or hostname."""
        if v is None:
            return v
        return _validate_host(v, "manager_address")

    @field_validator("advertise_address")
    @classmethod
    def validate_advertise_address(cls, v: str | None) -> str | None:
        """Validate advertise_address is an IP address or hostname."""
        if v is None:
            return v
        return _validate_host(v, "advertise_address")

    @field_validator("token_sources", mode="before")
    @classmethod
    def split_token_sources(cls, v):
        """Allow token sources as a comma-separated string (environment variables)."""
        if isinstance(v, str):
            v = [s.strip() for s in v.split(",") if s.strip()]
        if not v:
            raise ValueError("token_sources cannot be empty")
        return v

    @field_validator("node_id")
    @classmethod
    def validate_node_id(cls, v: str) -> str:
        """Validate node_id is not empty."""
        if not v.strip():
            raise ValueError("node_id cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def check_worker_has_manager(self) -> "BootstrapConfig":
        """Workers cannot bootstrap without knowing where the manager is."""
        if self.role == NodeRole.WORKER and not self.manager_address:
            raise ValueError("manager_address is required for WORKER nodes")
        return self

    @classmethod
    def create(cls, **data: Any) -> "BootstrapConfig":
        """Build a config, turning validation failures into ConfigError.

        Raises:
            ConfigError: If any field is missing or invalid
        """
        try:
            return cls(**data)
        except ValidationError as e:
            lines = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"]) or "config"
                lines.append(f"  - {field}: {error['msg']}")
            raise ConfigError("Invalid bootstrap configuration", "\n".join(lines))

    @staticmethod
    def env_values(environ: Mapping[str, str] | None = None) -> dict[str, str]:
        """Collect SWARM_BOOTSTRAP_* variables as config fields."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in BootstrapConfig.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if environ.get(key):
                values[name] = environ[key]
        return values

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "BootstrapConfig":
        """Load configuration from a YAML file, the environment and explicit overrides.

        Later sources win: file, then environment, then overrides. Overrides
        whose value is None are ignored.

        Raises:
            ConfigError: If the file cannot be read or the result is invalid
        """
        import yaml

        data: dict[str, Any] = {}
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(
                    f"Configuration file not found: {path}",
                    "Create the file or pass the settings as options or environment variables",
                )
            try:
                with open(path) as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Failed to parse configuration file: {path}", str(e))
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigError(
                    f"Configuration file must contain a mapping: {path}",
                    f"Got {type(loaded).__name__}",
                )
            data.update(loaded or {})

        data.update(cls.env_values(environ))
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.create(**data)

    def save(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        import yaml

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
