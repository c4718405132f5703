"""Data models for swarm membership state."""

from enum import Enum


class MembershipStatus(str, Enum):
    """Swarm membership of the local node, as reported by the runtime."""

    UNCONFIGURED = "Unconfigured"
    MANAGER = "Manager"
    MEMBER = "Member"

    @property
    def is_active(self) -> bool:
        """Whether the node is part of a swarm in any role."""
        return self is not MembershipStatus.UNCONFIGURED


class JoinResult(str, Enum):
    """Successful outcomes of a join request."""

    JOINED = "Joined"
    ALREADY_MEMBER = "AlreadyMember"
