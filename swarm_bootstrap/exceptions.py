"""Custom exceptions for swarm bootstrap."""

from enum import Enum


class SwarmBootstrapError(Exception):
    """Base exception for all swarm bootstrap errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ConfigError(SwarmBootstrapError):
    """Exception raised for invalid bootstrap configuration. Never retried."""

    pass


class TransientNetworkError(SwarmBootstrapError):
    """Exception raised when the manager cannot be reached."""

    pass


class TokenUnavailableError(SwarmBootstrapError):
    """Exception raised when no join token could be obtained."""

    pass


class ProtocolError(SwarmBootstrapError):
    """Exception raised when the manager rejects the join protocol (e.g. stale token)."""

    pass


class AlreadyInitializedError(SwarmBootstrapError):
    """Exception raised when initializing a node that is already part of a swarm."""

    pass


class RuntimeCommandError(SwarmBootstrapError):
    """Exception raised when a docker or ssh command fails."""

    def __init__(self, message: str, details: str = None, stderr: str = "", returncode: int = None):
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message, details)


class MetadataError(SwarmBootstrapError):
    """Exception raised when the instance metadata service cannot be queried."""

    pass


class InvalidTransitionError(SwarmBootstrapError):
    """Exception raised when a node record is moved backwards or past its budget."""

    pass


class JoinFailureReason(str, Enum):
    """Reasons a swarm join can fail."""

    INVALID_TOKEN = "InvalidToken"
    NETWORK_ERROR = "NetworkError"
    ALREADY_MEMBER = "AlreadyMember"
    TIMEOUT = "Timeout"


class JoinError(SwarmBootstrapError):
    """Exception raised when joining the swarm fails."""

    def __init__(self, reason: JoinFailureReason, message: str, details: str = None):
        self.reason = reason
        super().__init__(message, details)
