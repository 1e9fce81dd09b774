"""Exception types for nodeagent."""


class NodeAgentError(Exception):
    """Base class for all nodeagent errors."""


class ReadError(NodeAgentError):
    """The counter source was unreadable or malformed."""


class TransmitError(NodeAgentError):
    """A snapshot could not be delivered to the aggregator."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigError(NodeAgentError):
    """Invalid agent configuration."""
