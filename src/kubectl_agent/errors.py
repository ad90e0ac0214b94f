"""Exception hierarchy for kubectl-agent.

Errors are grouped the way they are handled: configuration problems stop a
single server from starting, connection and discovery problems leave a server
out of the live set, invocation problems end the current round, and protocol
violations mean the model backend broke its contract.
"""


class KubectlAgentError(Exception):
    """Base class for all kubectl-agent errors."""


class ConfigError(KubectlAgentError):
    """Raised when a server registry or agent config is missing, unreadable or invalid."""


class McpConnectionError(KubectlAgentError):
    """Raised when a tool server cannot be started, handshaken or verified."""

    def __init__(self, server: str, message: str) -> None:
        super().__init__(f"MCP server '{server}': {message}")
        self.server = server


class NotConnectedError(KubectlAgentError):
    """Raised when an operation needs a live connection that does not exist."""


class ConnectAllError(KubectlAgentError):
    """Raised when one or more configured servers failed to connect."""

    def __init__(self, errors: dict[str, Exception]) -> None:
        names = ", ".join(sorted(errors))
        super().__init__(f"failed to connect to some MCP servers: {names}")
        self.errors = errors


class CloseError(KubectlAgentError):
    """Raised when one or more clients failed to close cleanly."""

    def __init__(self, errors: dict[str, Exception]) -> None:
        details = "; ".join(f"{name}: {err}" for name, err in sorted(errors.items()))
        super().__init__(f"errors while closing MCP clients: {details}")
        self.errors = errors


class ToolDiscoveryError(KubectlAgentError):
    """Raised when connected servers did not answer a tool listing."""

    def __init__(self, servers: list[str]) -> None:
        super().__init__(f"tool discovery failed for: {', '.join(servers)}")
        self.servers = servers


class ToolNotFoundError(KubectlAgentError):
    """Raised when the model asks for a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"tool '{name}' not found")
        self.name = name


class ServerNotConnectedError(KubectlAgentError):
    """Raised when a proxied tool's server is no longer connected."""

    def __init__(self, server: str) -> None:
        super().__init__(f"MCP server '{server}' not connected")
        self.server = server


class ToolExecutionError(KubectlAgentError):
    """Raised when a tool ran but reported failure."""


class ProtocolViolationError(KubectlAgentError):
    """Raised when a model response does not have the expected shape."""


class MaxIterationsError(KubectlAgentError):
    """Raised when a round used its whole iteration budget without finishing."""

    def __init__(self, iterations: int) -> None:
        super().__init__(f"max iterations reached ({iterations})")
        self.iterations = iterations
