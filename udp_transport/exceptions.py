"""
Custom exceptions for the UDP transport relay.
"""


class RelayError(Exception):
    """Base exception for all relay errors."""
    pass


class ConfigurationError(RelayError):
    """Raised when configuration is invalid or incomplete."""
    pass


class ResolutionError(RelayError):
    """Raised when an address/service lookup fails."""

    def __init__(self, host, port, code=None, message=None):
        self.host = host
        self.port = port
        self.code = code
        self.message = message
        target = f"{host}:{port}" if host is not None else f"<passive>:{port}"
        super().__init__(f"Failed to resolve {target}: {message} (code={code})")


class BindError(RelayError):
    """Raised when the local socket cannot be created or bound."""

    def __init__(self, port, errno=None, message=None):
        self.port = port
        self.errno = errno
        super().__init__(f"Failed to bind local port {port}: {message}")


class StreamClosed(RelayError):
    """Raised when the local input stream reaches end of file."""
    pass


class FatalIO(RelayError):
    """Raised on any non-recoverable I/O error on the stream or the socket."""

    def __init__(self, operation, errno=None, message=None):
        self.operation = operation
        self.errno = errno
        super().__init__(f"{operation} failed: {message} (errno={errno})")
