"""Custom exceptions for shell sessions and configuration transactions."""


class NetShellConfigError(Exception):
    """Common base exception for all netshell_config errors."""
    pass


class SSHConnectionError(NetShellConfigError):
    """Exception for dial, session, pty or shell failures."""
    pass


class SSHTimeoutError(SSHConnectionError):
    """Exception for SSH connection timeouts."""
    pass


class SSHSessionClosedError(SSHConnectionError):
    """Raised when a command waits on a session whose output stream has ended."""
    pass


class UnsupportedKindError(NetShellConfigError):
    """Raised when no shell dialect is registered for a device kind."""
    pass


class UnknownTransportError(NetShellConfigError):
    """Raised when a device asks for a transport that is not implemented."""
    pass


class RenderError(NetShellConfigError):
    """Exception for missing templates or failed rendering.

    Attributes:
        node: Name of the node being rendered.
        template: Name of the template involved.
    """

    def __init__(self, message: str, *, node: str, template: str) -> None:
        super().__init__(message)
        self.node = node
        self.template = template
