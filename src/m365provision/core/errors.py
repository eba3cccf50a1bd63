"""Errors raised by the directory and mailbox service adapters."""


class ServiceError(Exception):
    """A downstream service rejected an operation.

    The message is preserved verbatim so that operators can diagnose
    permanent failures and so that transient replication errors can be
    recognised by pattern.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DirectoryServiceError(ServiceError):
    """Raised when a Microsoft Graph call fails."""


class ExchangeCommandError(ServiceError):
    """Raised when an Exchange Online PowerShell command fails."""
