"""Error taxonomy for the load generator.

Only ``ProvisioningError`` escalates to the top level. The other errors are
contained by the session that raised them: they bump a counter, append an
activity entry and end that session's lifecycle.
"""


class LoadTestError(Exception):
    """Base class for all chatload errors."""


class AuthError(LoadTestError):
    """Credential acquisition failed or returned a malformed credential."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ChannelConnectionError(LoadTestError):
    """The messaging channel could not be opened or the room join was rejected."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class MessageError(LoadTestError):
    """A send or receive on an open channel failed."""


class ProvisioningError(LoadTestError):
    """The target room could not be resolved. Fatal to the whole run."""
