"""Error taxonomy for the request pipeline.

Every error raised while dispatching a request ends at the error
boundary in ``collectra.api.app``, which logs it at ``level`` and
answers with ``status`` and ``{"success": false, "message": ...}``.
"""

import logging
from typing import Literal

LogLevel = Literal["informative", "warning", "error"]

LOG_LEVELS: dict[str, int] = {
    "informative": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class CollectraError(Exception):
    """Base exception carrying an HTTP status and a log level."""

    status: int = 500
    level: LogLevel = "error"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        level: LogLevel | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if level is not None:
            self.level = level


class MalformedInput(CollectraError):
    """Caller-supplied data failed structural parsing."""

    status = 400
    level = "informative"


class PersistenceError(CollectraError):
    """The underlying storage call failed."""

    status = 500


class HookTimeout(CollectraError):
    """A hook or plugin transform exceeded the configured timeout."""

    status = 500
    level = "warning"


class ConfigurationError(CollectraError):
    """Collection metadata is invalid. Raised at boot."""


class PluginError(CollectraError):
    """A plugin could not be found or resolved."""

    status = 404
    level = "warning"


class ClientDisconnected(CollectraError):
    """The client went away before the operation was persisted."""

    status = 499
    level = "informative"


class UnhandledError(CollectraError):
    """Any other exception raised by a hook, plugin or dispatcher step."""

    status = 500
