"""Error taxonomy for unitflow.

Every error raised deliberately by the engine derives from
:class:`UnitflowError` so callers (and the CLI) can catch one base type.
"""

from __future__ import annotations


class UnitflowError(Exception):
    """Base class for all unitflow errors."""


class NotFoundError(UnitflowError):
    """A local directory, feature, or unit does not exist."""


class RemoteAccessError(UnitflowError):
    """The remote instance answered with an unexpected status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status {self.status})"


class BootstrapPermissionError(UnitflowError, PermissionError):
    """Bootstrap import was forbidden; carries operator guidance."""


class VersionSkewError(UnitflowError):
    """The remote schema is newer than this engine understands."""


class BootstrapRequiredError(UnitflowError):
    """Bootstrap is required but the caller disallowed it."""


class InvalidUnitError(UnitflowError):
    """A script unit does not expose a callable entry point."""


class UnitExecutionError(UnitflowError):
    """A unit failed while executing; the original error is ``__cause__``."""

    def __init__(self, unit_id: str, message: str):
        super().__init__(f"[{unit_id}] {message}")
        self.unit_id = unit_id
