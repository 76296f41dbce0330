"""
Exception hierarchy for SFLM.

Structural operations (renumbering, cleanup, evaluation, path analysis,
validation) never raise. Exceptions are reserved for input boundaries
(paste text, CSV files, configuration) and for edits that name an
entity the survey does not contain.
"""


class SflmError(Exception):
    """Base class of every error raised by this package."""


class LineError(SflmError):
    """An error tied to a 1-based line of user supplied text."""

    def __init__(self, line: int, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"Line {line}: {reason}" if line else reason)


class ConfirmationError(SflmError):
    """Raised when a logic object is confirmed before it is complete."""

    def __init__(self, missing_fields, message: str | None = None):
        self.missing_fields = tuple(missing_fields)
        if message is None:
            message = "Cannot confirm: missing " + ", ".join(self.missing_fields)
        super().__init__(message)


class EditError(SflmError):
    """Raised when an edit names a block, question or choice that does not exist."""
