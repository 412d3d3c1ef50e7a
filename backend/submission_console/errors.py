"""
Error taxonomy for the submission console.

- ValidationError: local pre-flight rejection, never reaches the pipeline
- CollaboratorError: transport or business failure returned by a command
- InconsistentStateError: the pipeline answered with an unexpected shape

None of these is fatal: controllers put the message on the banner and
keep the last known-good state.
"""
from __future__ import annotations


class ConsoleError(Exception):
    """Base class for every error the console surfaces to the operator."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ConsoleError):
    """Raised when an operator input fails a local rule."""
    pass


class UploadIdentityError(ValidationError):
    """A segment reports SUCCESS without a cid/fileName to submit with."""

    def __init__(self, message: str, segment_id: str | None = None):
        super().__init__(message)
        self.segment_id = segment_id


class ActionNotAllowedError(ValidationError):
    """Raised when a workflow action is not permitted in the current state."""

    def __init__(self, message: str, action: str | None = None):
        super().__init__(message)
        self.action = action


class CollaboratorError(ConsoleError):
    """Raised when a pipeline command fails (transport, HTTP or code != 0)."""

    def __init__(self, message: str, command: str | None = None, code: int | None = None):
        super().__init__(message)
        self.command = command
        self.code = code


class InconsistentStateError(ConsoleError):
    """Raised when a command returns a payload that does not match its contract."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command
