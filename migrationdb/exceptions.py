"""
Exception Hierarchy

Every failure the engines can report maps onto one ErrorCategory so the CLI
can tell "the copy is wrong" apart from "we could not find out".
"""

from typing import Optional

from .utils.error_collector import ErrorCategory


class MigrationError(Exception):
    """Base class for all migrationdb errors."""
    category = ErrorCategory.UNKNOWN_ERROR


class ConfigurationError(MigrationError, ValueError):
    """Invalid settings or mismatched capabilities, detected before any task starts."""
    category = ErrorCategory.CONFIGURATION


class ConnectivityError(MigrationError):
    """A pre-flight connection test failed."""
    category = ErrorCategory.CONNECTION


class CommandError(MigrationError):
    """An external dump/restore tool exited with a non-zero status."""
    category = ErrorCategory.UNKNOWN_ERROR

    def __init__(self, command: str, returncode: int, stderr: str = ''):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"{command} failed: exit status {returncode}"
        if stderr:
            message += f", stderr: {stderr.strip()}"
        super().__init__(message)


class LegFailure(MigrationError):
    """
    Failure of one concurrent leg of an operation.

    peer_closed is set when the leg only failed because the task on the
    other end of its pipe went away first.
    """

    def __init__(self, message: str, side: Optional[str] = None, peer_closed: bool = False):
        super().__init__(message)
        self.side = side
        self.peer_closed = peer_closed


class ProducerFailure(LegFailure):
    """Serializing a database into the stream failed."""
    category = ErrorCategory.PRODUCER_FAILURE


class ConsumerFailure(LegFailure):
    """Loading the stream into the target database failed."""
    category = ErrorCategory.CONSUMER_FAILURE


class TransportError(MigrationError):
    """A read or write on an internal pipe failed for a reason other than end-of-stream."""
    category = ErrorCategory.TRANSPORT_ERROR


class PipeClosedError(TransportError):
    """Write attempted after the reading side hung up."""


class StreamAborted(TransportError):
    """The writing side of a pipe failed; the reader sees this instead of end-of-stream."""


class ComparisonMismatch(MigrationError):
    """Both dumps completed but their normalized content differs."""
    category = ErrorCategory.COMPARISON_MISMATCH


class Cancelled(MigrationError):
    """The operation context was cancelled."""
    category = ErrorCategory.CANCELLED


class DeadlineExceeded(Cancelled):
    """The operation context reached its deadline."""
    category = ErrorCategory.TIMEOUT
