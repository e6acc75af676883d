"""
In-Memory Pipe

Bounded single-producer/single-consumer byte channel connecting one writer
thread to one reader thread. Writers block while the buffer is full, so a
producer can never run further ahead of its consumer than the pipe capacity.
"""

import threading
from typing import Optional

from .context import OperationContext
from .exceptions import PipeClosedError, TransportError


DEFAULT_PIPE_CAPACITY = 64 * 1024


class Pipe:
    """Bounded byte pipe with Go-style close and close-with-error semantics."""

    def __init__(self, capacity: int = DEFAULT_PIPE_CAPACITY,
                 context: Optional[OperationContext] = None):
        """
        Create a pipe.

        Args:
            capacity: Maximum number of buffered bytes (must be positive)
            context: When given, the pipe aborts itself with the context
                error as soon as the context finishes
        """
        if capacity <= 0:
            raise ValueError("Pipe capacity must be greater than 0")

        self.capacity = capacity
        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._write_closed = False
        self._write_error: Optional[BaseException] = None
        self._read_closed = False
        self._read_error: Optional[BaseException] = None
        self._eof_seen = False

        self.reader = PipeReader(self)
        self.writer = PipeWriter(self)

        if context is not None:
            context.add_callback(lambda: self.abort(context.error()))

    def _write(self, data: bytes) -> int:
        view = memoryview(data)
        written = 0
        while written < len(view):
            with self._cond:
                while (len(self._buffer) >= self.capacity
                       and not self._read_closed and not self._write_closed):
                    self._cond.wait()

                if self._read_closed:
                    raise self._read_error or PipeClosedError("write on pipe whose reader is closed")
                if self._write_closed:
                    raise TransportError("write on closed pipe")

                n = min(self.capacity - len(self._buffer), len(view) - written)
                self._buffer += view[written:written + n]
                written += n
                self._cond.notify_all()
        return written

    def _read(self, size: int) -> bytes:
        with self._cond:
            while not self._buffer and not self._write_closed and not self._read_closed:
                self._cond.wait()

            if self._read_closed:
                raise self._read_error or TransportError("read on closed pipe")

            if self._buffer:
                if size < 0 or size >= len(self._buffer):
                    data = bytes(self._buffer)
                    self._buffer.clear()
                else:
                    data = bytes(self._buffer[:size])
                    del self._buffer[:size]
                self._cond.notify_all()
                return data

            if self._write_error is not None:
                raise self._write_error
            self._eof_seen = True
            return b''

    def _at_eof(self) -> bool:
        with self._cond:
            if self._eof_seen:
                return True
            return (self._write_closed and self._write_error is None
                    and not self._buffer and not self._read_closed)

    def _close_writer(self, error: Optional[BaseException] = None) -> None:
        with self._cond:
            if not self._write_closed:
                self._write_closed = True
                self._write_error = error
            self._cond.notify_all()

    def _close_reader(self, error: Optional[BaseException] = None) -> None:
        with self._cond:
            if not self._read_closed:
                self._read_closed = True
                self._read_error = error
                self._buffer.clear()
            self._cond.notify_all()

    def abort(self, error: Optional[BaseException] = None) -> None:
        """Fail both ends immediately, discarding buffered data."""
        error = error or TransportError("pipe aborted")
        with self._cond:
            if not self._read_closed:
                self._read_closed = True
                self._read_error = error
            if not self._write_closed:
                self._write_closed = True
                self._write_error = error
            self._buffer.clear()
            self._cond.notify_all()


class PipeWriter:
    """Write end of a Pipe."""

    def __init__(self, pipe: Pipe):
        self._pipe = pipe

    def write(self, data: bytes) -> int:
        """Write all of data, blocking while the pipe is full."""
        if not data:
            return 0
        return self._pipe._write(data)

    def close(self) -> None:
        """Signal end-of-stream to the reader."""
        self._pipe._close_writer()

    def close_with_error(self, error: BaseException) -> None:
        """Make the reader raise error once it has drained buffered data."""
        self._pipe._close_writer(error)

    def writable(self) -> bool:
        return True

    def flush(self) -> None:
        pass


class PipeReader:
    """Read end of a Pipe."""

    def __init__(self, pipe: Pipe):
        self._pipe = pipe

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes; returns b'' at end-of-stream."""
        if size == 0:
            return b''
        return self._pipe._read(size)

    def close(self) -> None:
        """Stop reading; further writes fail with PipeClosedError."""
        self._pipe._close_reader()

    @property
    def at_eof(self) -> bool:
        """True once everything the writer sent, and its clean close, has been read."""
        return self._pipe._at_eof()

    def readable(self) -> bool:
        return True


def read_full(reader, size: int) -> bytes:
    """
    Read exactly size bytes unless the stream ends first.

    A result shorter than size therefore always means end-of-stream.
    """
    parts = []
    remaining = size
    while remaining > 0:
        data = reader.read(remaining)
        if not data:
            break
        parts.append(data)
        remaining -= len(data)
    return b''.join(parts)
