"""
Test In-Memory Pipe

Unit tests for the bounded pipe and read_full.
"""

import io
import os
import sys
import threading
import time

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from migrationdb.context import OperationContext
from migrationdb.exceptions import Cancelled, PipeClosedError, StreamAborted, TransportError
from migrationdb.pipe import Pipe, read_full


class TestPipe:
    """Test cases for Pipe."""

    def test_invalid_capacity(self):
        with pytest.raises(ValueError, match="capacity must be greater than 0"):
            Pipe(0)

    def test_write_then_read(self):
        pipe = Pipe(16)
        pipe.writer.write(b'hello')
        pipe.writer.close()

        assert pipe.reader.read() == b'hello'
        assert pipe.reader.read() == b''

    def test_partial_reads(self):
        pipe = Pipe(16)
        pipe.writer.write(b'abcdef')
        pipe.writer.close()

        assert pipe.reader.read(4) == b'abcd'
        assert pipe.reader.read(4) == b'ef'
        assert pipe.reader.read(4) == b''

    def test_at_eof(self):
        pipe = Pipe(16)
        pipe.writer.write(b'abcdef')
        assert not pipe.reader.at_eof

        pipe.writer.close()
        pipe.reader.read(4)
        assert not pipe.reader.at_eof

        pipe.reader.read(4)
        assert pipe.reader.at_eof

    def test_at_eof_not_set_by_reader_close(self):
        """Closing the reader with unread data does not count as reaching the end."""
        pipe = Pipe(16)
        pipe.writer.write(b'abcdef')
        pipe.writer.close()

        pipe.reader.close()

        assert not pipe.reader.at_eof

    def test_at_eof_not_set_by_failed_writer(self):
        pipe = Pipe(16)
        pipe.writer.close_with_error(TransportError("boom"))

        assert not pipe.reader.at_eof

    def test_backpressure(self):
        """A writer never gets more than capacity bytes ahead of the reader."""
        pipe = Pipe(4)
        written = threading.Event()

        def writer():
            pipe.writer.write(b'0123456789')
            written.set()
            pipe.writer.close()

        thread = threading.Thread(target=writer)
        thread.start()

        assert not written.wait(0.2)
        received = bytearray()
        while True:
            block = pipe.reader.read(3)
            if not block:
                break
            assert len(block) <= 4
            received += block
        thread.join(5)

        assert bytes(received) == b'0123456789'
        assert written.is_set()

    def test_close_with_error_after_drain(self):
        """Buffered data is delivered before the writer's error."""
        pipe = Pipe(16)
        pipe.writer.write(b'data')
        pipe.writer.close_with_error(StreamAborted("source stream aborted"))

        assert pipe.reader.read() == b'data'
        with pytest.raises(StreamAborted):
            pipe.reader.read()

    def test_write_after_reader_closed(self):
        pipe = Pipe(16)
        pipe.reader.close()

        with pytest.raises(PipeClosedError):
            pipe.writer.write(b'x')

    def test_reader_close_unblocks_writer(self):
        pipe = Pipe(2)
        errors = []

        def writer():
            try:
                pipe.writer.write(b'0123456789')
            except PipeClosedError as e:
                errors.append(e)

        thread = threading.Thread(target=writer)
        thread.start()
        time.sleep(0.1)
        pipe.reader.close()
        thread.join(5)

        assert not thread.is_alive()
        assert len(errors) == 1

    def test_abort_fails_both_ends(self):
        pipe = Pipe(16)
        pipe.writer.write(b'pending')
        pipe.abort(TransportError("gone"))

        with pytest.raises(TransportError, match="gone"):
            pipe.reader.read()
        with pytest.raises(TransportError, match="gone"):
            pipe.writer.write(b'more')

    def test_context_cancellation_aborts_pipe(self):
        ctx = OperationContext()
        pipe = Pipe(16, context=ctx)
        result = []

        def reader():
            try:
                pipe.reader.read()
            except Cancelled as e:
                result.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        ctx.cancel()
        thread.join(5)

        assert len(result) == 1
        assert str(result[0]) == "canceled by user"

    def test_empty_write_is_noop(self):
        pipe = Pipe(1)
        assert pipe.writer.write(b'') == 0


class TestReadFull:
    """Test cases for read_full."""

    def test_reads_across_short_reads(self):
        pipe = Pipe(3)

        def writer():
            pipe.writer.write(b'abcdefgh')
            pipe.writer.close()

        thread = threading.Thread(target=writer)
        thread.start()

        assert read_full(pipe.reader, 5) == b'abcde'
        assert read_full(pipe.reader, 5) == b'fgh'
        assert read_full(pipe.reader, 5) == b''
        thread.join(5)

    def test_works_on_file_objects(self):
        assert read_full(io.BytesIO(b'xyz'), 10) == b'xyz'
