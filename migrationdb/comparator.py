"""
Stream Comparator

Reads two dump streams in lock-step fixed-size chunks, normalizes each chunk
for the dialect and compares the results byte for byte. A difference stops
the comparison immediately; a read failure is reported as an error, never as
a mismatch.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .context import OperationContext
from .dialects import DialectTag
from .exceptions import Cancelled, ConfigurationError, MigrationError, TransportError
from .normalizer import ChunkNormalizer
from .pipe import read_full


DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
# partial lines up to this size are carried across chunks even when chunks are smaller
MIN_LINE_CARRY = 64 * 1024
# normalized output one stream may hold unmatched, in units of the larger of chunk and line carry
MAX_PENDING_FACTOR = 2

logger = logging.getLogger(__name__)


class ComparisonOutcome(Enum):
    """Verdict of one stream comparison."""
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    ERROR = "ERROR"


@dataclass
class ComparisonResult:
    """Outcome of a comparison plus the counters gathered on the way."""
    outcome: ComparisonOutcome
    cause: Optional[BaseException] = None
    chunks: int = 0
    source_bytes: int = 0
    target_bytes: int = 0

    @property
    def equal(self) -> bool:
        return self.outcome is ComparisonOutcome.EQUAL


class _StreamSide:
    """One input of the comparator: raw reader, normalizer and unmatched output."""

    def __init__(self, name: str, reader, dialect: DialectTag, chunk_size: int):
        self.name = name
        self.reader = reader
        self.chunk_size = chunk_size
        self.normalizer = ChunkNormalizer(dialect, max_line=max(chunk_size, MIN_LINE_CARRY))
        self.pending = bytearray()
        self.raw_bytes = 0
        self.eof = False

    def advance(self) -> None:
        """Read the next chunk and queue its normalized form."""
        try:
            chunk = read_full(self.reader, self.chunk_size)
        except Cancelled:
            raise
        except Exception as e:
            raise TransportError(f"error reading {self.name}: {e}") from e

        self.raw_bytes += len(chunk)
        # read_full only comes back short at end-of-stream
        if len(chunk) < self.chunk_size:
            self.eof = True

        self.pending += self.normalizer.feed(chunk)
        if self.eof:
            self.pending += self.normalizer.flush()

    def close(self) -> None:
        close = getattr(self.reader, 'close', None)
        if close is not None:
            close()


class StreamComparator:
    """Chunked, normalized comparison of two dump streams."""

    def __init__(self, dialect: DialectTag, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Create a comparator.

        Args:
            dialect: Selects the normalizer applied to every chunk
            chunk_size: Bytes read from each stream per iteration

        Raises:
            ConfigurationError: If chunk_size is not positive
        """
        if chunk_size <= 0:
            raise ConfigurationError("Chunk size must be greater than 0")
        self.dialect = DialectTag(dialect)
        self.chunk_size = chunk_size
        self.max_pending = MAX_PENDING_FACTOR * max(chunk_size, MIN_LINE_CARRY)

    def compare(self, ctx: Optional[OperationContext], source, target) -> ComparisonResult:
        """
        Compare two streams.

        Both streams must end with identical normalized content for EQUAL.
        Once one stream has ended the other is read on only while its
        normalized output can still match; anything beyond that is NOT_EQUAL.
        The normalized output of one stream may run ahead of the other by at
        most max_pending bytes before the streams are declared different.
        Both readers are closed on return so blocked writers are released.

        Args:
            ctx: Operation context checked between chunks (may be None)
            source: Reader for the source dump
            target: Reader for the target dump

        Returns:
            ComparisonResult; read failures and cancellation yield ERROR
        """
        src = _StreamSide('source', source, self.dialect, self.chunk_size)
        tgt = _StreamSide('target', target, self.dialect, self.chunk_size)
        chunks = 0

        def result(outcome: ComparisonOutcome, cause: Optional[BaseException] = None):
            return ComparisonResult(outcome, cause, chunks, src.raw_bytes, tgt.raw_bytes)

        try:
            while True:
                if ctx is not None and ctx.done():
                    return result(ComparisonOutcome.ERROR, ctx.error())

                chunks += 1
                if not src.eof:
                    src.advance()
                if not tgt.eof:
                    tgt.advance()

                logger.debug(
                    f"Chunk #{chunks}: source {src.raw_bytes} bytes (eof={src.eof}), "
                    f"target {tgt.raw_bytes} bytes (eof={tgt.eof})"
                )

                common = min(len(src.pending), len(tgt.pending))
                if src.pending[:common] != tgt.pending[:common]:
                    logger.debug(f"Normalized content differs in chunk #{chunks}")
                    return result(ComparisonOutcome.NOT_EQUAL)
                del src.pending[:common]
                del tgt.pending[:common]

                if src.eof and tgt.eof:
                    if src.pending or tgt.pending:
                        logger.debug("Streams ended with different normalized lengths")
                        return result(ComparisonOutcome.NOT_EQUAL)
                    return result(ComparisonOutcome.EQUAL)

                if (src.eof and tgt.pending) or (tgt.eof and src.pending):
                    ended = 'source' if src.eof else 'target'
                    logger.debug(f"{ended} ended while the other stream still has content")
                    return result(ComparisonOutcome.NOT_EQUAL)

                backlog = max(len(src.pending), len(tgt.pending))
                if backlog > self.max_pending:
                    logger.debug(f"Streams drifted {backlog} normalized bytes apart by chunk #{chunks}")
                    return result(ComparisonOutcome.NOT_EQUAL)

        except MigrationError as e:
            logger.debug(f"Comparison aborted: {e}")
            return result(ComparisonOutcome.ERROR, e)
        finally:
            src.close()
            tgt.close()
