"""
Migration Engine Module

Transfer orchestrator: streams one database into another by wiring a dump
tool's output straight into a restore tool's input through a bounded
in-memory pipe. Nothing is staged on disk and memory use is bounded by the
pipe capacity, so throughput follows the consumer.
"""

import logging
import concurrent.futures
from typing import Dict, Optional, Any, Sequence

from .adapters import create_consumer, create_producer
from .config_manager import DEFAULT_BUFFER_SIZE
from .context import OperationContext
from .dialects import Consumer, Producer, ensure_same_dialect
from .exceptions import (
    Cancelled,
    ConsumerFailure,
    PipeClosedError,
    ProducerFailure,
    StreamAborted,
)
from .pipe import Pipe
from .utils.logger import MigrationLogger
from .utils.status_monitor import MeteredWriter, StatusMonitor


logger = logging.getLogger(__name__)


def dump_to_pipe(ctx: OperationContext, producer: Producer, writer,
                 message: str = 'dump failed', side: Optional[str] = None) -> None:
    """
    Run a producer into a pipe writer and close the writer afterwards.

    The writer is always closed: cleanly on success, with StreamAborted on
    failure so the reader never mistakes a broken dump for end-of-stream.

    Raises:
        Cancelled: If the context finished while dumping
        ProducerFailure: For any other failure; peer_closed is set when the
            reader hung up first
    """
    try:
        producer.write(ctx, writer)
    except Cancelled as e:
        writer.close_with_error(e)
        raise
    except Exception as e:
        writer.close_with_error(StreamAborted(f"{side or 'source'} stream aborted: {e}"))
        peer_closed = isinstance(e, PipeClosedError)
        if peer_closed:
            detail = "reader stopped before end of stream"
        else:
            detail = str(e)
        raise ProducerFailure(f"{message}: {detail}", side=side, peer_closed=peer_closed) from e
    writer.close()


def join_legs(ctx: OperationContext, executor: concurrent.futures.Executor,
              legs: Sequence[concurrent.futures.Future]) -> None:
    """
    Wait until every leg has finished or the context fires.

    The legs are joined by one extra task so that a single wait covers both
    "all done" and "cancelled".

    Raises:
        Cancelled: The context error, as soon as the context finishes
    """
    joined = executor.submit(concurrent.futures.wait, legs)
    concurrent.futures.wait([joined, ctx.as_future()],
                            return_when=concurrent.futures.FIRST_COMPLETED)
    ctx.check()


def dump_to_sink(ctx: OperationContext, producer: Producer, sink) -> None:
    """
    Stream a database straight into a binary sink such as stdout.

    Raises:
        Cancelled: If the context finishes first
        ProducerFailure: If the dump failed
    """
    logger.info(f"Streaming {producer.dialect().value} dump to output...")
    try:
        producer.write(ctx, sink)
    except Cancelled:
        raise
    except Exception as e:
        raise ProducerFailure(f"dump failed: {e}", side='source') from e
    flush = getattr(sink, 'flush', None)
    if flush is not None:
        flush()


class MigrationEngine:
    """Concurrent dump-to-restore transfer for one pair of databases."""

    def __init__(self, producer: Producer, consumer: Consumer,
                 config: Optional[Dict[str, Any]] = None,
                 status_monitor: Optional[StatusMonitor] = None):
        """
        Initialize migration engine.

        Args:
            producer: Dumps the source database
            consumer: Restores into the target database
            config: Configuration dictionary (only the migration section is used)
            status_monitor: Optional progress monitor

        Raises:
            ConfigurationError: If either end is missing or the dialects differ
        """
        self.dialect = ensure_same_dialect(producer, consumer, 'producer', 'consumer')
        self.producer = producer
        self.consumer = consumer
        self.config = config or {}
        self.status_monitor = status_monitor
        self.logger = MigrationLogger(__name__)

        migration = self.config.get('migration', {})
        self.buffer_size = migration.get('buffer_size', DEFAULT_BUFFER_SIZE)

    @classmethod
    def from_config(cls, config: Dict[str, Any],
                    status_monitor: Optional[StatusMonitor] = None) -> 'MigrationEngine':
        """Build the engine with the producer/consumer pair the config describes."""
        migration = config['migration']
        # compact on-the-wire format: the stream is read by a restore tool, not a person
        producer = create_producer(
            config['source']['dialect'], config['source']['url'],
            compact=True, extra_args=migration.get('dump_args', ())
        )
        consumer = create_consumer(
            config['target']['dialect'], config['target']['url'],
            extra_args=migration.get('restore_args', ())
        )
        return cls(producer, consumer, config, status_monitor)

    def _meter(self, writer, name: str):
        if self.status_monitor is None:
            return writer
        self.status_monitor.start_stream(name)
        return MeteredWriter(writer, self.status_monitor, name)

    def _stream_done(self, name: str, error: Optional[BaseException] = None) -> None:
        if self.status_monitor is not None:
            self.status_monitor.complete_stream(name, error is None, str(error) if error else None)

    def _dump(self, ctx: OperationContext, writer) -> None:
        logger.info("Starting database dump...")
        try:
            dump_to_pipe(ctx, self.producer, self._meter(writer, 'dump'), 'dump failed', 'source')
        except Exception as e:
            logger.error(f"Dump error: {e}")
            self._stream_done('dump', e)
            raise
        self._stream_done('dump')
        logger.info("Database dump completed")

    def _restore(self, ctx: OperationContext, reader) -> None:
        logger.info("Starting database restore...")
        drained = False
        try:
            self.consumer.read(ctx, reader)
            drained = reader.at_eof
        except Cancelled:
            raise
        except Exception as e:
            logger.error(f"Restore error: {e}")
            raise ConsumerFailure(
                f"restore failed: {e}", side='target',
                peer_closed=isinstance(e, StreamAborted)
            ) from e
        finally:
            # hang up so a producer still writing fails instead of blocking forever
            reader.close()
        if not drained:
            logger.error("Restore returned before the end of the dump stream")
            raise ConsumerFailure("restore failed: consumer stopped before end of stream", side='target')
        logger.info("Database restore completed")

    def migrate(self, ctx: OperationContext) -> None:
        """
        Stream the source database into the target.

        Both legs must succeed. The first real failure wins: a leg that only
        failed because its peer went away first waits for the peer's own
        verdict, and is reported only if the peer succeeded (a consumer that
        stopped reading early is a partial transfer, not a success).

        Args:
            ctx: Operation context carrying the deadline

        Raises:
            Cancelled: If the context is cancelled or times out
            ProducerFailure: If the dump failed ("dump failed: ...")
            ConsumerFailure: If the restore failed or returned before end of stream
        """
        self.logger.start_operation("Database Transfer")
        ctx.check()

        pipe = Pipe(self.buffer_size, context=ctx)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=2, thread_name_prefix='migrationdb-transfer'
        )
        try:
            dump_future = executor.submit(self._dump, ctx, pipe.writer)
            restore_future = executor.submit(self._restore, ctx, pipe.reader)
        finally:
            executor.shutdown(wait=False)

        cancelled = ctx.as_future()
        pending = {dump_future, restore_future}
        deferred: Optional[BaseException] = None

        while pending:
            done, _ = concurrent.futures.wait(
                pending | {cancelled}, return_when=concurrent.futures.FIRST_COMPLETED
            )
            if ctx.done():
                self.logger.end_operation("Database Transfer", False)
                raise ctx.error()

            for future in (dump_future, restore_future):
                if future not in done or future not in pending:
                    continue
                pending.discard(future)
                error = future.exception()
                if error is None:
                    continue
                if pending and getattr(error, 'peer_closed', False):
                    deferred = deferred or error
                    continue
                pipe.abort(error)
                self.logger.end_operation("Database Transfer", False)
                raise error

        if deferred is not None:
            self.logger.end_operation("Database Transfer", False)
            raise deferred

        byte_count = self.status_monitor.get_stream_bytes('dump') if self.status_monitor else None
        self.logger.end_operation("Database Transfer", True, byte_count)
