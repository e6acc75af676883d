"""
Validation Engine Module

Verification orchestrator: re-dumps source and target concurrently and feeds
both streams to the chunked comparator. Two pipes, three worker tasks and a
join task; the orchestrator waits for the join or the operation context,
whichever finishes first.
"""

import logging
import concurrent.futures
from typing import Dict, Optional, Any

from .adapters import create_producer
from .checksum import compute_checksum
from .comparator import ComparisonOutcome, ComparisonResult, StreamComparator
from .config_manager import DEFAULT_BUFFER_SIZE, DEFAULT_CHUNK_SIZE
from .context import OperationContext
from .dialects import Producer, ensure_same_dialect
from .exceptions import ComparisonMismatch, TransportError
from .migration_engine import dump_to_pipe, join_legs
from .pipe import Pipe
from .utils.logger import MigrationLogger
from .utils.status_monitor import MeteredWriter, StatusMonitor


logger = logging.getLogger(__name__)


class ValidationEngine:
    """Post-migration content verification for one pair of databases."""

    def __init__(self, source_producer: Producer, target_producer: Producer,
                 config: Optional[Dict[str, Any]] = None,
                 status_monitor: Optional[StatusMonitor] = None,
                 chunk_size: Optional[int] = None):
        """
        Initialize validation engine.

        Args:
            source_producer: Dumps the source database
            target_producer: Dumps the target database
            config: Configuration dictionary
            status_monitor: Optional progress monitor
            chunk_size: Comparison chunk size; defaults to the configured
                verify_chunk_size

        Raises:
            ConfigurationError: If a producer is missing, the dialects differ
                or the chunk size is not positive
        """
        self.dialect = ensure_same_dialect(source_producer, target_producer)
        self.source_producer = source_producer
        self.target_producer = target_producer
        self.config = config or {}
        self.status_monitor = status_monitor
        self.logger = MigrationLogger(__name__)

        migration = self.config.get('migration', {})
        if chunk_size is None:
            chunk_size = migration.get('verify_chunk_size', DEFAULT_CHUNK_SIZE)
        self.comparator = StreamComparator(self.dialect, chunk_size)
        self.chunk_size = chunk_size
        self.buffer_size = migration.get('buffer_size', DEFAULT_BUFFER_SIZE)
        self.checksum_algorithm = migration.get('checksum_algorithm', 'sha256')
        self.last_result: Optional[ComparisonResult] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any],
                    status_monitor: Optional[StatusMonitor] = None) -> 'ValidationEngine':
        """Build the engine with plain-format producers for both databases."""
        dump_args = config['migration'].get('dump_args', ())
        source = create_producer(config['source']['dialect'], config['source']['url'],
                                 extra_args=dump_args)
        target = create_producer(config['target']['dialect'], config['target']['url'],
                                 extra_args=dump_args)
        return cls(source, target, config, status_monitor)

    def _dump(self, ctx: OperationContext, producer: Producer, writer, side: str) -> None:
        name = f'{side} dump'
        if self.status_monitor is not None:
            self.status_monitor.start_stream(name)
            writer = MeteredWriter(writer, self.status_monitor, name)

        try:
            dump_to_pipe(ctx, producer, writer, f'failed to dump {side} database', side)
        except Exception as e:
            if self.status_monitor is not None:
                # the comparator hanging up early is a clean stop
                stopped = getattr(e, 'peer_closed', False)
                self.status_monitor.complete_stream(name, stopped, None if stopped else str(e))
            raise
        if self.status_monitor is not None:
            self.status_monitor.complete_stream(name)

    def _compare(self, ctx: OperationContext, source_reader, target_reader) -> ComparisonResult:
        logger.info(f"Comparing dumps in chunks of {self.chunk_size} bytes...")
        return self.comparator.compare(ctx, source_reader, target_reader)

    def verify_content(self, ctx: OperationContext) -> None:
        """
        Dump both databases and compare their normalized content.

        Errors are reported in a fixed order: a source dump failure first,
        then a target dump failure, then the comparison verdict. A dump that
        stopped only because the comparator had already decided does not
        count as a failure.

        Args:
            ctx: Operation context carrying the deadline

        Raises:
            Cancelled: If the context is cancelled or times out
            ProducerFailure: If either dump failed
            TransportError: If the comparison could not be completed
            ComparisonMismatch: If the normalized content differs
        """
        self.logger.start_operation("Content Verification")
        ctx.check()

        source_pipe = Pipe(self.buffer_size, context=ctx)
        target_pipe = Pipe(self.buffer_size, context=ctx)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix='migrationdb-verify'
        )
        try:
            source_future = executor.submit(
                self._dump, ctx, self.source_producer, source_pipe.writer, 'source'
            )
            target_future = executor.submit(
                self._dump, ctx, self.target_producer, target_pipe.writer, 'target'
            )
            compare_future = executor.submit(
                self._compare, ctx, source_pipe.reader, target_pipe.reader
            )
            try:
                join_legs(ctx, executor, [source_future, target_future, compare_future])
            except Exception:
                self.logger.end_operation("Content Verification", False)
                raise
        finally:
            executor.shutdown(wait=False)

        try:
            for future in (source_future, target_future):
                error = future.exception()
                if error is not None and not getattr(error, 'peer_closed', False):
                    raise error

            result = compare_future.result()
            self.last_result = result
            if result.outcome is ComparisonOutcome.ERROR:
                raise TransportError(f"content verification failed: {result.cause}") from result.cause
            if result.outcome is ComparisonOutcome.NOT_EQUAL:
                raise ComparisonMismatch(
                    "content verification failed: source and target databases do not match"
                )
        except Exception:
            self.logger.end_operation("Content Verification", False)
            raise

        logger.info(f"Content verification passed after {result.chunks} chunk(s)")
        self.logger.end_operation("Content Verification", True, result.source_bytes)

    def get_checksum(self, ctx: OperationContext) -> str:
        """
        Fingerprint the target database.

        Raises:
            ProducerFailure, TransportError, Cancelled: see compute_checksum
        """
        return compute_checksum(ctx, self.target_producer, self.checksum_algorithm,
                                self.buffer_size)
