"""
Checksum Engine

Streams one producer's raw output through a hashlib accumulator. The digest
is a quick fingerprint for operators, computed over the bytes exactly as the
dump tool emitted them; it is not a substitute for content verification.
"""

import hashlib
import logging
import concurrent.futures

from .context import OperationContext
from .dialects import Producer
from .exceptions import Cancelled, ConfigurationError, TransportError
from .migration_engine import dump_to_pipe, join_legs
from .pipe import DEFAULT_PIPE_CAPACITY, Pipe


logger = logging.getLogger(__name__)


def new_hasher(algorithm: str):
    """Create a hashlib object, mapping unknown names to ConfigurationError."""
    try:
        return hashlib.new(algorithm)
    except (ValueError, TypeError):
        raise ConfigurationError(f"Unsupported checksum algorithm {algorithm}") from None


def _hash_stream(ctx: OperationContext, reader, hasher, buffer_size: int) -> str:
    try:
        while True:
            block = reader.read(buffer_size)
            if not block:
                break
            hasher.update(block)
    except Cancelled:
        raise
    except Exception as e:
        raise TransportError(f"failed to calculate checksum: {e}") from e
    finally:
        reader.close()
    return hasher.hexdigest()


def compute_checksum(ctx: OperationContext, producer: Producer, algorithm: str = 'sha256',
                     buffer_size: int = DEFAULT_PIPE_CAPACITY) -> str:
    """
    Hash the complete output of a producer.

    Args:
        ctx: Operation context
        producer: Producer to fingerprint
        algorithm: Any hashlib algorithm name
        buffer_size: Pipe capacity and read size

    Returns:
        Hex-encoded digest

    Raises:
        ConfigurationError: If the algorithm or producer is invalid
        ProducerFailure: If the dump failed
        TransportError: If reading the stream failed
        Cancelled: If the context finished first
    """
    if producer is None:
        raise ConfigurationError("producer must not be None")
    hasher = new_hasher(algorithm)
    ctx.check()

    logger.info(f"Calculating {algorithm} checksum of {producer.dialect().value} dump...")
    pipe = Pipe(buffer_size, context=ctx)
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=3, thread_name_prefix='migrationdb-checksum'
    )
    try:
        dump_future = executor.submit(
            dump_to_pipe, ctx, producer, pipe.writer, 'failed to calculate checksum', 'target'
        )
        hash_future = executor.submit(_hash_stream, ctx, pipe.reader, hasher, buffer_size)
        join_legs(ctx, executor, [dump_future, hash_future])
    finally:
        executor.shutdown(wait=False)

    dump_error = dump_future.exception()
    hash_error = hash_future.exception()
    # a dump cut short by the hasher hanging up defers to the hasher's error
    peer_closed = getattr(dump_error, 'peer_closed', False)
    if dump_error is not None and not (hash_error is not None and peer_closed):
        raise dump_error
    if hash_error is not None:
        raise hash_error

    digest = hash_future.result()
    logger.info(f"Checksum: {digest}")
    return digest
