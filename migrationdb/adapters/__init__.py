"""
Engine adapters and the factories that pick one per dialect.

The dialect is resolved once here, at construction time; nothing downstream
re-checks it per chunk.
"""

from typing import Sequence

from ..dialects import Consumer, DialectTag, Producer
from ..exceptions import ConfigurationError
from .mongodb import MongoDBConsumer, MongoDBProducer
from .mysql import MySQLConsumer, MySQLProducer
from .postgres import PostgresConsumer, PostgresProducer


def _as_dialect(dialect) -> DialectTag:
    try:
        return DialectTag(dialect)
    except ValueError:
        raise ConfigurationError(f"unsupported database type: {dialect}") from None


def create_producer(dialect, url: str, compact: bool = False,
                    extra_args: Sequence[str] = ()) -> Producer:
    """
    Build the Producer for a dialect.

    Args:
        dialect: DialectTag or its string value
        url: Connection string
        compact: Prefer the compact wire format (Postgres only)
        extra_args: Flags forwarded verbatim to the dump tool

    Raises:
        ConfigurationError: If the dialect is not supported
    """
    tag = _as_dialect(dialect)
    if tag is DialectTag.POSTGRES:
        return PostgresProducer(url, compact=compact, extra_args=extra_args)
    if tag is DialectTag.MYSQL:
        return MySQLProducer(url, extra_args=extra_args)
    return MongoDBProducer(url, extra_args=extra_args)


def create_consumer(dialect, url: str, extra_args: Sequence[str] = ()) -> Consumer:
    """Build the Consumer for a dialect; see create_producer."""
    tag = _as_dialect(dialect)
    if tag is DialectTag.POSTGRES:
        return PostgresConsumer(url, extra_args=extra_args)
    if tag is DialectTag.MYSQL:
        return MySQLConsumer(url, extra_args=extra_args)
    return MongoDBConsumer(url, extra_args=extra_args)


__all__ = [
    'create_producer',
    'create_consumer',
    'PostgresProducer',
    'PostgresConsumer',
    'MySQLProducer',
    'MySQLConsumer',
    'MongoDBProducer',
    'MongoDBConsumer',
]
