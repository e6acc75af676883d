"""
Database Dialects and Capability Contracts

Defines the closed set of supported engines and the two capabilities the
engines are built from: a Producer serializes a database into a byte sink,
a Consumer applies a byte stream to a database.
"""

import abc
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from .exceptions import ConfigurationError


class DialectTag(Enum):
    """Database engines a Producer/Consumer/Normalizer can operate on."""
    POSTGRES = "postgres"
    MYSQL = "mysql"
    MONGODB = "mongodb"


class Producer(abc.ABC):
    """Writes the complete serialized content of a database into a sink."""

    @abc.abstractmethod
    def dialect(self) -> DialectTag:
        """Report the engine this producer dumps."""

    @abc.abstractmethod
    def write(self, ctx, sink) -> None:
        """
        Write the whole database into sink.

        The caller owns the sink and closes it afterwards. Implementations
        raise on failure and must honour ctx cancellation.
        """


class Consumer(abc.ABC):
    """Reads a byte stream to completion and applies it to a database."""

    @abc.abstractmethod
    def dialect(self) -> DialectTag:
        """Report the engine this consumer restores into."""

    @abc.abstractmethod
    def read(self, ctx, source) -> None:
        """Consume source until end-of-stream and load it; raise on failure."""


def ensure_same_dialect(first, second, first_name: str = 'source',
                        second_name: str = 'target') -> DialectTag:
    """
    Check that two capabilities exist and share a dialect.

    Returns:
        The shared DialectTag

    Raises:
        ConfigurationError: If either capability is missing or the tags differ
    """
    if first is None or second is None:
        raise ConfigurationError(f"{first_name} and {second_name} must not be None")

    if first.dialect() != second.dialect():
        raise ConfigurationError(
            f"{first_name} and {second_name} databases must be of the same type "
            f"(got {first_name}: {first.dialect().value}, "
            f"{second_name}: {second.dialect().value})"
        )
    return first.dialect()


def infer_dialect(url: str) -> DialectTag:
    """
    Determine the database engine from a connection string.

    Raises:
        ConfigurationError: If the string is empty or the scheme is unsupported
    """
    if not url:
        raise ConfigurationError("connection string is empty")

    if url.startswith('mongodb://') or url.startswith('mongodb+srv://'):
        return DialectTag.MONGODB

    scheme = urlsplit(url).scheme.lower()
    if scheme in ('postgres', 'postgresql'):
        return DialectTag.POSTGRES
    if scheme == 'mysql':
        return DialectTag.MYSQL

    raise ConfigurationError(f"unsupported database type in connection string: {scheme or url}")


def validate_connections(source_url: str, target_url: Optional[str],
                         stdout_mode: bool = False) -> DialectTag:
    """
    Check both connection strings and return their shared dialect.

    The target is ignored in stdout mode.
    """
    try:
        source_dialect = infer_dialect(source_url)
    except ConfigurationError as e:
        raise ConfigurationError(f"invalid source database: {e}") from e

    if stdout_mode:
        return source_dialect

    if not target_url:
        raise ConfigurationError("target connection string is required when not using stdout mode")

    try:
        target_dialect = infer_dialect(target_url)
    except ConfigurationError as e:
        raise ConfigurationError(f"invalid target database: {e}") from e

    if source_dialect != target_dialect:
        raise ConfigurationError(
            "source and target must be the same database type "
            f"(got source: {source_dialect.value}, target: {target_dialect.value})"
        )
    return source_dialect


def mask_connection_string(url: str) -> str:
    """Replace the password of a connection string with asterisks for logging."""
    if not url:
        return ''

    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.password:
        return url

    userinfo, _, hostinfo = parts.netloc.rpartition('@')
    username = userinfo.split(':', 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:****@{hostinfo}"))
