"""
Connection Pre-flight

Opens one short-lived connection per database before any dump tool starts so
that bad credentials or unreachable hosts fail fast with a readable message.
"""

import logging
from typing import Dict, Any
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .dialects import DialectTag, mask_connection_string
from .exceptions import ConfigurationError, ConnectivityError


logger = logging.getLogger(__name__)

SQLALCHEMY_SCHEMES = {
    DialectTag.POSTGRES: 'postgresql+psycopg',
    DialectTag.MYSQL: 'mysql+mysqlconnector',
}


def sqlalchemy_url(dialect: DialectTag, url: str) -> str:
    """Rewrite a tool connection string to name the SQLAlchemy driver."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(scheme=SQLALCHEMY_SCHEMES[dialect]))


def _connect_args(dialect: DialectTag, skip_tls_verify: bool, timeout: int) -> Dict[str, Any]:
    if dialect is DialectTag.POSTGRES:
        args = {'connect_timeout': timeout}
        if skip_tls_verify:
            args['sslmode'] = 'disable'
        return args

    args = {'connection_timeout': timeout}
    if skip_tls_verify:
        args['ssl_disabled'] = True
    return args


def _test_sql(dialect: DialectTag, url: str, skip_tls_verify: bool, timeout: int) -> None:
    engine = create_engine(
        sqlalchemy_url(dialect, url),
        connect_args=_connect_args(dialect, skip_tls_verify, timeout),
        pool_pre_ping=True,
    )
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        engine.dispose()


def _test_mongodb(url: str, skip_tls_verify: bool, timeout: int) -> None:
    options = {'serverSelectionTimeoutMS': timeout * 1000}
    if skip_tls_verify:
        options['tlsAllowInvalidCertificates'] = True
    client = MongoClient(url, **options)
    try:
        client.admin.command('ping')
    finally:
        client.close()


def test_connection(dialect, url: str, skip_tls_verify: bool = False, timeout: int = 10) -> None:
    """
    Verify that a database accepts connections.

    Args:
        dialect: DialectTag (or its value) of the database
        url: Connection string as passed to the dump/restore tools
        skip_tls_verify: Disable TLS verification for the test connection
        timeout: Connect timeout in seconds

    Raises:
        ConfigurationError: If the dialect is not supported
        ConnectivityError: If the database cannot be reached
    """
    try:
        tag = DialectTag(dialect)
    except ValueError:
        raise ConfigurationError(f"unsupported database type: {dialect}") from None

    masked = mask_connection_string(url)
    logger.debug(f"Testing {tag.value} connection to {masked}")

    try:
        if tag is DialectTag.MONGODB:
            _test_mongodb(url, skip_tls_verify, timeout)
        else:
            _test_sql(tag, url, skip_tls_verify, timeout)
    except (SQLAlchemyError, PyMongoError, OSError) as e:
        raise ConnectivityError(f"failed to connect to {masked}: {e}") from e

    logger.info(f"Connection to {masked} successful")
