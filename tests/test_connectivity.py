"""
Test Connection Pre-flight

The SQLAlchemy engine and the MongoDB client are mocked; no database is needed.
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError
from sqlalchemy.exc import OperationalError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from migrationdb.connectivity import sqlalchemy_url, test_connection as check_connection
from migrationdb.dialects import DialectTag
from migrationdb.exceptions import ConfigurationError, ConnectivityError


class TestSqlalchemyUrl:

    def test_postgres_driver(self):
        assert sqlalchemy_url(DialectTag.POSTGRES, 'postgres://u:p@h:5432/db') == \
            'postgresql+psycopg://u:p@h:5432/db'

    def test_mysql_driver(self):
        assert sqlalchemy_url(DialectTag.MYSQL, 'mysql://u:p@h/db') == 'mysql+mysqlconnector://u:p@h/db'


class TestConnectionChecks:
    """Test cases for test_connection."""

    @patch('migrationdb.connectivity.create_engine')
    def test_postgres_success(self, mock_create_engine):
        engine = mock_create_engine.return_value

        check_connection(DialectTag.POSTGRES, 'postgresql://u:p@h/db')

        url = mock_create_engine.call_args[0][0]
        assert url == 'postgresql+psycopg://u:p@h/db'
        assert mock_create_engine.call_args[1]['connect_args'] == {'connect_timeout': 10}
        conn = engine.connect.return_value.__enter__.return_value
        assert conn.execute.called
        engine.dispose.assert_called_once()

    @patch('migrationdb.connectivity.create_engine')
    def test_skip_tls_verify(self, mock_create_engine):
        check_connection('postgres', 'postgresql://u:p@h/db', skip_tls_verify=True)
        assert mock_create_engine.call_args[1]['connect_args']['sslmode'] == 'disable'

        check_connection('mysql', 'mysql://u:p@h/db', skip_tls_verify=True, timeout=3)
        assert mock_create_engine.call_args[1]['connect_args'] == {
            'connection_timeout': 3, 'ssl_disabled': True
        }

    @patch('migrationdb.connectivity.create_engine')
    def test_sql_failure_masks_password(self, mock_create_engine):
        engine = mock_create_engine.return_value
        engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(ConnectivityError) as exc_info:
            check_connection(DialectTag.MYSQL, 'mysql://root:hunter2@h/db')

        message = str(exc_info.value)
        assert 'mysql://root:****@h/db' in message
        assert 'hunter2' not in message
        engine.dispose.assert_called_once()

    @patch('migrationdb.connectivity.MongoClient')
    def test_mongodb_ping(self, mock_client):
        client = MagicMock()
        mock_client.return_value = client

        check_connection(DialectTag.MONGODB, 'mongodb://h:27017/db', skip_tls_verify=True)

        kwargs = mock_client.call_args[1]
        assert kwargs['serverSelectionTimeoutMS'] == 10000
        assert kwargs['tlsAllowInvalidCertificates'] is True
        client.admin.command.assert_called_once_with('ping')
        client.close.assert_called_once()

    @patch('migrationdb.connectivity.MongoClient')
    def test_mongodb_failure(self, mock_client):
        mock_client.return_value.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(ConnectivityError, match="failed to connect to mongodb://h:27017/db"):
            check_connection(DialectTag.MONGODB, 'mongodb://h:27017/db')

    def test_unsupported_dialect(self):
        with pytest.raises(ConfigurationError, match="unsupported database type"):
            check_connection('oracle', 'oracle://h/db')
