"""
Test Engine Adapters

Unit tests for the dump/restore command builders, the factories and the
subprocess plumbing.
"""

import io
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from migrationdb.adapters import create_consumer, create_producer
from migrationdb.adapters.base import CommandRunner
from migrationdb.adapters.mongodb import MongoDBConsumer, MongoDBProducer
from migrationdb.adapters.mysql import (
    MySQLConsumer,
    MySQLProducer,
    mysql_option_file,
    parse_mysql_url,
)
from migrationdb.adapters.postgres import PostgresConsumer, PostgresProducer
from migrationdb.context import OperationContext
from migrationdb.dialects import (
    DialectTag,
    ensure_same_dialect,
    infer_dialect,
    mask_connection_string,
    validate_connections,
)
from migrationdb.exceptions import CommandError, ConfigurationError, DeadlineExceeded


PG_URL = 'postgresql://app:secret@db:5432/shop'
MYSQL_URL = 'mysql://root:p%40ss@db:3307/shop'
MONGO_URL = 'mongodb://app:secret@db:27017/shop'

needs_shell = pytest.mark.skipif(shutil.which('sh') is None, reason="POSIX shell not available")


class TestPostgresAdapters:
    """Test cases for pg_dump / pg_restore argument building."""

    def test_producer_plain_format(self):
        producer = PostgresProducer(PG_URL)

        assert producer.dialect() is DialectTag.POSTGRES
        assert producer.build_args() == [
            '--verbose', '--no-owner', '--no-privileges', '--format=plain', PG_URL
        ]

    def test_producer_compact_with_extra_args(self):
        producer = PostgresProducer(PG_URL, compact=True, extra_args=['--schema=public'])

        args = producer.build_args()

        assert '--format=custom' in args
        assert args[-2:] == ['--schema=public', PG_URL]

    def test_consumer_args(self):
        consumer = PostgresConsumer(PG_URL, extra_args=['--jobs=1'])

        assert consumer.build_args() == [
            '--verbose', '--no-owner', '--no-privileges', '--clean', '--if-exists',
            '--no-comments', '--no-security-labels', '--jobs=1', f'--dbname={PG_URL}'
        ]


class TestMySQLAdapters:
    """Test cases for the mysqldump / mysql adapters."""

    def test_parse_url(self):
        options = parse_mysql_url(MYSQL_URL)

        assert options == {
            'user': 'root',
            'password': 'p@ss',
            'host': 'db',
            'port': '3307',
            'database': 'shop',
        }

    def test_parse_url_default_port(self):
        assert parse_mysql_url('mysql://u:p@host/db')['port'] == '3306'

    def test_parse_url_without_database(self):
        with pytest.raises(ConfigurationError, match="host and a database"):
            parse_mysql_url('mysql://u:p@host')

    def test_option_file_is_private_and_removed(self):
        with mysql_option_file(parse_mysql_url(MYSQL_URL)) as path:
            content = Path(path).read_text()
            mode = stat.S_IMODE(os.stat(path).st_mode)

        assert content.startswith("[client]\n")
        assert "password=p@ss\n" in content
        assert "port=3307\n" in content
        assert mode == 0o600
        assert not os.path.exists(path)

    def test_producer_args(self):
        producer = MySQLProducer(MYSQL_URL, extra_args=['--routines'])

        assert producer.dialect() is DialectTag.MYSQL
        assert producer.build_args('/tmp/x.cnf') == [
            '--defaults-extra-file=/tmp/x.cnf', '--single-transaction', '--quick',
            '--compress', '--routines', 'shop'
        ]

    def test_consumer_args(self):
        consumer = MySQLConsumer(MYSQL_URL)
        assert consumer.build_args('/tmp/x.cnf') == ['--defaults-extra-file=/tmp/x.cnf', 'shop']

    def test_password_not_on_command_line(self):
        args = MySQLProducer(MYSQL_URL).build_args('/tmp/x.cnf')
        assert not any('p@ss' in arg for arg in args)


class TestMongoDBAdapters:

    def test_producer_and_consumer_args(self):
        producer = MongoDBProducer(MONGO_URL, extra_args=['--gzip'])
        consumer = MongoDBConsumer(MONGO_URL, extra_args=['--drop'])

        assert producer.build_args() == [f'--uri={MONGO_URL}', '--archive', '--gzip']
        assert consumer.build_args() == [f'--uri={MONGO_URL}', '--archive', '--drop']
        assert producer.dialect() is consumer.dialect() is DialectTag.MONGODB


class TestFactories:
    """Test cases for create_producer / create_consumer."""

    @pytest.mark.parametrize('dialect,url,producer_cls,consumer_cls', [
        (DialectTag.POSTGRES, PG_URL, PostgresProducer, PostgresConsumer),
        ('mysql', MYSQL_URL, MySQLProducer, MySQLConsumer),
        (DialectTag.MONGODB, MONGO_URL, MongoDBProducer, MongoDBConsumer),
    ])
    def test_dispatch(self, dialect, url, producer_cls, consumer_cls):
        assert isinstance(create_producer(dialect, url), producer_cls)
        assert isinstance(create_consumer(dialect, url), consumer_cls)

    def test_compact_flag_forwarded(self):
        assert create_producer(DialectTag.POSTGRES, PG_URL, compact=True).compact is True

    def test_unknown_dialect(self):
        with pytest.raises(ConfigurationError, match="unsupported database type: oracle"):
            create_producer('oracle', 'oracle://x')
        with pytest.raises(ConfigurationError, match="unsupported database type"):
            create_consumer('sqlite', 'sqlite://x')


class TestDialects:
    """Test cases for dialect helpers."""

    def test_ensure_same_dialect(self):
        assert ensure_same_dialect(
            PostgresProducer(PG_URL), PostgresConsumer(PG_URL)
        ) is DialectTag.POSTGRES

    def test_ensure_same_dialect_mismatch(self):
        with pytest.raises(ConfigurationError, match="must be of the same type"):
            ensure_same_dialect(PostgresProducer(PG_URL), MongoDBConsumer(MONGO_URL))

    def test_ensure_same_dialect_none(self):
        with pytest.raises(ConfigurationError, match="must not be None"):
            ensure_same_dialect(None, PostgresConsumer(PG_URL))

    @pytest.mark.parametrize('url,expected', [
        ('postgres://u@h/db', DialectTag.POSTGRES),
        ('postgresql://u@h/db', DialectTag.POSTGRES),
        ('mysql://u@h/db', DialectTag.MYSQL),
        ('mongodb://h/db', DialectTag.MONGODB),
        ('mongodb+srv://cluster.example.net/db', DialectTag.MONGODB),
    ])
    def test_infer_dialect(self, url, expected):
        assert infer_dialect(url) is expected

    @pytest.mark.parametrize('url', ['', 'redis://h', 'not a url'])
    def test_infer_dialect_invalid(self, url):
        with pytest.raises(ConfigurationError):
            infer_dialect(url)

    def test_validate_connections_stdout_mode_ignores_target(self):
        assert validate_connections(PG_URL, None, stdout_mode=True) is DialectTag.POSTGRES

    def test_validate_connections_requires_target(self):
        with pytest.raises(ConfigurationError, match="target connection string is required"):
            validate_connections(PG_URL, '')

    def test_mask_connection_string(self):
        assert mask_connection_string(PG_URL) == 'postgresql://app:****@db:5432/shop'
        assert mask_connection_string('mysql://root@db/shop') == 'mysql://root@db/shop'
        assert mask_connection_string('') == ''


@needs_shell
class TestCommandRunner:
    """Runs real (trivial) child processes through CommandRunner."""

    def test_produce_copies_stdout(self):
        sink = io.BytesIO()
        CommandRunner('sh', ['-c', 'printf "line one\\nline two\\n"']).produce(OperationContext(), sink)
        assert sink.getvalue() == b"line one\nline two\n"

    def test_produce_nonzero_exit(self):
        runner = CommandRunner('sh', ['-c', 'echo partial; echo "access denied" >&2; exit 3'])

        with pytest.raises(CommandError) as exc_info:
            runner.produce(OperationContext(), io.BytesIO())

        assert exc_info.value.returncode == 3
        assert "access denied" in exc_info.value.stderr
        assert str(exc_info.value).startswith("sh failed: exit status 3")

    def test_missing_tool(self):
        with pytest.raises(CommandError, match="could not start"):
            CommandRunner('migrationdb-no-such-tool', []).produce(OperationContext(), io.BytesIO())

    def test_consume_feeds_stdin(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / 'out.bin'
            runner = CommandRunner('sh', ['-c', f'cat > "{target}"'])

            runner.consume(OperationContext(), io.BytesIO(b"payload" * 1000))

            assert target.read_bytes() == b"payload" * 1000

    def test_consume_tool_exits_early(self):
        """A child that stops reading is judged by its exit status only."""
        runner = CommandRunner('sh', ['-c', 'exit 0'])
        runner.consume(OperationContext(), io.BytesIO(b"x" * (1024 * 1024)))

    def test_deadline_kills_child(self):
        ctx = OperationContext(timeout=0.2)
        runner = CommandRunner('sh', ['-c', 'exec sleep 30'])

        with pytest.raises(DeadlineExceeded):
            runner.produce(ctx, io.BytesIO())
