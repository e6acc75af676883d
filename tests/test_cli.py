"""
Test CLI

Configuration overrides and reporting of the command-line interface.
"""

import io
import os
import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from cli import CLI
from migrationdb.dialects import DialectTag
from migrationdb.exceptions import DeadlineExceeded
from migrationdb.utils.error_collector import ErrorCategory


class TestCLI:
    """Test cases for the CLI class."""

    def setup_method(self):
        """Setup test fixtures."""
        self.cli = CLI()
        self.parser = self.cli.create_parser()

    @patch.dict(os.environ, {}, clear=True)
    def test_overrides_apply_before_validation(self):
        args = self.parser.parse_args([
            '--migrate', '--env-file', 'nonexistent.env',
            '--source', 'mysql://root:pw@a/shop', '--target', 'mysql://root:pw@b/shop',
            '--buffer-size', '4096', '--timeout', '90s', '--skip-verify',
            '--dump-arg=--routines', '--dump-arg=--events', '--no-progress',
        ])

        config = self.cli.setup_configuration(args)

        migration = config['migration']
        assert config['source']['dialect'] is DialectTag.MYSQL
        assert migration['buffer_size'] == 4096
        assert migration['timeout'] == 90
        assert migration['skip_verification'] is True
        assert migration['dump_args'] == ['--routines', '--events']
        assert migration['enable_progress_bar'] is False

    @patch.dict(os.environ, {}, clear=True)
    def test_invalid_configuration_exits(self):
        args = self.parser.parse_args(['--config', '--env-file', 'nonexistent.env'])

        with patch('builtins.print'):
            with pytest.raises(SystemExit) as exc_info:
                self.cli.setup_configuration(args)

        assert exc_info.value.code == 1

    @patch.dict(os.environ, {}, clear=True)
    def test_stdout_mode_needs_no_target(self):
        args = self.parser.parse_args([
            '--migrate', '--stdout', '--env-file', 'nonexistent.env',
            '--source', 'postgresql://u:p@a/db',
        ])

        config = self.cli.setup_configuration(args)

        assert config['migration']['stdout_mode'] is True

    def test_actions_are_exclusive(self):
        with patch('sys.stderr', new=io.StringIO()):
            with pytest.raises(SystemExit):
                self.parser.parse_args(['--migrate', '--verify'])

    @patch.dict(os.environ, {}, clear=True)
    def test_display_config_masks_passwords(self):
        args = self.parser.parse_args([
            '--config', '--env-file', 'nonexistent.env',
            '--source', 'postgresql://app:topsecret@a/db', '--target', 'postgresql://app:topsecret@b/db',
        ])
        config = self.cli.setup_configuration(args)
        self.cli.out = io.StringIO()

        self.cli.display_config(config)

        text = self.cli.out.getvalue()
        assert 'postgresql://app:****@a/db' in text
        assert 'topsecret' not in text
        assert '24h0m0s' in text

    def test_timeout_is_reported_with_stage(self):
        self.cli.out = io.StringIO()

        self.cli._fail('migration', DeadlineExceeded("timed out after 24h0m0s"))

        assert "migration timed out after 24h0m0s" in self.cli.out.getvalue()
        assert len(self.cli.error_collector.get_errors_by_category(ErrorCategory.TIMEOUT)) == 1
