#!/usr/bin/env python3
"""
migrationdb - CLI Interface

Streams a database into another instance of the same engine (PostgreSQL,
MySQL or MongoDB), verifies the copy by comparing normalized re-dumps, and
prints a checksum of the result.
"""

import argparse
import signal
import sys
from typing import Optional, List

from tabulate import tabulate

from migrationdb import __version__
from migrationdb.adapters import create_producer
from migrationdb.checksum import compute_checksum
from migrationdb.config_manager import ConfigManager, VALID_LOG_LEVELS, parse_duration
from migrationdb.connectivity import test_connection
from migrationdb.context import OperationContext, format_duration
from migrationdb.dialects import mask_connection_string
from migrationdb.exceptions import Cancelled, ConfigurationError, MigrationError
from migrationdb.migration_engine import MigrationEngine, dump_to_sink
from migrationdb.validation_engine import ValidationEngine
from migrationdb.utils.logger import setup_logging, get_logger
from migrationdb.utils.status_monitor import StatusMonitor, MigrationPhase
from migrationdb.utils.error_collector import ErrorCollector


logger = get_logger('migrationdb.cli')


class CLI:
    """Main CLI interface for the migration tool."""

    def __init__(self):
        self.config_manager = ConfigManager()
        self.error_collector = ErrorCollector()
        self.status_monitor: Optional[StatusMonitor] = None
        self.ctx: Optional[OperationContext] = None
        self.out = sys.stdout

    def create_parser(self) -> argparse.ArgumentParser:
        """Create and configure the argument parser."""
        parser = argparse.ArgumentParser(
            description="Stream a database into another instance of the same engine and verify the copy",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  %(prog)s --config                                 Display current configuration
  %(prog)s --test-connections                       Test database connectivity
  %(prog)s --migrate                                Transfer, verify and checksum
  %(prog)s --migrate --skip-verify --timeout 2h     Transfer only, with a 2 hour deadline
  %(prog)s --migrate --stdout > dump.sql            Write the source dump to stdout
  %(prog)s --verify --verify-chunk-size 1048576     Compare source and target content
  %(prog)s --checksum                               Print a checksum of the target
            """
        )

        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

        # Primary actions (mutually exclusive)
        action_group = parser.add_mutually_exclusive_group(required=True)
        action_group.add_argument(
            '--config', '-c',
            action='store_true',
            help='Display current configuration'
        )
        action_group.add_argument(
            '--test-connections', '-t',
            action='store_true',
            help='Test database connectivity'
        )
        action_group.add_argument(
            '--migrate', '-m',
            action='store_true',
            help='Stream the source database into the target'
        )
        action_group.add_argument(
            '--verify', '-v',
            action='store_true',
            help='Compare source and target content'
        )
        action_group.add_argument(
            '--checksum', '-k',
            action='store_true',
            help='Print a checksum of the target (source in stdout mode)'
        )

        # Configuration overrides
        parser.add_argument(
            '--env-file',
            default='.env',
            help='Path to environment file (default: .env)'
        )
        parser.add_argument('--source', help='Source connection string')
        parser.add_argument('--target', help='Target connection string')
        parser.add_argument(
            '--stdout',
            action='store_true',
            help='Write the source dump to stdout instead of restoring it'
        )
        parser.add_argument(
            '--log-level',
            choices=VALID_LOG_LEVELS,
            help='Logging level'
        )
        parser.add_argument(
            '--buffer-size',
            type=int,
            help='Pipe capacity in bytes (integer)'
        )
        parser.add_argument(
            '--timeout',
            help='Operation deadline, e.g. 90s, 30m, 24h'
        )
        parser.add_argument(
            '--skip-verify',
            action='store_true',
            help='Skip content verification after migration'
        )
        parser.add_argument(
            '--verify-chunk-size',
            type=int,
            help='Comparison chunk size in bytes (integer)'
        )
        parser.add_argument(
            '--skip-tls-verify',
            action='store_true',
            help='Relax TLS verification for connection tests'
        )
        parser.add_argument(
            '--dump-arg',
            action='append',
            default=[],
            help='Extra flag for the dump tool, e.g. --dump-arg=--no-tablespaces (repeatable)'
        )
        parser.add_argument(
            '--restore-arg',
            action='append',
            default=[],
            help='Extra flag for the restore tool, e.g. --restore-arg=--jobs=4 (repeatable)'
        )
        parser.add_argument(
            '--no-progress',
            action='store_true',
            help='Disable progress bars'
        )

        return parser

    def setup_configuration(self, args: argparse.Namespace) -> dict:
        """Setup configuration from arguments and environment."""
        try:
            # Load base configuration
            config = self.config_manager.load_config_from_env(args.env_file, validate=False)
            migration = config['migration']

            # Apply command-line overrides
            if args.source:
                config['source']['url'] = args.source
            if args.target:
                config['target']['url'] = args.target
            if args.stdout:
                migration['stdout_mode'] = True
            if args.log_level:
                migration['log_level'] = args.log_level
            if args.buffer_size is not None:
                migration['buffer_size'] = args.buffer_size
            if args.timeout:
                migration['timeout'] = parse_duration(args.timeout)
            if args.skip_verify:
                migration['skip_verification'] = True
            if args.verify_chunk_size is not None:
                migration['verify_chunk_size'] = args.verify_chunk_size
            if args.skip_tls_verify:
                migration['skip_tls_verify'] = True
            if args.dump_arg:
                migration['dump_args'] = migration['dump_args'] + args.dump_arg
            if args.restore_arg:
                migration['restore_args'] = migration['restore_args'] + args.restore_arg
            if args.no_progress:
                migration['enable_progress_bar'] = False

            self.config_manager.validate_config(config)
            return config
        except ConfigurationError as e:
            print(f"❌ Configuration error: {e}", file=sys.stderr)
            sys.exit(1)

    def display_config(self, config: dict):
        """Display current configuration."""
        migration = config['migration']
        rows = [
            ['Source', mask_connection_string(config['source']['url'])],
            ['Target', mask_connection_string(config['target']['url']) or '-'],
            ['Database Type', config['source']['dialect'].value],
            ['Stdout Mode', migration['stdout_mode']],
            ['Buffer Size', migration['buffer_size']],
            ['Timeout', format_duration(migration['timeout'])],
            ['Skip Verification', migration['skip_verification']],
            ['Verify Chunk Size', migration['verify_chunk_size']],
            ['Checksum Algorithm', migration['checksum_algorithm']],
            ['Skip TLS Verify', migration['skip_tls_verify']],
            ['Dump Args', ' '.join(migration['dump_args']) or '-'],
            ['Restore Args', ' '.join(migration['restore_args']) or '-'],
            ['Log Level', migration['log_level']],
        ]
        print("🔧 Current Configuration:", file=self.out)
        print(tabulate(rows, headers=['Setting', 'Value'], tablefmt='simple'), file=self.out)

    def _new_context(self, config: dict) -> OperationContext:
        self.ctx = OperationContext(config['migration']['timeout'])
        return self.ctx

    def _handle_signal(self, signum, frame):
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, cancelling...")
        if self.ctx is not None:
            self.ctx.cancel()

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

    def _fail(self, stage: str, error: Exception) -> None:
        """Record a failure and tell the operator what went wrong."""
        if isinstance(error, Cancelled):
            message = f"{stage} {error}"
        else:
            message = str(error)
        self.error_collector.add_exception(stage, error)
        if self.status_monitor is not None:
            self.status_monitor.set_phase(MigrationPhase.FAILED)
        print(f"❌ {message}", file=self.out)

    def _test_sides(self, config: dict) -> bool:
        """Test every configured database; failures land in the error collector."""
        sides = ['source'] if config['migration']['stdout_mode'] else ['source', 'target']
        success = True
        for side in sides:
            try:
                test_connection(config[side]['dialect'], config[side]['url'],
                                config['migration']['skip_tls_verify'])
                print(f"  ✅ {side}: {mask_connection_string(config[side]['url'])}", file=self.out)
            except MigrationError as e:
                self.error_collector.add_connection_error(side, str(e))
                print(f"  ❌ {side}: {e}", file=self.out)
                success = False
        return success

    def test_connections(self, config: dict) -> bool:
        """Test database connections."""
        print("🔍 Testing Database Connections...", file=self.out)

        if not self._test_sides(config):
            print("❌ Connection test failed!", file=self.out)
            self.error_collector.print_summary(self.out)
            return False

        print("✅ All database connections successful!", file=self.out)
        return True

    def _checksum_producer(self, config: dict):
        side = 'source' if config['migration']['stdout_mode'] else 'target'
        return create_producer(config[side]['dialect'], config[side]['url'],
                               extra_args=config['migration']['dump_args'])

    def _abort_migration(self, stage: str, error: Exception) -> bool:
        self._fail(stage, error)
        self.status_monitor.complete_migration(False)
        self.error_collector.print_summary(self.out)
        return False

    def run_migration(self, config: dict) -> bool:
        """Execute the transfer, then verification and checksum."""
        migration = config['migration']
        print("🚀 Migration Starting...", file=self.out)

        with self._new_context(config) as ctx:
            self.status_monitor.set_phase(MigrationPhase.CONNECTING)
            if not self._test_sides(config):
                self.status_monitor.complete_migration(False)
                self.error_collector.print_summary(self.out)
                return False

            self.status_monitor.set_phase(MigrationPhase.TRANSFERRING)
            try:
                if migration['stdout_mode']:
                    producer = create_producer(config['source']['dialect'], config['source']['url'],
                                               extra_args=migration['dump_args'])
                    dump_to_sink(ctx, producer, sys.stdout.buffer)
                else:
                    MigrationEngine.from_config(config, self.status_monitor).migrate(ctx)
            except MigrationError as e:
                return self._abort_migration('migration', e)

            if migration['stdout_mode']:
                self.status_monitor.complete_migration(True)
                return True

            if migration['skip_verification']:
                logger.info("Content verification skipped")
            else:
                self.status_monitor.set_phase(MigrationPhase.VERIFYING)
                try:
                    ValidationEngine.from_config(config, self.status_monitor).verify_content(ctx)
                except MigrationError as e:
                    return self._abort_migration('verification', e)

            self.status_monitor.set_phase(MigrationPhase.CHECKSUM)
            try:
                checksum = compute_checksum(ctx, self._checksum_producer(config),
                                            migration['checksum_algorithm'], migration['buffer_size'])
                print(f"🔑 Target checksum ({migration['checksum_algorithm']}): {checksum}", file=self.out)
            except MigrationError as e:
                self.error_collector.add_exception('checksum', e, critical=False)
                logger.warning(f"Failed to calculate checksum: {e}")

        self.status_monitor.complete_migration(True)
        if self.error_collector.has_warnings():
            self.error_collector.print_summary(self.out)
        print("✅ Migration completed successfully!", file=self.out)
        return True

    def run_verification(self, config: dict) -> bool:
        """Compare source and target content."""
        if config['migration']['stdout_mode']:
            print("❌ Verification needs a target database", file=self.out)
            return False

        print("🔍 Starting Verification...", file=self.out)
        with self._new_context(config) as ctx:
            try:
                self.status_monitor.set_phase(MigrationPhase.VERIFYING)
                ValidationEngine.from_config(config, self.status_monitor).verify_content(ctx)
            except MigrationError as e:
                self._fail('verification', e)
                self.error_collector.print_summary(self.out)
                return False

        print("✅ Verification completed successfully!", file=self.out)
        return True

    def run_checksum(self, config: dict) -> bool:
        """Print the checksum of one database."""
        migration = config['migration']
        with self._new_context(config) as ctx:
            try:
                self.status_monitor.set_phase(MigrationPhase.CHECKSUM)
                checksum = compute_checksum(ctx, self._checksum_producer(config),
                                            migration['checksum_algorithm'], migration['buffer_size'])
            except MigrationError as e:
                self._fail('checksum', e)
                self.error_collector.print_summary(self.out)
                return False

        print(f"{migration['checksum_algorithm']}: {checksum}", file=self.out)
        return True

    def run(self, argv: Optional[List[str]] = None) -> bool:
        """Main CLI entry point; returns True on success."""
        parser = self.create_parser()
        args = parser.parse_args(argv)

        # Load and setup configuration
        config = self.setup_configuration(args)
        migration = config['migration']

        # Setup logging
        setup_logging(migration['log_level'])

        # stdout may carry the dump itself
        if migration['stdout_mode']:
            self.out = sys.stderr
        self.status_monitor = StatusMonitor(migration['enable_progress_bar'], out=self.out)
        self._install_signal_handlers()

        # Execute requested action
        try:
            if args.config:
                self.display_config(config)
                return True
            if args.test_connections:
                return self.test_connections(config)
            if args.migrate:
                return self.run_migration(config)
            if args.verify:
                return self.run_verification(config)
            if args.checksum:
                return self.run_checksum(config)
        except Exception as e:
            logger.exception("Unexpected error")
            print(f"❌ Unexpected error: {e}", file=self.out)
        return False


def main():
    """Entry point for the CLI application."""
    cli = CLI()
    sys.exit(0 if cli.run() else 1)


if __name__ == '__main__':
    main()
