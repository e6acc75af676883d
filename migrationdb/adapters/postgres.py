"""pg_dump / pg_restore adapters."""

from typing import List, Sequence

from ..dialects import Consumer, DialectTag, Producer
from .base import CommandRunner


class PostgresProducer(Producer):
    """Streams a database through pg_dump."""

    def __init__(self, url: str, compact: bool = False, extra_args: Sequence[str] = ()):
        self.url = url
        self.compact = compact
        self.extra_args = list(extra_args)

    def dialect(self) -> DialectTag:
        return DialectTag.POSTGRES

    def build_args(self) -> List[str]:
        args = ['--verbose', '--no-owner', '--no-privileges']
        # custom format is smaller on the wire but only pg_restore can read it
        args.append('--format=custom' if self.compact else '--format=plain')
        # user flags go after the defaults so they can override them
        args.extend(self.extra_args)
        args.append(self.url)
        return args

    def write(self, ctx, sink) -> None:
        CommandRunner('pg_dump', self.build_args()).produce(ctx, sink)


class PostgresConsumer(Consumer):
    """Loads a custom-format stream through pg_restore."""

    def __init__(self, url: str, extra_args: Sequence[str] = ()):
        self.url = url
        self.extra_args = list(extra_args)

    def dialect(self) -> DialectTag:
        return DialectTag.POSTGRES

    def build_args(self) -> List[str]:
        args = [
            '--verbose',
            '--no-owner',
            '--no-privileges',
            '--clean',
            '--if-exists',
            '--no-comments',
            '--no-security-labels',
        ]
        args.extend(self.extra_args)
        args.append(f"--dbname={self.url}")
        return args

    def read(self, ctx, source) -> None:
        CommandRunner('pg_restore', self.build_args()).consume(ctx, source)
