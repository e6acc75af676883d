"""mongodump / mongorestore adapters using the single-stream archive format."""

from typing import List, Sequence

from ..dialects import Consumer, DialectTag, Producer
from .base import CommandRunner


class MongoDBProducer(Producer):

    def __init__(self, url: str, extra_args: Sequence[str] = ()):
        self.url = url
        self.extra_args = list(extra_args)

    def dialect(self) -> DialectTag:
        return DialectTag.MONGODB

    def build_args(self) -> List[str]:
        return [f"--uri={self.url}", '--archive'] + self.extra_args

    def write(self, ctx, sink) -> None:
        CommandRunner('mongodump', self.build_args()).produce(ctx, sink)


class MongoDBConsumer(Consumer):

    def __init__(self, url: str, extra_args: Sequence[str] = ()):
        self.url = url
        self.extra_args = list(extra_args)

    def dialect(self) -> DialectTag:
        return DialectTag.MONGODB

    def build_args(self) -> List[str]:
        return [f"--uri={self.url}", '--archive'] + self.extra_args

    def read(self, ctx, source) -> None:
        CommandRunner('mongorestore', self.build_args()).consume(ctx, source)
