"""
Subprocess plumbing shared by the engine adapters.

Dump tools write to their stdout and restore tools read from their stdin;
CommandRunner pumps those pipes to and from the in-memory streams and ties
the child's lifetime to the operation context.
"""

import logging
import subprocess
import tempfile
from typing import List, Sequence

from ..context import OperationContext
from ..exceptions import CommandError


COPY_BLOCK_SIZE = 64 * 1024
STDERR_TAIL_BYTES = 4096

logger = logging.getLogger(__name__)


def _stderr_tail(handle) -> str:
    handle.seek(0, 2)
    size = handle.tell()
    handle.seek(max(0, size - STDERR_TAIL_BYTES))
    return handle.read().decode('utf-8', errors='replace')


class CommandRunner:
    """Runs one external tool bound to an operation context."""

    def __init__(self, tool: str, args: Sequence[str]):
        self.tool = tool
        self.args: List[str] = list(args)

    @property
    def argv(self) -> List[str]:
        return [self.tool] + self.args

    def _spawn(self, stderr, **kwargs) -> subprocess.Popen:
        logger.debug(f"Starting {self.tool} with {len(self.args)} arguments")
        try:
            return subprocess.Popen(self.argv, stderr=stderr, **kwargs)
        except OSError as e:
            raise CommandError(self.tool, -1, f"could not start {self.tool}: {e}") from e

    def _finish(self, ctx: OperationContext, proc: subprocess.Popen, stderr) -> None:
        returncode = proc.wait()
        # A child killed by cancellation reports the context error, not its signal.
        ctx.check()
        if returncode != 0:
            raise CommandError(self.tool, returncode, _stderr_tail(stderr))
        logger.debug(f"{self.tool} exited cleanly")

    def produce(self, ctx: OperationContext, sink) -> None:
        """Run the tool and copy its stdout into sink."""
        ctx.check()
        with tempfile.TemporaryFile() as stderr:
            proc = self._spawn(stderr, stdout=subprocess.PIPE)
            kill = proc.kill
            ctx.add_callback(kill)
            try:
                try:
                    while True:
                        block = proc.stdout.read1(COPY_BLOCK_SIZE)
                        if not block:
                            break
                        sink.write(block)
                except BaseException:
                    proc.kill()
                    proc.wait()
                    raise
                finally:
                    proc.stdout.close()
                self._finish(ctx, proc, stderr)
            finally:
                ctx.remove_callback(kill)

    def consume(self, ctx: OperationContext, source) -> None:
        """Run the tool and feed source into its stdin until end-of-stream."""
        ctx.check()
        with tempfile.TemporaryFile() as stderr:
            proc = self._spawn(stderr, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL)
            kill = proc.kill
            ctx.add_callback(kill)
            try:
                try:
                    while True:
                        block = source.read(COPY_BLOCK_SIZE)
                        if not block:
                            break
                        try:
                            proc.stdin.write(block)
                        except BrokenPipeError:
                            logger.debug(f"{self.tool} closed its input before end of stream")
                            break
                    try:
                        proc.stdin.close()
                    except BrokenPipeError:
                        pass
                except BaseException:
                    proc.kill()
                    proc.wait()
                    raise
                self._finish(ctx, proc, stderr)
            finally:
                ctx.remove_callback(kill)
