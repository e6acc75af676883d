"""
Dump Normalization

Two dumps of logically identical databases taken at different times differ
only in metadata lines: timestamps, tool and server version banners, TOC
annotations. The functions here drop those lines and nothing else; data rows
are never rewritten.

Every normalizer is a projection: normalizing twice equals normalizing once.
"""

from typing import Callable, Dict, Optional

from .dialects import DialectTag


Normalizer = Callable[[bytes], bytes]

POSTGRES_NOISE_PREFIXES = (
    b'-- Dumped from database version',
    b'-- Dumped by pg_dump version',
    b'-- Dumped on',
    b'-- Started on',
    b'-- Completed on',
    b'-- TOC entry',
    b'-- Name:',
    b'-- Data for Name:',
    # pg_dump 17.6+ guards plain dumps with a random per-run key
    b'\\restrict ',
    b'\\unrestrict ',
)

MYSQL_NOISE_PREFIXES = (
    b'-- Dump completed on',
    b'-- MySQL dump',
    b'-- MariaDB dump',
    b'-- Server version',
)

MONGODB_NOISE_MARKERS = (
    b'"$timestamp"',
    b'"$date"',
)


def normalize_postgres(chunk: bytes) -> bytes:
    """Trim trailing whitespace and drop pg_dump header and annotation comments."""
    kept = []
    for line in chunk.split(b'\n'):
        line = line.rstrip()
        if line.startswith(POSTGRES_NOISE_PREFIXES) or line == b'--':
            continue
        kept.append(line)
    return b'\n'.join(kept)


def normalize_mysql(chunk: bytes) -> bytes:
    """Drop mysqldump banners and the completion timestamp."""
    return b'\n'.join(
        line for line in chunk.split(b'\n')
        if not line.startswith(MYSQL_NOISE_PREFIXES)
    )


def normalize_mongodb(chunk: bytes) -> bytes:
    """Drop lines carrying embedded timestamps or dates."""
    return b'\n'.join(
        line for line in chunk.split(b'\n')
        if not any(marker in line for marker in MONGODB_NOISE_MARKERS)
    )


_NORMALIZERS: Dict[DialectTag, Normalizer] = {
    DialectTag.POSTGRES: normalize_postgres,
    DialectTag.MYSQL: normalize_mysql,
    DialectTag.MONGODB: normalize_mongodb,
}


def get_normalizer(dialect: DialectTag) -> Normalizer:
    """Select the normalizer for a dialect."""
    return _NORMALIZERS[DialectTag(dialect)]


# dialects whose normalizer trims trailing whitespace from every kept line
_TRIMS_TRAILING_WHITESPACE = frozenset({DialectTag.POSTGRES})


class ChunkNormalizer:
    """
    Stateful normalizer for a stream read in fixed-size chunks.

    Only complete lines are normalized. The trailing partial line of a chunk
    is carried into the next one, so a noise line split across two reads is
    still recognized. The carry never exceeds max_line bytes: a longer line
    cannot be a metadata comment and is passed through up to its newline.
    Trailing whitespace of a passed-through line is still trimmed for
    dialects that trim it, unless the whitespace run alone exceeds max_line.
    """

    def __init__(self, dialect: DialectTag, max_line: int):
        dialect = DialectTag(dialect)
        self._normalize = get_normalizer(dialect)
        self._trim = dialect in _TRIMS_TRAILING_WHITESPACE
        self._max_line = max_line
        self._carry = b''
        self._passthrough = False

    def _emit_partial(self, data: bytes) -> bytes:
        """Emit part of a long line, holding back whitespace that may end it."""
        if not self._trim:
            return data
        body = data.rstrip()
        if len(data) - len(body) > self._max_line:
            return data
        self._carry = data[len(body):]
        return body

    def feed(self, chunk: bytes) -> bytes:
        """Normalize the complete lines available after adding chunk."""
        if not chunk:
            return b''

        out = []
        data = self._carry + chunk
        self._carry = b''

        if self._passthrough:
            newline = data.find(b'\n')
            if newline < 0:
                return self._emit_partial(data)
            line = data[:newline]
            out.append((line.rstrip() if self._trim else line) + b'\n')
            data = data[newline + 1:]
            self._passthrough = False

        last_newline = data.rfind(b'\n')
        if last_newline >= 0:
            out.append(self._normalize(data[:last_newline + 1]))
            data = data[last_newline + 1:]

        if len(data) > self._max_line:
            out.append(self._emit_partial(data))
            self._passthrough = True
        else:
            self._carry = data

        return b''.join(out)

    def flush(self) -> bytes:
        """Normalize whatever is left once the stream has ended."""
        carry, self._carry = self._carry, b''
        if self._passthrough:
            self._passthrough = False
            return carry.rstrip() if self._trim else carry
        if not carry:
            return b''
        return self._normalize(carry)


def normalize_stream(dialect: DialectTag, chunks, max_line: Optional[int] = None) -> bytes:
    """Normalize an iterable of chunks as one stream."""
    normalizer = ChunkNormalizer(dialect, max_line or 1 << 20)
    parts = [normalizer.feed(chunk) for chunk in chunks]
    parts.append(normalizer.flush())
    return b''.join(parts)
