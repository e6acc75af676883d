"""
migrationdb

Streams a database into another instance of the same engine (PostgreSQL,
MySQL or MongoDB) through a bounded in-memory pipe, verifies the copy by
comparing normalized re-dumps chunk by chunk, and fingerprints the result
with a checksum.
"""

__version__ = "0.1.0"
__author__ = "migrationdb Team"
__description__ = "Streaming database transfer and verification tool"
