"""Streaming checksum for blob ingestion.

Blob content is tagged with XXH64 (seed 0). XXH64 is a fast,
non-cryptographic hash: it detects accidental corruption but is unsuitable
for authentication or for tamper detection against an adversary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO

import xxhash

logger = logging.getLogger(__name__)

ALG_XXHASH_64 = "xxHash64"
XXHASH_64_SEED = 0

DEFAULT_CHUNK_SIZE = 64 * 1024

SUPPORTED_CHECKSUM_ALGORITHMS = frozenset({ALG_XXHASH_64})


@dataclass(frozen=True)
class DigestResult:
    """Outcome of a single-pass copy.

    Attributes:
        length: Number of bytes written.
        hexdigest: Lower-case hex digest of exactly those bytes.
        algorithm: Checksum algorithm identifier.
    """

    length: int
    hexdigest: str
    algorithm: str = ALG_XXHASH_64


def new_hasher() -> xxhash.xxh64:
    """Create a fresh XXH64 hasher with the store seed."""
    return xxhash.xxh64(seed=XXHASH_64_SEED)


def checksum_bytes(data: bytes) -> str:
    """Compute the hex XXH64 checksum of an in-memory buffer."""
    return xxhash.xxh64_hexdigest(data, seed=XXHASH_64_SEED)


def checksum_stream(source: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute the hex XXH64 checksum of a stream without buffering it."""
    hasher = new_hasher()
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest()


def copy_with_digest(
    source: BinaryIO,
    destination: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> DigestResult:
    """Copy source into destination while hashing, in one pass.

    Each chunk is read once and fed to both the hasher and the writer, so
    memory stays bounded by chunk_size regardless of payload size. Neither
    stream is closed here.

    Args:
        source: Readable binary stream.
        destination: Writable binary stream.
        chunk_size: Read size per iteration.

    Returns:
        DigestResult with byte count and hex digest.

    Raises:
        OSError: On any read or write failure.
    """
    hasher = new_hasher()
    length = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        hasher.update(chunk)
        destination.write(chunk)
        length += len(chunk)
    digest = DigestResult(length=length, hexdigest=hasher.hexdigest())
    logger.debug("Copied %d bytes, %s=%s", length, digest.algorithm, digest.hexdigest)
    return digest
