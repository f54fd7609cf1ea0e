"""Layer blob compression detection and decompression."""

from __future__ import annotations

import bz2
import gzip
import io
import lzma
import zlib
from enum import Enum
from typing import BinaryIO

from container_diff.utils.errors import DecompressionError
from container_diff.utils.logging import get_logger

logger = get_logger("compression")

TAR_BLOCK_SIZE = 512
_PEEK_SIZE = TAR_BLOCK_SIZE
_COPY_CHUNK = 1024 * 1024

# What the gzip, bz2 and lzma readers raise on truncated or corrupt input
CODEC_ERRORS: tuple[type[Exception], ...] = (OSError, EOFError, zlib.error, lzma.LZMAError)


class Compression(str, Enum):
    """Compression formats a layer blob may use."""

    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"
    ZSTD = "zstd"


_MAGIC: list[tuple[bytes, Compression]] = [
    (b"\x1f\x8b", Compression.GZIP),
    (b"BZh", Compression.BZIP2),
    (b"\xfd7zXZ\x00", Compression.XZ),
    (b"\x28\xb5\x2f\xfd", Compression.ZSTD),
]


def detect_compression(header: bytes) -> Compression:
    """Identify the compression of a blob from its leading bytes.

    Args:
        header: At least the first 512 bytes of the blob when available

    Returns:
        Detected compression

    Raises:
        DecompressionError: If the blob is empty or is neither compressed nor a tar stream
    """
    if not header:
        raise DecompressionError("Layer blob is empty")

    for magic, compression in _MAGIC:
        if header.startswith(magic):
            return compression

    if _looks_like_tar(header):
        return Compression.NONE

    raise DecompressionError("Layer blob is neither a supported compressed stream nor a tar archive")


def _looks_like_tar(header: bytes) -> bool:
    # ustar magic at offset 257, or a lone end-of-archive block
    if len(header) >= 262 and header[257:262] == b"ustar":
        return True
    return len(header) >= TAR_BLOCK_SIZE and not any(header[:TAR_BLOCK_SIZE])


def corrupt_layer_error(error: Exception, digest: str | None = None) -> DecompressionError:
    """DecompressionError for a codec failure part-way through a layer."""
    where = f" {digest}" if digest else ""
    return DecompressionError(f"Corrupt compressed layer{where}: {error}", digest=digest)


class _DecodingReader(io.RawIOBase):
    """Raw reader over a codec stream that reports codec failures as DecompressionError."""

    def __init__(self, stream: BinaryIO, digest: str | None) -> None:
        self._stream = stream
        self._digest = digest

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # noqa: ANN001
        try:
            return self._stream.readinto(buffer)
        except CODEC_ERRORS as e:
            raise corrupt_layer_error(e, self._digest) from e

    def close(self) -> None:
        if not self.closed:
            self._stream.close()
        super().close()


def _decoding(stream: BinaryIO, digest: str | None) -> BinaryIO:
    return io.BufferedReader(_DecodingReader(stream, digest), _COPY_CHUNK)


def open_decompressed(fileobj: BinaryIO, digest: str | None = None) -> BinaryIO:
    """Wrap a blob stream so reads return the uncompressed tar bytes.

    Args:
        fileobj: Readable binary stream positioned at the start of the blob
        digest: Layer digest for error context

    Returns:
        A readable stream of uncompressed data

    Raises:
        DecompressionError: If the compression is unknown or unsupported
    """
    buffered = fileobj if isinstance(fileobj, io.BufferedReader) else io.BufferedReader(fileobj, _COPY_CHUNK)
    header = buffered.peek(_PEEK_SIZE)[:_PEEK_SIZE]

    try:
        compression = detect_compression(header)
    except DecompressionError as e:
        raise DecompressionError(e.message, digest=digest) from None

    logger.debug(f"Layer {digest or '<stream>'} compression: {compression.value}")

    if compression is Compression.NONE:
        return buffered
    if compression is Compression.GZIP:
        return _decoding(gzip.GzipFile(fileobj=buffered, mode="rb"), digest)
    if compression is Compression.BZIP2:
        return _decoding(bz2.BZ2File(buffered, mode="rb"), digest)
    if compression is Compression.XZ:
        return _decoding(lzma.LZMAFile(buffered, mode="rb"), digest)

    raise DecompressionError(f"Unsupported layer compression: {compression.value}", digest=digest)


def decompress_to(src: BinaryIO, dest: BinaryIO, digest: str | None = None) -> int:
    """Decompress a whole blob stream into a destination file.

    Returns:
        Number of uncompressed bytes written
    """
    stream = open_decompressed(src, digest=digest)
    written = 0
    # Codec failures surface from read() as DecompressionError
    while chunk := stream.read(_COPY_CHUNK):
        dest.write(chunk)
        written += len(chunk)
    return written
