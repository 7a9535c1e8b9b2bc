from __future__ import annotations

import gzip
from typing import BinaryIO, Optional

import zstandard

from .constants import (
    ARCHIVE_SUFFIXES,
    CODEC_GZIP,
    CODEC_NONE,
    CODEC_ZSTD,
    DEFAULT_GZIP_LEVEL,
    DEFAULT_ZSTD_LEVEL,
)


class Codec:
    """Output compression applied as a wrapper around a binary writer.

    The tar encoder writes into whatever :meth:`wrap` returns, so the
    compress/no-compress choice never reaches the splitting logic.
    """

    def __init__(self, codec_id: str, level: Optional[int] = None):
        if codec_id not in ARCHIVE_SUFFIXES:
            raise ValueError(f"unsupported codec: {codec_id}")
        self.codec_id = codec_id
        self.level = level

    @property
    def suffix(self) -> str:
        return ARCHIVE_SUFFIXES[self.codec_id]

    def wrap(self, fh: BinaryIO) -> BinaryIO:
        """Return a writer that compresses into ``fh``.

        Closing the returned writer flushes the compressed stream but leaves
        ``fh`` open, except for ``none`` where the writer is ``fh`` itself.
        """
        if self.codec_id == CODEC_NONE:
            return fh
        if self.codec_id == CODEC_GZIP:
            level = self.level if self.level is not None else DEFAULT_GZIP_LEVEL
            return gzip.GzipFile(fileobj=fh, mode="wb", compresslevel=level)
        if self.codec_id == CODEC_ZSTD:
            level = self.level if self.level is not None else DEFAULT_ZSTD_LEVEL
            cctx = zstandard.ZstdCompressor(level=level)
            return cctx.stream_writer(fh, closefd=False)
        raise RuntimeError(f"unsupported codec: {self.codec_id}")
