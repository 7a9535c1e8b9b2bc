from __future__ import annotations

from dataclasses import dataclass

from .constants import CODEC_GZIP, CODEC_NONE, CODEC_ZSTD, DEFAULT_OUTPUT_PREFIX, MEGABYTE
from .errors import ConfigurationError


@dataclass(frozen=True)
class SplitConfig:
    """Validated settings for one split run.

    Attributes:
        max_split_bytes: Uncompressed size threshold per split, in bytes.
        compress: Compress each split with ``codec``.
        codec: Compression codec used when ``compress`` is set ("gzip" or "zstd").
        manifest: Write a ``.manifest`` file listing the entries of each split.
        overwrite_existing: Replace outputs that already exist instead of failing.
        output_prefix: Path prefix for outputs; split N is ``<prefix>-N.tar[.gz|.zst]``.
        verbose: Report each entry and each rollover as it happens.
    """

    max_split_bytes: int
    compress: bool = False
    codec: str = CODEC_GZIP
    manifest: bool = False
    overwrite_existing: bool = False
    output_prefix: str = DEFAULT_OUTPUT_PREFIX
    verbose: bool = False

    def __post_init__(self):
        if isinstance(self.max_split_bytes, bool) or not isinstance(self.max_split_bytes, int):
            raise ConfigurationError("split size must be an integer number of bytes")
        if self.max_split_bytes <= 0:
            raise ConfigurationError("split size must be a positive number")
        if self.codec not in (CODEC_GZIP, CODEC_ZSTD):
            raise ConfigurationError(f"unsupported compression codec: {self.codec}")
        if not self.output_prefix:
            raise ConfigurationError("output prefix may not be empty")

    @classmethod
    def from_megabytes(cls, split_size_mb: int, **kwargs) -> "SplitConfig":
        if isinstance(split_size_mb, bool) or not isinstance(split_size_mb, int) or split_size_mb <= 0:
            raise ConfigurationError("--splitSize (-s) must be a positive integer number of megabytes")
        return cls(max_split_bytes=split_size_mb * MEGABYTE, **kwargs)

    @property
    def output_codec(self) -> str:
        return self.codec if self.compress else CODEC_NONE
