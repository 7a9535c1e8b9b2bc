"""
Output side of a split run: naming, overwrite checks, and the per-split
writer that encodes entries into a standalone tar (optionally compressed)
plus an optional plain-text manifest.
"""

from __future__ import annotations

import os
import re
import sys
import tarfile
from typing import BinaryIO, Optional

from .codec import Codec
from .config import SplitConfig
from .constants import MANIFEST_SUFFIX
from .entries import Entry
from .errors import DestinationConflict


class SplitSink:
    """Streaming writer for one output split.

    Layout: file -> codec wrapper -> tar stream writer. The tar is written in
    stream mode so memory use does not depend on entry size.
    """

    def __init__(self, index: int, archive_path: str, codec: Codec, manifest_path: Optional[str] = None):
        self.index = index
        self.archive_path = archive_path
        self.manifest_path = manifest_path
        self.closed = False
        self._raw: BinaryIO = open(archive_path, "wb")
        self._writer = codec.wrap(self._raw)
        self._tar = tarfile.open(fileobj=self._writer, mode="w|")
        self._manifest = None
        if manifest_path is not None:
            self._manifest = open(manifest_path, "w", encoding="utf-8", newline="\n")

    def write(self, entry: Entry) -> None:
        """Append one entry (header and full content) to the split."""
        if self.closed:
            raise RuntimeError(f"split {self.index} is already closed")
        try:
            self._tar.addfile(entry.info, entry.stream)
        finally:
            if entry.stream is not None:
                entry.stream.close()
        if self._manifest is not None:
            self._manifest.write(f"{entry.name}\n")

    def close(self) -> None:
        """Write the tar trailer, flush the codec and close all files."""
        if self.closed:
            return
        self.closed = True
        try:
            self._tar.close()
            if self._writer is not self._raw:
                self._writer.close()
        finally:
            self._raw.close()
            if self._manifest is not None:
                self._manifest.close()


class SinkFactory:
    """Opens :class:`SplitSink` objects for successive split indices."""

    def __init__(self, config: SplitConfig):
        self.config = config
        self.codec = Codec(config.output_codec)

    def archive_path(self, index: int) -> str:
        return f"{self.config.output_prefix}-{index}{self.codec.suffix}"

    def manifest_path(self, index: int) -> Optional[str]:
        if not self.config.manifest:
            return None
        return f"{self.config.output_prefix}-{index}{MANIFEST_SUFFIX}"

    def is_output(self, path: str) -> bool:
        """True if ``path`` is an archive or manifest this run could write."""
        prefix_dir, prefix_name = os.path.split(os.path.abspath(self.config.output_prefix))
        path_dir, name = os.path.split(os.path.abspath(path))
        if os.path.realpath(path_dir) != os.path.realpath(prefix_dir):
            return False
        suffixes = [self.codec.suffix]
        if self.config.manifest:
            suffixes.append(MANIFEST_SUFFIX)
        pattern = re.escape(prefix_name) + r"-\d+(?:" + "|".join(re.escape(s) for s in suffixes) + ")"
        return re.fullmatch(pattern, name) is not None

    def check_destination(self, index: int) -> None:
        """Raise DestinationConflict if opening ``index`` would overwrite a file.

        Args:
            index: Split index about to be opened.

        Raises:
            DestinationConflict: The archive or manifest path exists and
                overwriting is disabled.
        """
        if self.config.overwrite_existing:
            return
        for path in (self.archive_path(index), self.manifest_path(index)):
            if path is not None and os.path.lexists(path):
                raise DestinationConflict(path, index)

    def open(self, index: int) -> SplitSink:
        archive_path = self.archive_path(index)
        parent = os.path.dirname(archive_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        return SplitSink(index, archive_path, self.codec, self.manifest_path(index))


def close_quietly(sink: SplitSink) -> None:
    """Best-effort close used when a run is aborting; never raises OSError."""
    try:
        sink.close()
    except (OSError, tarfile.TarError) as exc:
        print(f"Warning: failed to close {sink.archive_path}: {exc}", file=sys.stderr)
