"""
Split controller: assigns each incoming entry to the open split or rolls
over to a new one, keeping every split under the uncompressed size limit.

Rules, applied per entry in source order:

- ``size >= max_split_bytes``: fatal :class:`EntryTooLarge`; no split could
  ever hold the entry.
- ``running_size + size < max_split_bytes``: the entry joins the open split.
- otherwise the open split is finalized, the next index is opened (with a
  fresh overwrite check) and the entry becomes its first member.

The fit test is strict, so a split counts as full once the next entry would
reach the limit. The first entry of a new split is admitted on the
too-large check alone; with the ``>=`` rejection above this still leaves
``running_size < max_split_bytes`` for every split.

Hard links are the one case where a split may not stand alone: a link whose
target was committed to an earlier split is still written as a link, and a
warning on stderr names the link and the missing target.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Set, TextIO

from .config import SplitConfig
from .entries import Entry
from .errors import EntryTooLarge
from .sink import SinkFactory, close_quietly
from .source import open_entries


STATE_UNINITIALIZED = "uninitialized"
STATE_RUNNING = "running"
STATE_FINALIZED = "finalized"
STATE_FAILED = "failed"


class Sink(Protocol):
    archive_path: str
    manifest_path: Optional[str]

    def write(self, entry: Entry) -> None:
        ...

    def close(self) -> None:
        ...


class SinkFactoryPort(Protocol):
    def check_destination(self, index: int) -> None:
        ...

    def open(self, index: int) -> Sink:
        ...


@dataclass
class SplitInfo:
    index: int
    archive_path: str
    manifest_path: Optional[str] = None
    entry_names: List[str] = field(default_factory=list)
    running_size: int = 0
    closed: bool = False


@dataclass
class SplitSummary:
    splits: List[SplitInfo]

    @property
    def entry_count(self) -> int:
        return sum(len(s.entry_names) for s in self.splits)

    @property
    def total_bytes(self) -> int:
        return sum(s.running_size for s in self.splits)


class SplitController:
    """Drives one split run. Construct once per run; not reusable.

    Usage::

        with SplitController(config) as ctl:
            for entry in entries:
                ctl.accept(entry)
        summary = ctl.summary()
    """

    def __init__(
        self,
        config: SplitConfig,
        factory: Optional[SinkFactoryPort] = None,
        out: Optional[TextIO] = None,
    ):
        self.config = config
        self.factory = factory if factory is not None else SinkFactory(config)
        self.out = out if out is not None else sys.stdout
        self.state = STATE_UNINITIALIZED
        self.splits: List[SplitInfo] = []
        self._sink: Optional[Sink] = None
        self._committed: Set[str] = set()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        elif self.state == STATE_RUNNING:
            self.finalize()

    @property
    def current(self) -> Optional[SplitInfo]:
        return self.splits[-1] if self.splits else None

    def start(self) -> None:
        """Open split 0. Fails before any entry is read if its outputs exist."""
        if self.state != STATE_UNINITIALIZED:
            raise RuntimeError(f"cannot start a controller in state '{self.state}'")
        try:
            self._open_split(0)
        except Exception:
            self.abort()
            raise
        self.state = STATE_RUNNING

    def accept(self, entry: Entry) -> None:
        """Commit ``entry`` to the open split, rolling over first if needed."""
        if self.state != STATE_RUNNING:
            raise RuntimeError(f"cannot accept entries in state '{self.state}'")
        try:
            self._classify(entry)
        except Exception:
            self.abort()
            raise

    def finalize(self) -> SplitSummary:
        """Close the open split and end the run."""
        if self.state != STATE_RUNNING:
            raise RuntimeError(f"cannot finalize a controller in state '{self.state}'")
        self._close_split()
        self.state = STATE_FINALIZED
        return self.summary()

    def abort(self) -> None:
        """Stop the run after a fatal error. Outputs written so far stay on disk."""
        if self._sink is not None:
            sink, self._sink = self._sink, None
            close_quietly(sink)
            self.current.closed = True
        if self.state != STATE_FINALIZED:
            self.state = STATE_FAILED

    def summary(self) -> SplitSummary:
        return SplitSummary(splits=list(self.splits))

    # -------- internals --------

    def _classify(self, entry: Entry) -> None:
        limit = self.config.max_split_bytes
        if entry.size >= limit:
            raise EntryTooLarge(entry.name, entry.size, limit)
        if self.config.verbose:
            print(f"Input : {entry.name} ({entry.kind}, {entry.size} bytes)", file=self.out)
        cur = self.current
        if cur.running_size + entry.size < limit:
            self._commit(entry)
            return
        next_index = cur.index + 1
        self._close_split()
        self._open_split(next_index)
        if self.config.verbose:
            print(
                f"Entry {entry.name} ({entry.size} bytes) does not fit in split {cur.index} "
                f"({cur.running_size}/{limit} bytes used). Starting a new archive : {self.current.archive_path}",
                file=self.out,
            )
        self._commit(entry)

    def _commit(self, entry: Entry) -> None:
        cur = self.current
        if entry.info.islnk() and entry.info.linkname not in self._committed:
            self._warn_detached_link(entry, cur)
        self._sink.write(entry)
        cur.entry_names.append(entry.name)
        self._committed.add(entry.name)
        cur.running_size += entry.size

    def _open_split(self, index: int) -> None:
        self.factory.check_destination(index)
        sink = self.factory.open(index)
        self._sink = sink
        self._committed = set()
        self.splits.append(SplitInfo(index=index, archive_path=sink.archive_path, manifest_path=sink.manifest_path))

    def _warn_detached_link(self, entry: Entry, cur: SplitInfo) -> None:
        msg = (
            f"hard link {entry.name} points to {entry.info.linkname}, which is not in split {cur.index}; "
            f"{cur.archive_path} will not extract on its own"
        )
        print(f"Warning: {msg}", file=sys.stderr)
        if self.config.verbose:
            print(f"Link  : {msg}", file=self.out)

    def _close_split(self) -> None:
        sink, self._sink = self._sink, None
        sink.close()
        self.current.closed = True


def split_entries(
    entries: Iterable[Entry],
    config: SplitConfig,
    factory: Optional[SinkFactoryPort] = None,
    out: Optional[TextIO] = None,
) -> SplitSummary:
    """Split a whole entry stream and return what was written.

    Entries are pulled one at a time; each is fully written before the next
    one is requested.
    """
    try:
        with SplitController(config, factory=factory, out=out) as ctl:
            for entry in entries:
                ctl.accept(entry)
    finally:
        # Release the input (e.g. an open tarfile) even when the run fails
        close = getattr(entries, "close", None)
        if close is not None:
            close()
    return ctl.summary()


def split_path(path: str, config: SplitConfig, out: Optional[TextIO] = None) -> SplitSummary:
    """Split a tar archive or directory at ``path`` according to ``config``.

    When ``path`` is a directory, outputs of this run that land inside it are
    not archived.
    """
    factory = SinkFactory(config)
    entries = open_entries(path, exclude=factory.is_output)
    return split_entries(entries, config, factory=factory, out=out)
