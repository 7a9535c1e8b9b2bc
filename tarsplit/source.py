"""
Entry sources: turn an existing tar archive or a directory tree into a
forward-only stream of :class:`~tarsplit.entries.Entry` records.

Both sources are generators. The consumer must finish reading an entry's
content before asking for the next one; the tar source reads its input in
stream mode and cannot seek back.
"""

from __future__ import annotations

import os
import stat
import sys
import tarfile
from typing import BinaryIO, Callable, Iterator, Optional

from .constants import COPY_BUFSIZE
from .entries import Entry, entry_from_tarinfo
from .errors import ConfigurationError


class _DeferredFile:
    """Read-only file handle that opens its path on first read."""

    def __init__(self, path: str):
        self.path = path
        self._fh: Optional[BinaryIO] = None
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        if self._closed:
            raise ValueError(f"read from closed file: {self.path}")
        if self._fh is None:
            self._fh = open(self.path, "rb", buffering=COPY_BUFSIZE)
        return self._fh.read(size)

    def close(self) -> None:
        self._closed = True
        if self._fh is not None:
            self._fh.close()
            self._fh = None


def iter_tar_entries(path: str) -> Iterator[Entry]:
    """Yield the members of a tar archive in archive order.

    Compressed input (gzip, bzip2, xz) is detected and decoded transparently.
    """
    with tarfile.open(path, mode="r|*") as tf:
        for info in tf:
            stream = tf.extractfile(info) if info.isreg() else None
            yield entry_from_tarinfo(info, stream)


def _tarinfo_from_stat(full: str, arcname: str, st: os.stat_result) -> Optional[tarfile.TarInfo]:
    info = tarfile.TarInfo(arcname)
    info.mode = stat.S_IMODE(st.st_mode)
    info.uid = st.st_uid
    info.gid = st.st_gid
    info.mtime = int(st.st_mtime)
    mode = st.st_mode
    if stat.S_ISREG(mode):
        info.type = tarfile.REGTYPE
        info.size = st.st_size
    elif stat.S_ISDIR(mode):
        info.type = tarfile.DIRTYPE
    elif stat.S_ISLNK(mode):
        info.type = tarfile.SYMTYPE
        info.linkname = os.readlink(full)
    elif stat.S_ISFIFO(mode):
        info.type = tarfile.FIFOTYPE
    elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        info.type = tarfile.CHRTYPE if stat.S_ISCHR(mode) else tarfile.BLKTYPE
        info.devmajor = os.major(st.st_rdev)
        info.devminor = os.minor(st.st_rdev)
    else:
        # Sockets and other special files have no tar representation
        return None
    return info


def iter_directory_entries(root: str, exclude: Optional[Callable[[str], bool]] = None) -> Iterator[Entry]:
    """Synthesize a tar entry stream from a directory tree.

    Entries are named relative to ``root`` with forward slashes. Each
    directory is emitted before its contents: first its files and links in
    sorted order, then its subdirectories in sorted order. Symlinks are
    stored as links and never followed. Paths for which ``exclude`` returns
    True (the outputs of the run reading this walk) are skipped.
    """
    root = os.fspath(root)
    for cur, dirnames, filenames in os.walk(root):
        dirnames.sort()
        names = sorted(filenames + [d for d in dirnames if os.path.islink(os.path.join(cur, d))])
        # os.walk lists directory symlinks under dirnames; they are stored as links instead
        dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(cur, d))]
        rel = os.path.relpath(cur, root)
        if rel != ".":
            info = _tarinfo_from_stat(cur, _arcname(rel), os.lstat(cur))
            if info is not None:
                yield entry_from_tarinfo(info)
        for fn in names:
            full = os.path.join(cur, fn)
            if exclude is not None and exclude(full):
                print(f"Warning: {full} is an output of this run; skipping", file=sys.stderr)
                continue
            arc = _arcname(os.path.join(rel, fn) if rel != "." else fn)
            try:
                st = os.lstat(full)
            except FileNotFoundError:
                print(f"Warning: {full} disappeared during the walk; skipping", file=sys.stderr)
                continue
            info = _tarinfo_from_stat(full, arc, st)
            if info is None:
                print(f"Warning: cannot archive special file {full}; skipping", file=sys.stderr)
                continue
            stream = _DeferredFile(full) if info.isreg() else None
            yield entry_from_tarinfo(info, stream)


def _arcname(rel: str) -> str:
    return rel.replace(os.sep, "/")


def is_directory_input(path: str) -> bool:
    return os.path.isdir(path)


def open_entries(path: str, exclude: Optional[Callable[[str], bool]] = None) -> Iterator[Entry]:
    """Pick the entry source for ``path``: a directory walk or a tar reader.

    ``exclude`` only applies to directory walks.
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Specified input '{path}' does not exist!")
    if is_directory_input(path):
        return iter_directory_entries(path, exclude=exclude)
    if not tarfile.is_tarfile(path):
        raise ConfigurationError(f"Specified input '{path}' is neither a directory nor a tar archive")
    return iter_tar_entries(path)
