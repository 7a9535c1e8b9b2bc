from __future__ import annotations

import copy
import tarfile
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .constants import KIND_DIRECTORY, KIND_FILE, KIND_OTHER


@dataclass(frozen=True)
class Entry:
    """One file, directory, or other record pulled from an entry source.

    ``info`` is the tar header carried through to the output unchanged.
    ``stream`` is only set for regular files and yields exactly ``size``
    bytes; it may be read once.
    """

    name: str
    size: int
    kind: str
    info: tarfile.TarInfo
    stream: Optional[BinaryIO] = None


def kind_of(info: tarfile.TarInfo) -> str:
    if info.isreg():
        return KIND_FILE
    if info.isdir():
        return KIND_DIRECTORY
    return KIND_OTHER


def entry_from_tarinfo(info: tarfile.TarInfo, stream: Optional[BinaryIO] = None) -> Entry:
    kind = kind_of(info)
    if kind != KIND_FILE:
        stream = None
        if info.size:
            # Header-only records must not advertise a payload in the output
            info = copy.copy(info)
            info.size = 0
    return Entry(name=info.name, size=info.size, kind=kind, info=info, stream=stream)
