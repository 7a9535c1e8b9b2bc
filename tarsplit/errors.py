from .constants import MEGABYTE


class TarSplitError(Exception):
    """Base class for tarsplit-specific errors."""


class ConfigurationError(TarSplitError, ValueError):
    """Missing or invalid options, or an input path that does not exist."""


class DestinationConflict(TarSplitError, FileExistsError):
    """An output split (or its manifest) already exists and overwrite is off."""

    def __init__(self, path: str, index: int):
        self.path = path
        self.index = index
        super().__init__(
            f"overwriteExisting flag is false but output file ({path}) exists! "
            "If you would like to overwrite existing files, specify the "
            "--overwriteExisting (or -f) flag."
        )


class EntryTooLarge(TarSplitError):
    """A single entry cannot fit in any split."""

    def __init__(self, name: str, size: int, limit: int):
        self.name = name
        self.size = size
        self.limit = limit
        super().__init__(
            f"A single file ({name}) has a file size of {size} bytes "
            f"({size / MEGABYTE:.2f} MB) which does not fit the maximum split size "
            f"of {limit} bytes ({limit / MEGABYTE:.2f} MB)"
        )
