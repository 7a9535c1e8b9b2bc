"""
tarsplit: repackage a tar archive or a directory into independent tar archives.

Features:

- Entry-aware splitting: every output is a complete, standalone tar that
  extracts without any of the others. Entries are never cut in two.
- Split size is bounded on uncompressed bytes; entries keep their source order.
- Input is an existing tar (plain, gzip, bzip2 or xz) or a directory tree.
- Optional gzip or zstd compression of each output, and optional per-split
  manifests listing the entries each archive holds.
- Streaming throughout: memory use does not grow with file or archive size.
"""

__version__ = "0.1"

__all__ = [
    "config",
    "entries",
    "source",
    "sink",
    "splitter",
    "errors",
    "codec",
    "constants",
    "cli",
]

# Programmatic API: tarsplit.splitter.split_path / split_entries, or
# tarsplit.cli.cmd_split which takes the same parameters as the CLI.
