from __future__ import annotations

import argparse
import sys
import tarfile
import time
from typing import List

from tarsplit.config import SplitConfig
from tarsplit.constants import CODEC_GZIP, CODEC_ZSTD, DEFAULT_OUTPUT_PREFIX
from tarsplit.errors import TarSplitError
from tarsplit.sink import SinkFactory
from tarsplit.source import is_directory_input, open_entries
from tarsplit.splitter import SplitSummary, split_entries


def cmd_split(
    input_path: str,
    split_size_mb: int,
    *,
    output_prefix: str = DEFAULT_OUTPUT_PREFIX,
    compress: bool = False,
    codec: str = CODEC_GZIP,
    overwrite_existing: bool = False,
    manifest: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> SplitSummary:
    """Split a tar archive or a directory into independent archives.

    Args:
        input_path: Existing tar file (optionally gzip/bz2/xz compressed) or a
            directory to archive.
        split_size_mb: Maximum uncompressed size of each output, in MiB.
        output_prefix: Outputs are written as ``<prefix>-<n>.tar[.gz|.zst]``.
        compress: Compress each output with ``codec``.
        codec: "gzip" or "zstd".
        overwrite_existing: Replace outputs that already exist.
        manifest: Also write ``<prefix>-<n>.manifest`` listing each split's entries.
        verbose: Report every entry and every rollover.
        quiet: Print only the final summary line.

    Returns:
        The summary of the splits that were written.

    Raises:
        ConfigurationError: Invalid options or unusable input.
        DestinationConflict: An output exists and overwriting is disabled.
        EntryTooLarge: An entry is too large for any split.
    """
    config = SplitConfig.from_megabytes(
        split_size_mb,
        compress=compress,
        codec=codec,
        manifest=manifest,
        overwrite_existing=overwrite_existing,
        output_prefix=output_prefix,
        verbose=verbose,
    )
    factory = SinkFactory(config)
    entries = open_entries(input_path, exclude=factory.is_output)
    if is_directory_input(input_path) and not quiet:
        print(f"Specified input '{input_path}' is a directory - creating new archives from it.")

    t0 = time.time()
    summary = split_entries(entries, config, factory=factory)
    dt = max(0.000001, time.time() - t0)

    if not quiet:
        for s in summary.splits:
            line = f" {s.archive_path}: {len(s.entry_names)} entries, {s.running_size} bytes"
            if s.manifest_path:
                line += f" (manifest: {s.manifest_path})"
            print(line)
    mib = summary.total_bytes / (1024.0 * 1024.0)
    print(
        f"Done: {summary.entry_count} entries, {mib:.2f} MiB in {len(summary.splits)} split(s); "
        f"{dt:.1f}s; limit {split_size_mb} MiB per split"
    )
    return summary


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="tarsplit",
        description="Split a tar archive or a directory into independent tar archives",
        epilog=(
            "Split size is measured on uncompressed data. With compression enabled the "
            "resulting file sizes vary with how well each split compresses."
        ),
    )
    ap.add_argument("--input", "-i", required=True, help="Existing tar file, or a directory to archive")
    ap.add_argument(
        "--splitSize", "--split-size", "-s",
        dest="split_size",
        type=int,
        required=True,
        help="Maximum uncompressed size of each output archive, in MB",
    )
    ap.add_argument(
        "--outputPrefix", "--output-prefix", "-o",
        dest="output_prefix",
        default=DEFAULT_OUTPUT_PREFIX,
        help=f"Prefix for the generated archives (default: {DEFAULT_OUTPUT_PREFIX})",
    )
    ap.add_argument("--gzipOutput", "--gzip", "-z", dest="gzip", action="store_true", help="Compress outputs with gzip (.tar.gz)")
    ap.add_argument("--zstd", action="store_true", help="Compress outputs with zstd (.tar.zst)")
    ap.add_argument(
        "--overwriteExisting", "--overwrite", "-f",
        dest="overwrite",
        action="store_true",
        help="Overwrite output archives that already exist",
    )
    ap.add_argument(
        "--manifest", "-m",
        action="store_true",
        help="Write a .manifest file per archive listing the entries it contains",
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Show each entry as it is added and each new split")
    ap.add_argument("--quiet", "-q", action="store_true", help="limit outputs to the final summary")

    args = ap.parse_args(argv)
    if args.gzip and args.zstd:
        ap.error("--gzipOutput and --zstd are mutually exclusive")
    try:
        cmd_split(
            args.input,
            args.split_size,
            output_prefix=args.output_prefix,
            compress=args.gzip or args.zstd,
            codec=CODEC_ZSTD if args.zstd else CODEC_GZIP,
            overwrite_existing=args.overwrite,
            manifest=args.manifest,
            verbose=args.verbose,
            quiet=args.quiet,
        )
    except TarSplitError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except tarfile.TarError as e:
        print(f"Error: unable to read {args.input}: {e}", file=sys.stderr)
        sys.exit(2)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
