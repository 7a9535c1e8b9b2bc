from __future__ import annotations

import contextlib
import io
import os
import tarfile
import tempfile
import unittest
from pathlib import Path

import zstandard

from tarsplit.codec import Codec
from tarsplit.config import SplitConfig
from tarsplit.constants import CODEC_GZIP, CODEC_NONE, CODEC_ZSTD, MEGABYTE
from tarsplit.entries import entry_from_tarinfo
from tarsplit.errors import ConfigurationError, DestinationConflict, EntryTooLarge
from tarsplit.sink import SinkFactory, SplitSink
from tarsplit.splitter import split_entries, split_path


def _file_entry(name: str, data: bytes, mode: int = 0o644, mtime: int = 1_600_000_000):
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    info.mtime = mtime
    return entry_from_tarinfo(info, io.BytesIO(data))


def _dir_entry(name: str):
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    return entry_from_tarinfo(info)


def _read_members(path: Path, mode: str = "r:*"):
    out = {}
    with tarfile.open(path, mode) as tf:
        for m in tf.getmembers():
            data = tf.extractfile(m).read() if m.isreg() else None
            out[m.name] = (m, data)
    return out


def _read_zstd_members(path: Path):
    out = {}
    with open(path, "rb") as fh:
        reader = zstandard.ZstdDecompressor().stream_reader(fh)
        with tarfile.open(fileobj=reader, mode="r|") as tf:
            for m in tf:
                data = tf.extractfile(m).read() if m.isreg() else None
                out[m.name] = (m, data)
    return out


class SinkFactoryTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.prefix = str(self.root / "out")

    def _factory(self, **kwargs) -> SinkFactory:
        kwargs.setdefault("output_prefix", self.prefix)
        return SinkFactory(SplitConfig(max_split_bytes=MEGABYTE, **kwargs))

    def test_output_naming(self):
        self.assertEqual(self._factory().archive_path(3), f"{self.prefix}-3.tar")
        self.assertEqual(self._factory(compress=True).archive_path(0), f"{self.prefix}-0.tar.gz")
        self.assertEqual(self._factory(compress=True, codec=CODEC_ZSTD).archive_path(1), f"{self.prefix}-1.tar.zst")
        self.assertIsNone(self._factory().manifest_path(0))
        self.assertEqual(self._factory(manifest=True).manifest_path(2), f"{self.prefix}-2.manifest")

    def test_plain_split_roundtrip(self):
        payload = os.urandom(5000)
        sink = self._factory(manifest=True).open(0)
        self.assertIsInstance(sink, SplitSink)
        sink.write(_dir_entry("docs"))
        sink.write(_file_entry("docs/a.bin", payload, mode=0o600))
        sink.write(_file_entry("docs/empty.txt", b""))
        sink.close()
        sink.close()

        members = _read_members(Path(sink.archive_path), "r:")
        self.assertEqual(list(members), ["docs", "docs/a.bin", "docs/empty.txt"])
        self.assertTrue(members["docs"][0].isdir())
        info, data = members["docs/a.bin"]
        self.assertEqual(data, payload)
        self.assertEqual(info.mode, 0o600)
        self.assertEqual(info.mtime, 1_600_000_000)
        self.assertEqual(members["docs/empty.txt"][1], b"")
        manifest = Path(sink.manifest_path).read_text(encoding="utf-8")
        self.assertEqual(manifest, "docs\ndocs/a.bin\ndocs/empty.txt\n")

    def test_gzip_split(self):
        payload = b"compress me\n" * 1000
        sink = self._factory(compress=True).open(0)
        sink.write(_file_entry("a.txt", payload))
        sink.close()
        with open(sink.archive_path, "rb") as fh:
            self.assertEqual(fh.read(2), b"\x1f\x8b")
        members = _read_members(Path(sink.archive_path), "r:gz")
        self.assertEqual(members["a.txt"][1], payload)
        self.assertLess(os.path.getsize(sink.archive_path), len(payload))

    def test_zstd_split(self):
        payload = b"zstd payload\n" * 1000
        sink = self._factory(compress=True, codec=CODEC_ZSTD).open(0)
        sink.write(_file_entry("z.txt", payload))
        sink.close()
        members = _read_zstd_members(Path(sink.archive_path))
        self.assertEqual(members["z.txt"][1], payload)

    def test_write_after_close_fails(self):
        sink = self._factory().open(0)
        sink.close()
        with self.assertRaises(RuntimeError):
            sink.write(_file_entry("late", b"x"))

    def test_conflict_on_existing_archive(self):
        factory = self._factory()
        target = Path(factory.archive_path(0))
        target.write_bytes(b"keep me")
        with self.assertRaises(DestinationConflict) as cm:
            factory.check_destination(0)
        self.assertEqual(cm.exception.path, str(target))
        self.assertIn("--overwriteExisting", str(cm.exception))
        self.assertEqual(target.read_bytes(), b"keep me")
        factory.check_destination(1)

    def test_conflict_on_existing_manifest(self):
        factory = self._factory(manifest=True)
        Path(factory.manifest_path(0)).write_text("old\n")
        with self.assertRaises(DestinationConflict):
            factory.check_destination(0)
        # Manifests only count when they would be written
        self._factory().check_destination(0)

    def test_overwrite_allows_existing(self):
        factory = self._factory(overwrite_existing=True)
        target = Path(factory.archive_path(0))
        target.write_bytes(b"stale")
        factory.check_destination(0)
        sink = factory.open(0)
        sink.write(_file_entry("fresh", b"new"))
        sink.close()
        self.assertEqual(_read_members(target, "r:")["fresh"][1], b"new")

    def test_prefix_directory_is_created(self):
        factory = self._factory(output_prefix=str(self.root / "nested" / "deeper" / "part"))
        sink = factory.open(0)
        sink.close()
        self.assertTrue((self.root / "nested" / "deeper" / "part-0.tar").is_file())

    def test_is_output_matches_only_this_runs_names(self):
        factory = self._factory(manifest=True)
        self.assertTrue(factory.is_output(f"{self.prefix}-0.tar"))
        self.assertTrue(factory.is_output(f"{self.prefix}-12.manifest"))
        self.assertFalse(factory.is_output(f"{self.prefix}-0.tar.gz"))
        self.assertFalse(factory.is_output(f"{self.prefix}-x.tar"))
        self.assertFalse(factory.is_output(f"{self.prefix}.tar"))
        self.assertFalse(factory.is_output(str(self.root / "elsewhere" / "out-0.tar")))
        self.assertFalse(self._factory().is_output(f"{self.prefix}-0.manifest"))
        self.assertTrue(self._factory(compress=True).is_output(f"{self.prefix}-3.tar.gz"))


class CodecTests(unittest.TestCase):
    def test_suffixes(self):
        self.assertEqual(Codec(CODEC_NONE).suffix, ".tar")
        self.assertEqual(Codec(CODEC_GZIP).suffix, ".tar.gz")
        self.assertEqual(Codec(CODEC_ZSTD).suffix, ".tar.zst")

    def test_unknown_codec(self):
        with self.assertRaises(ValueError):
            Codec("lz4")

    def test_none_is_passthrough(self):
        buf = io.BytesIO()
        self.assertIs(Codec(CODEC_NONE).wrap(buf), buf)

    def test_wrapped_writer_leaves_target_open(self):
        buf = io.BytesIO()
        w = Codec(CODEC_GZIP, level=1).wrap(buf)
        w.write(b"data")
        w.close()
        self.assertFalse(buf.closed)
        buf = io.BytesIO()
        w = Codec(CODEC_ZSTD, level=1).wrap(buf)
        w.write(b"data")
        w.close()
        self.assertFalse(buf.closed)
        self.assertEqual(zstandard.ZstdDecompressor().decompress(buf.getvalue(), max_output_size=16), b"data")


class ConfigTests(unittest.TestCase):
    def test_from_megabytes(self):
        cfg = SplitConfig.from_megabytes(300)
        self.assertEqual(cfg.max_split_bytes, 300 * 1_048_576)
        self.assertEqual(cfg.output_prefix, "output")
        self.assertEqual(cfg.output_codec, CODEC_NONE)
        self.assertEqual(SplitConfig.from_megabytes(1, compress=True).output_codec, CODEC_GZIP)

    def test_invalid_values(self):
        for bad in (0, -5, True, 1.5):
            with self.assertRaises(ConfigurationError):
                SplitConfig.from_megabytes(bad)
        with self.assertRaises(ConfigurationError):
            SplitConfig(max_split_bytes=0)
        with self.assertRaises(ConfigurationError):
            SplitConfig(max_split_bytes=10, codec="brotli")
        with self.assertRaises(ConfigurationError):
            SplitConfig(max_split_bytes=10, output_prefix="")


class EndToEndTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def test_splits_extract_independently(self):
        src = self.root / "src"
        (src / "docs" / "notes").mkdir(parents=True)
        blobs = {
            "a.bin": os.urandom(3000),
            "b.bin": os.urandom(3000),
            "docs/c.txt": b"c" * 3000,
            "docs/notes/d.txt": b"d" * 10,
        }
        for rel, data in blobs.items():
            (src / rel).write_bytes(data)

        prefix = str(self.root / "split")
        cfg = SplitConfig(max_split_bytes=6500, manifest=True, output_prefix=prefix)
        summary = split_path(str(src), cfg, out=io.StringIO())

        self.assertEqual(
            [s.entry_names for s in summary.splits],
            [["a.bin", "b.bin", "docs"], ["docs/c.txt", "docs/notes", "docs/notes/d.txt"]],
        )
        for s in summary.splits:
            dest = self.root / f"extract-{s.index}"
            dest.mkdir()
            with tarfile.open(s.archive_path, "r:") as tf:
                if hasattr(tarfile, "data_filter"):
                    tf.extractall(dest, filter="data")
                else:
                    tf.extractall(dest)
            for name in s.entry_names:
                if name in blobs:
                    self.assertEqual((dest / name).read_bytes(), blobs[name])
                else:
                    self.assertTrue((dest / name).is_dir())
            manifest = Path(s.manifest_path).read_text(encoding="utf-8").splitlines()
            self.assertEqual(manifest, s.entry_names)

    def test_oversized_entry_leaves_no_reference(self):
        entries = [_file_entry("small", b"s" * 10), _file_entry("huge", b"h" * 500)]
        prefix = str(self.root / "out")
        with self.assertRaises(EntryTooLarge):
            split_entries(entries, SplitConfig(max_split_bytes=200, manifest=True, output_prefix=prefix))
        members = _read_members(Path(f"{prefix}-0.tar"), "r:")
        self.assertEqual(list(members), ["small"])
        self.assertEqual(Path(f"{prefix}-0.manifest").read_text(encoding="utf-8"), "small\n")
        self.assertFalse(Path(f"{prefix}-1.tar").exists())

    def test_conflict_on_rollover_writes_nothing(self):
        prefix = str(self.root / "out")
        Path(f"{prefix}-1.tar").write_bytes(b"precious")
        entries = [_file_entry("a", b"a" * 150), _file_entry("b", b"b" * 150)]
        with self.assertRaises(DestinationConflict) as cm:
            split_entries(entries, SplitConfig(max_split_bytes=200, output_prefix=prefix))
        self.assertEqual(cm.exception.index, 1)
        self.assertEqual(Path(f"{prefix}-1.tar").read_bytes(), b"precious")
        self.assertEqual(list(_read_members(Path(f"{prefix}-0.tar"), "r:")), ["a"])

    def test_outputs_inside_the_input_directory_are_skipped(self):
        src = self.root / "src"
        src.mkdir()
        (src / "a.txt").write_bytes(b"a" * 100)
        (src / "z.txt").write_bytes(b"z" * 100)
        # Leftover from an earlier run with another prefix is ordinary input
        (src / "other-0.tar").write_bytes(b"not ours")
        cfg = SplitConfig(max_split_bytes=1_000_000, manifest=True, output_prefix=str(src / "output"))
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            summary = split_path(str(src), cfg, out=io.StringIO())

        self.assertEqual(summary.splits[0].entry_names, ["a.txt", "other-0.tar", "z.txt"])
        self.assertIn("output-0.tar is an output of this run; skipping", err.getvalue())
        self.assertIn("output-0.manifest is an output of this run; skipping", err.getvalue())
        members = _read_members(src / "output-0.tar", "r:")
        self.assertEqual(list(members), ["a.txt", "other-0.tar", "z.txt"])

    def test_hard_link_split_from_its_target_warns(self):
        src_tar = self.root / "links.tar"
        with tarfile.open(src_tar, "w") as tf:
            for name, size in (("a", 100), ("c", 150)):
                info = tarfile.TarInfo(name)
                info.size = size
                tf.addfile(info, io.BytesIO(name.encode() * size))
            link = tarfile.TarInfo("b")
            link.type = tarfile.LNKTYPE
            link.linkname = "a"
            tf.addfile(link)

        prefix = str(self.root / "out")
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            summary = split_path(str(src_tar), SplitConfig(max_split_bytes=200, output_prefix=prefix), out=io.StringIO())

        self.assertEqual([s.entry_names for s in summary.splits], [["a"], ["c", "b"]])
        self.assertIn("Warning: hard link b points to a, which is not in split 1", err.getvalue())
        members = _read_members(Path(f"{prefix}-1.tar"), "r:")
        self.assertTrue(members["b"][0].islnk())
        self.assertEqual(members["b"][0].linkname, "a")


if __name__ == "__main__":
    unittest.main()
