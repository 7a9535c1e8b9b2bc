# Split size units
MEGABYTE = 1_048_576

DEFAULT_OUTPUT_PREFIX = "output"

# Entry kinds
KIND_FILE = "file"
KIND_DIRECTORY = "directory"
KIND_OTHER = "other"

# Output codecs
CODEC_NONE = "none"
CODEC_GZIP = "gzip"
CODEC_ZSTD = "zstd"

ARCHIVE_SUFFIXES = {
    CODEC_NONE: ".tar",
    CODEC_GZIP: ".tar.gz",
    CODEC_ZSTD: ".tar.zst",
}
MANIFEST_SUFFIX = ".manifest"

DEFAULT_GZIP_LEVEL = 6
DEFAULT_ZSTD_LEVEL = 3

# Buffer size used when streaming file content from disk
COPY_BUFSIZE = 1024 * 1024
