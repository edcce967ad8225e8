import argparse
import os
import sys
import time

from codec import DEFAULT_CHUNK_SIZE, Compressor, Decompressor, FormatError

EXTENSION = ".hc"  #: Suffix of compressed containers
EXTRACTED_PREFIX = "extracted."  #: Prefix of decompressed siblings


def get_parser():
    """Create and configure the CLI argument parser.

    :returns: Configured argument parser.
    :rtype: argparse.ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Chunked byte-level Huffman compressor"
    )
    subparsers = parser.add_subparsers(
        title="subcommands", dest="cmd", required=True
    )

    compress = subparsers.add_parser(
        "compress", aliases=["c"], help="Compress a file"
    )
    compress.add_argument("input", help="File to compress")
    compress.add_argument(
        "-s",
        "--chunk-size",
        type=_positive_int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Input bytes per chunk (default: {DEFAULT_CHUNK_SIZE})",
    )
    compress.add_argument(
        "-o", "--output", help=f"Output path (default: INPUT{EXTENSION})"
    )
    compress.add_argument(
        "-P",
        "--no-progress",
        action="store_true",
        help="Hide the progress line",
    )

    decompress = subparsers.add_parser(
        "decompress", aliases=["d"], help=f"Decompress a {EXTENSION} file"
    )
    decompress.add_argument("input", help=f"Container ending in {EXTENSION}")
    decompress.add_argument(
        "-o",
        "--output",
        help=f"Output path (default: sibling {EXTRACTED_PREFIX}NAME)",
    )
    decompress.add_argument(
        "-P",
        "--no-progress",
        action="store_true",
        help="Hide the progress line",
    )

    return parser


def _positive_int(text: str) -> int:
    """Argparse type for ``--chunk-size``.

    :raises argparse.ArgumentTypeError: If ``text`` is not a positive integer.
    """
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return value


def compressed_path(path: str) -> str:
    """Derive the container path for ``path``: ``name`` -> ``name.hc``."""
    return path + EXTENSION


def extracted_path(path: str) -> str:
    """Derive the output path for container ``path``.

    ``dir/name.txt.hc`` becomes ``dir/extracted.name.txt``.

    :param path: Container path.
    :type path: str
    :returns: Sibling path for the decompressed file.
    :rtype: str
    :raises ValueError: If ``path`` does not end in ``.hc``.
    """
    head, name = os.path.split(path)
    if not name.endswith(EXTENSION) or name == EXTENSION:
        raise ValueError(f"Invalid file extension: {name}")
    return os.path.join(head, EXTRACTED_PREFIX + name[: -len(EXTENSION)])


def _print_progress(line: str) -> None:
    """Render and flush a single progress line in-place (carriage return).

    :param line: The textual progress line to display.
    :type line: str
    :returns: None
    :rtype: None
    """
    sys.stdout.write("\r" + line)
    sys.stdout.flush()


def _fmt_pct(done: int, total: int) -> str:
    """Format a completion percentage string like ``12.34%``."""
    if total <= 0:
        return "0%"
    pct = 100.0 * (done / float(total))
    return f"{pct:6.2f}%"


def _fmt_bytes(n: int) -> str:
    """Format a byte count into a human-readable string."""
    for unit in ['', 'Ki', 'Mi', 'Gi', 'Ti']:
        if abs(n) < 1024:
            return f"{n:.2f} {unit}B"
        n /= 1024
    return f"{n:.2f} PiB"


class ChunkProgress:
    """Callable progress reporter for chunked compression.

    Redraws only when the whole-percent bucket changes.

    :ivar label: Action label (``"Compressing"`` or ``"Decompressing"``).
    :type label: str
    :ivar name: File name shown next to the percentage.
    :type name: str
    """

    def __init__(self, label: str, name: str) -> None:
        self.label = label
        self.name = name
        self._last_reported = -1

    def __call__(self, done: int, total: int) -> None:
        """Update the progress display.

        :param done: Bytes processed so far.
        :type done: int
        :param total: Total bytes to process.
        :type total: int
        """
        if total <= 0:
            return
        percent_bucket = int((done * 100) / total)
        if percent_bucket == self._last_reported:
            return
        self._last_reported = percent_bucket
        _print_progress(f"{self.label} {self.name}  {_fmt_pct(done, total)}")


def compress_file(
    input_path: str,
    output_path: str = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    hide_progress: bool = False,
) -> str:
    """Compress ``input_path`` and report sizes and ratio.

    :param input_path: File to compress.
    :type input_path: str
    :param output_path: Container path; derived from ``input_path`` if None.
    :type output_path: str | None
    :param chunk_size: Input bytes per chunk.
    :type chunk_size: int
    :param hide_progress: Whether to suppress the progress line.
    :type hide_progress: bool
    :returns: Path of the written container.
    :rtype: str
    :raises OSError: If a file cannot be read or written.
    """
    output_path = output_path or compressed_path(input_path)
    on_prog = None
    if not hide_progress:
        on_prog = ChunkProgress("Compressing", os.path.basename(input_path))

    started = time.perf_counter()
    written = Compressor(chunk_size).compress_file(
        input_path, output_path, on_progress=on_prog
    )
    elapsed_ms = (time.perf_counter() - started) * 1000
    if not hide_progress:
        sys.stdout.write("\n")
        sys.stdout.flush()

    original = os.path.getsize(input_path)
    print("Size before compression: ", _fmt_bytes(original))
    print("Size after compression: ", _fmt_bytes(written))
    if written:
        print(f"Compression ratio: {original / written:.2f}")
    print(f"Compressed {input_path} -> {output_path} in {elapsed_ms:.0f} ms")
    return output_path


def decompress_file(
    input_path: str, output_path: str = None, hide_progress: bool = False
) -> str:
    """Decompress the container ``input_path``.

    :param input_path: Container ending in ``.hc``.
    :type input_path: str
    :param output_path: Output path; derived from ``input_path`` if None.
    :type output_path: str | None
    :param hide_progress: Whether to suppress the progress line.
    :type hide_progress: bool
    :returns: Path of the decompressed file.
    :rtype: str
    :raises ValueError: If ``input_path`` lacks the ``.hc`` extension.
    :raises FormatError: If the container is corrupt or truncated.
    :raises OSError: If a file cannot be read or written.
    """
    if output_path is None:
        output_path = extracted_path(input_path)
    elif not input_path.endswith(EXTENSION):
        raise ValueError(f"Invalid file extension: {input_path}")
    on_prog = None
    if not hide_progress:
        on_prog = ChunkProgress("Decompressing", os.path.basename(input_path))

    started = time.perf_counter()
    written = Decompressor().decompress_file(
        input_path, output_path, on_progress=on_prog
    )
    elapsed_ms = (time.perf_counter() - started) * 1000
    if not hide_progress:
        sys.stdout.write("\n")
        sys.stdout.flush()

    print(f"Decompressed {_fmt_bytes(written)} to {output_path} "
          f"in {elapsed_ms:.0f} ms")
    return output_path


def main(argv=None):
    """Entry point for the CLI tool.

    :param argv: Arguments to parse; defaults to ``sys.argv[1:]``.
    :returns: None
    :rtype: None
    """
    parser = get_parser()
    args = parser.parse_args(argv)

    try:
        if args.cmd in ["compress", "c"]:
            compress_file(
                args.input, args.output, args.chunk_size, args.no_progress
            )
        elif args.cmd in ["decompress", "d"]:
            decompress_file(args.input, args.output, args.no_progress)
    except FileNotFoundError as e:
        print(f"[!] File not found: {e.filename}")
        sys.exit(1)
    except PermissionError as e:
        print(f"[!] Permission error happened while accessing {e.filename}")
        sys.exit(1)
    except FormatError as e:
        print(f"[!] Corrupted container {args.input}: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"[!] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
