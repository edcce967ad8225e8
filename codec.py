import io
import struct
from typing import BinaryIO, Callable, Optional, Tuple

from huffman import HuffmanCode, count_frequencies

DEFAULT_CHUNK_SIZE = 22680  #: Bytes of input per chunk record

_U32 = struct.Struct(">I")
_PAYLOAD_META = struct.Struct(">II")  #: bit length, padded byte length

ProgressCallback = Callable[[int, int], None]


class FormatError(ValueError):
    """Raised when a container is truncated or internally inconsistent."""


def encode_chunk(data: bytes, code: HuffmanCode) -> Tuple[bytes, int]:
    """Encode one chunk with its code table.

    :param data: Chunk bytes.
    :type data: bytes
    :param code: Code table built for ``data``.
    :type code: HuffmanCode
    :returns: Zero-padded payload and its pre-padding bit length.
    :rtype: Tuple[bytes, int]
    """
    return code.encode(data)


def decode_chunk(payload: bytes, bit_length: int, code: HuffmanCode) -> bytes:
    """Decode one chunk payload with an inverse dictionary.

    :raises FormatError: If the bits do not split into codewords.
    """
    try:
        return code.decode(payload, bit_length)
    except ValueError as e:
        raise FormatError(str(e)) from e


def _report(on_progress: Optional[ProgressCallback], done: int, total: int):
    if on_progress is not None:
        on_progress(done, total)


class Compressor:
    """Chunked Huffman compressor.

    Each chunk of at most ``chunk_size`` bytes gets its own frequency table,
    tree and dictionary, so memory use is bounded by the chunk size.

    Chunk record layout (big-endian):
    - Dictionary entry count: uint32
    - Per entry: symbol uint8, code length uint8, code uint32
    - Payload bit length before padding: uint32
    - Payload byte length: uint32
    - Payload bytes

    :ivar chunk_size: Maximum input bytes per chunk.
    :type chunk_size: int
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Create a compressor.

        :param chunk_size: Maximum input bytes per chunk.
        :type chunk_size: int
        :raises ValueError: If ``chunk_size`` is not a positive integer.
        """
        if not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ValueError(f"Invalid chunk size: {chunk_size!r}")
        self.chunk_size = chunk_size

    def compress_chunk(self, chunk: bytes) -> bytes:
        """Serialize one chunk record.

        :param chunk: Chunk bytes, at most ``chunk_size`` long.
        :type chunk: bytes
        :returns: Dictionary and payload of the chunk.
        :rtype: bytes
        :raises ValueError: If a codeword or the payload outgrows its field.
        """
        frequencies = count_frequencies(chunk)
        code = HuffmanCode()
        code.build_from_frequencies(frequencies)
        payload, bit_length = encode_chunk(chunk, code)
        if bit_length > 0xFFFFFFFF:
            raise ValueError(
                f"Payload of {bit_length} bits does not fit the chunk header"
            )
        return b"".join((
            _U32.pack(len(code.codes)),
            code.save_dictionary(),
            _PAYLOAD_META.pack(bit_length, len(payload)),
            payload,
        ))

    def compress_stream(
        self,
        src: BinaryIO,
        dst: BinaryIO,
        total: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Compress ``src`` into ``dst`` chunk by chunk.

        Empty input produces an empty container.

        :param src: Readable binary stream.
        :type src: BinaryIO
        :param dst: Writable binary stream.
        :type dst: BinaryIO
        :param total: Input size reported to ``on_progress``.
        :type total: Optional[int]
        :param on_progress: Optional callback ``on_progress(done, total)``
                            invoked after every chunk with input bytes
                            consumed so far.
        :type on_progress: Optional[Callable[[int, int], None]]
        :returns: Number of container bytes written.
        :rtype: int
        """
        written = 0
        done = 0
        while True:
            chunk = src.read(self.chunk_size)
            if not chunk:
                break
            record = self.compress_chunk(chunk)
            dst.write(record)
            written += len(record)
            done += len(chunk)
            _report(on_progress, done, total if total is not None else done)
        return written

    def compress_file(
        self,
        src_path: str,
        dst_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Compress the file at ``src_path`` into ``dst_path``.

        :returns: Number of container bytes written.
        :rtype: int
        :raises OSError: If either file cannot be opened, read or written.
        """
        with open(src_path, "rb") as src, open(dst_path, "wb") as dst:
            total = src.seek(0, io.SEEK_END)
            src.seek(0)
            return self.compress_stream(src, dst, total, on_progress)


class Decompressor:
    """Reader for containers written by :class:`Compressor`.

    Chunks are decoded one at a time until the input runs out.
    """

    @staticmethod
    def _read_exact(src: BinaryIO, size: int, what: str) -> bytes:
        data = src.read(size)
        if len(data) != size:
            raise FormatError(
                f"Truncated container: expected {size} bytes of {what}, "
                f"got {len(data)}"
            )
        return data

    def decompress_chunk(self, src: BinaryIO) -> Optional[bytes]:
        """Read and decode the next chunk record.

        :param src: Binary stream positioned at a chunk boundary.
        :type src: BinaryIO
        :returns: Decoded chunk, or ``None`` at a clean end of input.
        :rtype: Optional[bytes]
        :raises FormatError: If the record is truncated or corrupt.
        """
        head = src.read(_U32.size)
        if not head:
            return None
        if len(head) != _U32.size:
            raise FormatError(
                f"Truncated container: {len(head)} stray bytes "
                "where a chunk header was expected"
            )
        (count,) = _U32.unpack(head)

        code = HuffmanCode()
        try:
            code.load_dictionary(src, count)
        except EOFError as e:
            raise FormatError(f"Truncated container: {e}") from e
        except ValueError as e:
            raise FormatError(str(e)) from e

        bit_length, byte_length = _PAYLOAD_META.unpack(
            self._read_exact(src, _PAYLOAD_META.size, "payload header")
        )
        if bit_length > byte_length * 8:
            raise FormatError(
                f"Payload declares {bit_length} bits "
                f"but holds only {byte_length} bytes"
            )
        payload = self._read_exact(src, byte_length, "payload")
        return decode_chunk(payload, bit_length, code)

    def decompress_stream(
        self,
        src: BinaryIO,
        dst: BinaryIO,
        total: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Decompress ``src`` into ``dst``.

        Chunks decoded before a failure stay written to ``dst``.

        :param src: Readable binary stream holding a container.
        :type src: BinaryIO
        :param dst: Writable binary stream.
        :type dst: BinaryIO
        :param total: Container size reported to ``on_progress``.
        :type total: Optional[int]
        :param on_progress: Optional callback ``on_progress(done, total)``
                            called after every chunk with container bytes
                            consumed so far.
        :type on_progress: Optional[Callable[[int, int], None]]
        :returns: Number of decoded bytes written.
        :rtype: int
        :raises FormatError: If the container is truncated or corrupt.
        """
        written = 0
        start = src.tell() if on_progress is not None else 0
        while True:
            data = self.decompress_chunk(src)
            if data is None:
                break
            dst.write(data)
            written += len(data)
            if on_progress is not None:
                done = src.tell() - start
                _report(on_progress, done, total if total else done)
        return written

    def decompress_file(
        self,
        src_path: str,
        dst_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Decompress the container at ``src_path`` into ``dst_path``.

        :returns: Number of decoded bytes written.
        :rtype: int
        :raises OSError: If either file cannot be opened, read or written.
        :raises FormatError: If the container is truncated or corrupt.
        """
        with open(src_path, "rb") as src:
            total = src.seek(0, io.SEEK_END)
            src.seek(0)
            with open(dst_path, "wb") as dst:
                return self.decompress_stream(src, dst, total, on_progress)


def compress_bytes(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Compress ``data`` in memory and return the container."""
    out = io.BytesIO()
    Compressor(chunk_size).compress_stream(io.BytesIO(data), out)
    return out.getvalue()


def decompress_bytes(container: bytes) -> bytes:
    """Decompress an in-memory container.

    :raises FormatError: If the container is truncated or corrupt.
    """
    out = io.BytesIO()
    Decompressor().decompress_stream(io.BytesIO(container), out)
    return out.getvalue()
