import io
import random
import struct

import pytest

from codec import (
    DEFAULT_CHUNK_SIZE,
    Compressor,
    Decompressor,
    FormatError,
    compress_bytes,
    decode_chunk,
    decompress_bytes,
    encode_chunk,
)
from huffman import HuffmanCode, is_prefix_free

AAAB_CONTAINER = (
    b"\x00\x00\x00\x02"
    b"\x41\x01\x00\x00\x00\x01"
    b"\x42\x01\x00\x00\x00\x00"
    b"\x00\x00\x00\x04"
    b"\x00\x00\x00\x01"
    b"\xE0"
)


def _chunk_tables(container: bytes):
    """Yield (code, bit_length, payload) for every chunk record."""
    src = io.BytesIO(container)
    while True:
        head = src.read(4)
        if not head:
            return
        (count,) = struct.unpack(">I", head)
        code = HuffmanCode()
        code.load_dictionary(src, count)
        bits, nbytes = struct.unpack(">II", src.read(8))
        yield code, bits, src.read(nbytes)


def test_aaab_container_layout():
    assert compress_bytes(b"AAAB") == AAAB_CONTAINER
    assert decompress_bytes(AAAB_CONTAINER) == b"AAAB"


def test_encode_chunk_reports_prepadding_length():
    code = HuffmanCode.from_data(b"AAAB")
    payload, bits = encode_chunk(b"AAAB", code)
    assert (payload, bits) == (b"\xE0", 4)
    assert decode_chunk(payload, bits, code) == b"AAAB"


def test_empty_input_gives_empty_container():
    assert compress_bytes(b"") == b""
    assert decompress_bytes(b"") == b""


@pytest.mark.parametrize("data", [
    b"\x00",
    b"Z" * 1000,
    bytes(range(256)),
    b"The quick brown fox jumps over the lazy dog. " * 20,
])
def test_roundtrip(data):
    assert decompress_bytes(compress_bytes(data)) == data


def test_single_symbol_chunk_uses_one_bit_codes():
    container = compress_bytes(b"\x07" * 9)
    (code, bits, payload), = list(_chunk_tables(container))
    assert code.codes == {7: (0, 1)}
    assert bits == 9 and payload == b"\x00\x00"
    assert decompress_bytes(container) == b"\x07" * 9


def test_random_roundtrip_across_chunk_sizes():
    rng = random.Random(42)
    data = bytes(rng.choice(b"aaaabbbcdefgh\x00\xff") for _ in range(5000))
    for chunk_size in (1, 7, 256, 4999, 5000, DEFAULT_CHUNK_SIZE):
        assert decompress_bytes(compress_bytes(data, chunk_size)) == data


def test_two_chunk_boundary():
    data = b"a" * 60 + b"b" * 40 + b"c" * 70 + b"a" * 30
    container = compress_bytes(data, chunk_size=100)
    chunks = list(_chunk_tables(container))
    assert len(chunks) == 2
    assert set(chunks[0][0].codes) == {ord("a"), ord("b")}
    assert set(chunks[1][0].codes) == {ord("a"), ord("c")}
    assert decompress_bytes(container) == data


def test_dictionary_count_matches_distinct_symbols():
    data = bytes(random.Random(7).randrange(40) for _ in range(3000))
    container = compress_bytes(data, chunk_size=1000)
    for i, (code, _, _) in enumerate(_chunk_tables(container)):
        chunk = data[i * 1000:(i + 1) * 1000]
        assert len(code.codes) == len(set(chunk))
        assert is_prefix_free(code.codes.values())


def test_compressor_rejects_bad_chunk_size():
    with pytest.raises(ValueError):
        Compressor(0)
    with pytest.raises(ValueError):
        Compressor(-5)


def test_truncated_payload_raises():
    with pytest.raises(FormatError):
        decompress_bytes(AAAB_CONTAINER[:-1])


def test_truncated_dictionary_raises():
    with pytest.raises(FormatError):
        decompress_bytes(AAAB_CONTAINER[:9])


def test_trailing_partial_header_raises():
    with pytest.raises(FormatError):
        decompress_bytes(AAAB_CONTAINER + b"\x00\x00")


def test_missing_payload_header_raises():
    with pytest.raises(FormatError):
        decompress_bytes(AAAB_CONTAINER[:16])


def test_bit_length_beyond_payload_raises():
    bad = AAAB_CONTAINER[:16] + struct.pack(">II", 9, 1) + b"\xE0"
    with pytest.raises(FormatError):
        decompress_bytes(bad)


def test_duplicate_codeword_raises():
    bad = (b"\x00\x00\x00\x02"
           b"\x41\x01\x00\x00\x00\x01"
           b"\x42\x01\x00\x00\x00\x01"
           + AAAB_CONTAINER[16:])
    with pytest.raises(FormatError):
        decompress_bytes(bad)


def test_unmatched_trailing_bits_raise():
    bad = (b"\x00\x00\x00\x01"
           b"\x41\x02\x00\x00\x00\x01"
           + struct.pack(">II", 3, 1) + b"\x20")
    with pytest.raises(FormatError):
        decompress_bytes(bad)


def test_chunks_before_failure_stay_written():
    out = io.BytesIO()
    src = io.BytesIO(AAAB_CONTAINER + b"\x00")
    with pytest.raises(FormatError):
        Decompressor().decompress_stream(src, out)
    assert out.getvalue() == b"AAAB"


def test_decompress_chunk_returns_none_at_end():
    src = io.BytesIO(AAAB_CONTAINER)
    d = Decompressor()
    assert d.decompress_chunk(src) == b"AAAB"
    assert d.decompress_chunk(src) is None


def test_file_roundtrip_with_progress(sample_file, tmp_path, progress_recorder):
    on_prog, calls = progress_recorder
    container = tmp_path / "sample.bin.hc"
    restored = tmp_path / "restored.bin"
    size = sample_file.stat().st_size

    written = Compressor(chunk_size=512).compress_file(
        str(sample_file), str(container), on_progress=on_prog
    )
    assert written == container.stat().st_size
    assert calls[-1] == (size, size)
    assert len(calls) == -(-size // 512)

    calls.clear()
    n = Decompressor().decompress_file(
        str(container), str(restored), on_progress=on_prog
    )
    assert n == size
    assert restored.read_bytes() == sample_file.read_bytes()
    assert calls[-1] == (written, written)


def test_compress_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Compressor().compress_file(
            str(tmp_path / "nope"), str(tmp_path / "out.hc")
        )
