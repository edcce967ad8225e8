import heapq
import struct
from typing import BinaryIO, Dict, List, Tuple

from bitops import BitReader, BitWriter

MAX_CODE_LENGTH = 32  #: Widest codeword the 4-byte dictionary field holds

_ENTRY = struct.Struct(">BBI")  #: symbol, code length, right-aligned code


class HuffmanNode:
    """Node of a byte-level Huffman tree.

    Leaves carry a ``symbol`` and no children; internal nodes carry
    ``symbol=None``. Children are owned by their parent only.

    :ivar symbol: Byte value for leaves; ``None`` for internal nodes.
    :type symbol: int | None
    :ivar freq: Sum of the leaf frequencies below this node.
    :type freq: int
    :ivar left: Child reached with bit ``0``.
    :type left: HuffmanNode | None
    :ivar right: Child reached with bit ``1``.
    :type right: HuffmanNode | None
    """

    def __init__(self, symbol=None, freq=0, left=None, right=None):
        self.symbol = symbol
        self.freq = freq
        self.left = left
        self.right = right

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


def count_frequencies(data: bytes) -> Dict[int, int]:
    """Count byte occurrences within one chunk.

    :param data: Chunk bytes.
    :type data: bytes
    :returns: Mapping from each byte present to its count.
    :rtype: Dict[int, int]
    """
    counts = [0] * 256
    for byte in data:
        counts[byte] += 1
    return {sym: n for sym, n in enumerate(counts) if n}


def build_tree(frequencies: Dict[int, int]) -> HuffmanNode:
    """Build a Huffman tree with a deterministic tie-break.

    Queue entries are ordered by ``(freq, seq)``. Leaves get ``seq`` in
    ascending symbol order, each merged node the next free ``seq``, so
    equal weights pop lowest symbol first and older subtrees before newer
    ones. The first node popped becomes the left child.

    A single symbol is hung under a synthetic root so that its codeword is
    one bit long.

    :param frequencies: Non-empty mapping from symbol to count.
    :type frequencies: Dict[int, int]
    :returns: Root of the tree.
    :rtype: HuffmanNode
    :raises ValueError: If ``frequencies`` is empty.
    """
    if not frequencies:
        raise ValueError("Cannot build a Huffman tree without symbols")

    heap: List[Tuple[int, int, HuffmanNode]] = []
    for seq, symbol in enumerate(sorted(frequencies)):
        leaf = HuffmanNode(symbol=symbol, freq=frequencies[symbol])
        heap.append((leaf.freq, seq, leaf))
    heapq.heapify(heap)

    if len(heap) == 1:
        leaf = heap[0][2]
        return HuffmanNode(freq=leaf.freq, left=leaf)

    seq = len(heap)
    while len(heap) > 1:
        left = heapq.heappop(heap)[2]
        right = heapq.heappop(heap)[2]
        merged = HuffmanNode(
            freq=left.freq + right.freq, left=left, right=right
        )
        heapq.heappush(heap, (merged.freq, seq, merged))
        seq += 1

    return heap[0][2]


def generate_codes(root: HuffmanNode) -> Dict[int, Tuple[int, int]]:
    """Derive the code table by walking the tree.

    Left edges append ``0``, right edges ``1``. An explicit stack keeps the
    walk iterative.

    :param root: Root returned by :func:`build_tree`.
    :type root: HuffmanNode
    :returns: Mapping from symbol to ``(code, length)``.
    :rtype: Dict[int, Tuple[int, int]]
    """
    codes: Dict[int, Tuple[int, int]] = {}
    stack = [(root, 0, 0)]
    while stack:
        node, code, length = stack.pop()
        if node.is_leaf:
            codes[node.symbol] = (code, length)
            continue
        if node.right is not None:
            stack.append((node.right, (code << 1) | 1, length + 1))
        if node.left is not None:
            stack.append((node.left, code << 1, length + 1))
    return codes


def codeword(code: int, length: int) -> str:
    """Render ``(code, length)`` as a bit string such as ``"0110"``."""
    return format(code, f"0{length}b") if length else ""


def is_prefix_free(codes) -> bool:
    """Check that no codeword is a prefix of another.

    :param codes: Iterable of ``(code, length)`` pairs.
    :returns: ``True`` if the set is prefix-free (duplicates included).
    :rtype: bool
    """
    words = sorted(codeword(code, length) for code, length in codes)
    # a prefix always sorts directly before some word it prefixes
    return all(not b.startswith(a) for a, b in zip(words, words[1:]))


class HuffmanCode:
    """Per-chunk Huffman code table and its serialized dictionary.

    :ivar codes: Mapping from symbol to ``(code, length)``.
    :type codes: Dict[int, Tuple[int, int]]
    :ivar decode_table: Inverse dictionary ``(code, length) -> symbol``.
    :type decode_table: Dict[Tuple[int, int], int]
    :ivar max_length: Longest codeword length in the table.
    :type max_length: int
    """

    def __init__(self):
        self.codes: Dict[int, Tuple[int, int]] = {}
        self.decode_table: Dict[Tuple[int, int], int] = {}
        self.max_length = 0

    @classmethod
    def from_data(cls, data: bytes) -> "HuffmanCode":
        """Build the table for a chunk of bytes."""
        code = cls()
        code.build_from_frequencies(count_frequencies(data))
        return code

    def build_from_frequencies(self, frequencies: Dict[int, int]):
        """Build codes from a frequency table.

        :param frequencies: Mapping from symbol to count; may be empty.
        :type frequencies: Dict[int, int]
        :returns: None
        :rtype: None
        :raises ValueError: If a codeword would not fit in 32 bits.
        """
        self.codes = {}
        self.decode_table = {}
        self.max_length = 0
        if not frequencies:
            return

        codes = generate_codes(build_tree(frequencies))
        longest = max(length for _, length in codes.values())
        if longest > MAX_CODE_LENGTH:
            raise ValueError(
                f"Codeword of {longest} bits exceeds {MAX_CODE_LENGTH}; "
                "use a smaller chunk size"
            )
        self.codes = codes
        self.decode_table = {pair: sym for sym, pair in codes.items()}
        self.max_length = longest

    def encode_symbol(self, symbol: int) -> Tuple[int, int]:
        """Return the ``(code, length)`` pair for ``symbol``.

        :raises KeyError: If ``symbol`` has no codeword in this table.
        """
        return self.codes[symbol]

    def encode(self, data: bytes) -> Tuple[bytes, int]:
        """Concatenate the codewords of ``data`` and pack them.

        :param data: Chunk bytes; every byte must have a codeword.
        :type data: bytes
        :returns: Zero-padded payload and its pre-padding bit length.
        :rtype: Tuple[bytes, int]
        """
        writer = BitWriter()
        codes = self.codes
        for byte in data:
            code, length = codes[byte]
            writer.write_bits(code, length)
        return writer.flush(), writer.bit_length

    def save_dictionary(self) -> bytes:
        """Serialize the table as dictionary entries.

        Entries come in ascending symbol order, each as ``u8 symbol``,
        ``u8 length`` and a big-endian ``u32`` holding the code in its
        low ``length`` bits. The entry count is not included.

        :returns: Serialized entries.
        :rtype: bytes
        """
        return b"".join(
            _ENTRY.pack(sym, length, code)
            for sym, (code, length) in sorted(self.codes.items())
        )

    def load_dictionary(self, stream: BinaryIO, count: int):
        """Read ``count`` dictionary entries and rebuild the inverse table.

        :param stream: Binary stream positioned at the first entry.
        :type stream: BinaryIO
        :param count: Number of entries to read.
        :type count: int
        :returns: None
        :rtype: None
        :raises EOFError: If the stream ends inside the entries.
        :raises ValueError: If a length is out of range, two entries share
            a codeword, or one codeword is a prefix of another.
        """
        codes: Dict[int, Tuple[int, int]] = {}
        inverse: Dict[Tuple[int, int], int] = {}
        for _ in range(count):
            raw = stream.read(_ENTRY.size)
            if len(raw) != _ENTRY.size:
                raise EOFError("Dictionary entry is truncated")
            symbol, length, value = _ENTRY.unpack(raw)
            if not 1 <= length <= MAX_CODE_LENGTH:
                raise ValueError(
                    f"Invalid codeword length {length} for symbol {symbol}"
                )
            pair = (value & ((1 << length) - 1), length)
            if pair in inverse:
                raise ValueError(
                    f"Duplicate codeword {codeword(*pair)!r} "
                    f"for symbols {inverse[pair]} and {symbol}"
                )
            inverse[pair] = symbol
            codes[symbol] = pair
        if not is_prefix_free(inverse):
            raise ValueError("Dictionary codewords are not prefix-free")
        self.codes = codes
        self.decode_table = inverse
        self.max_length = max((n for _, n in inverse), default=0)

    def decode(self, payload: bytes, bit_length: int) -> bytes:
        """Greedily decode the first ``bit_length`` bits of ``payload``.

        :param payload: Packed chunk payload.
        :type payload: bytes
        :param bit_length: Number of meaningful bits.
        :type bit_length: int
        :returns: Decoded bytes.
        :rtype: bytes
        :raises ValueError: If the bits do not split into codewords.
        """
        reader = BitReader(payload, bit_length)
        table = self.decode_table
        out = bytearray()
        code = 0
        length = 0
        while reader.remaining:
            code = (code << 1) | reader.read_bit()
            length += 1
            symbol = table.get((code, length))
            if symbol is not None:
                out.append(symbol)
                code = 0
                length = 0
            elif length >= self.max_length:
                raise ValueError(
                    f"Invalid Huffman code {codeword(code, length)!r} "
                    f"at bit {reader.pos - length}"
                )
        if length:
            raise ValueError(
                f"Trailing bits {codeword(code, length)!r} match no codeword"
            )
        return bytes(out)
