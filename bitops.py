class BitWriter:
    """MSB-first bit packer for chunk payloads.

    Bits are gathered into an 8-bit scratch register and moved to the
    byte buffer once it fills up. The number of meaningful bits is tracked
    separately so the pre-padding length survives :meth:`flush`.

    :ivar buffer: Completed payload bytes.
    :type buffer: bytearray
    :ivar bit_buffer: Scratch register holding pending bits.
    :type bit_buffer: int
    :ivar bit_count: Number of pending bits in ``bit_buffer`` (0-7).
    :type bit_count: int
    :ivar bit_length: Total number of bits written, padding excluded.
    :type bit_length: int
    """

    def __init__(self):
        """Initialize an empty bit writer.

        :returns: None
        :rtype: None
        """
        self.buffer = bytearray()
        self.bit_buffer = 0
        self.bit_count = 0
        self.bit_length = 0

    def write_bits(self, value: int, nbits: int):
        """Append the lowest ``nbits`` of ``value``, most significant first.

        :param value: Integer holding the bits (a codeword).
        :type value: int
        :param nbits: Number of low bits of ``value`` to append.
        :type nbits: int
        :returns: None
        :rtype: None
        """
        for i in range(nbits - 1, -1, -1):
            self.bit_buffer = (self.bit_buffer << 1) | ((value >> i) & 1)
            self.bit_count += 1
            if self.bit_count == 8:
                self.buffer.append(self.bit_buffer)
                self.bit_buffer = 0
                self.bit_count = 0
        self.bit_length += nbits

    def flush(self) -> bytes:
        """Pad the pending bits with zeros and return the packed payload.

        Nothing is appended when the written bits are already byte-aligned.

        :returns: Packed bytes, ``ceil(bit_length / 8)`` of them.
        :rtype: bytes
        """
        if self.bit_count > 0:
            self.buffer.append(self.bit_buffer << (8 - self.bit_count))
            self.bit_buffer = 0
            self.bit_count = 0
        return bytes(self.buffer)


class BitReader:
    """MSB-first bit reader bounded by a declared bit length.

    Bits past ``limit`` are padding and are never handed out.

    :ivar data: Packed payload.
    :type data: bytes
    :ivar limit: Number of meaningful bits in ``data``.
    :type limit: int
    :ivar pos: Index of the next bit to read.
    :type pos: int
    """

    def __init__(self, data: bytes, limit: int = None):
        """Create a reader over ``data``.

        :param data: Packed payload.
        :type data: bytes
        :param limit: Meaningful bit count; defaults to ``8 * len(data)``.
        :type limit: int | None
        :returns: None
        :rtype: None
        :raises ValueError: If ``limit`` exceeds the bits present in ``data``.
        """
        total = len(data) * 8
        if limit is None:
            limit = total
        if limit > total:
            raise ValueError(
                f"Bit limit {limit} exceeds {total} available bits"
            )
        self.data = data
        self.limit = limit
        self.pos = 0

    @property
    def remaining(self) -> int:
        """Number of meaningful bits not read yet."""
        return self.limit - self.pos

    def read_bit(self) -> int:
        """Read one bit.

        :returns: ``0`` or ``1``.
        :rtype: int
        :raises EOFError: If all meaningful bits were consumed.
        """
        if self.pos >= self.limit:
            raise EOFError("Unexpected end of data")
        byte = self.data[self.pos >> 3]
        bit = (byte >> (7 - (self.pos & 7))) & 1
        self.pos += 1
        return bit

    def read_bits(self, nbits: int) -> int:
        """Read ``nbits`` bits and return them as an integer, MSB first.

        :param nbits: Number of bits to read.
        :type nbits: int
        :returns: The integer composed of the next ``nbits`` bits.
        :rtype: int
        :raises EOFError: If fewer than ``nbits`` meaningful bits are left.
        """
        if nbits > self.remaining:
            raise EOFError("Unexpected end of data")
        result = 0
        for _ in range(nbits):
            result = (result << 1) | self.read_bit()
        return result
