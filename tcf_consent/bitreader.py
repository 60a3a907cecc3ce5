"""
Sequential bit reader over an immutable byte buffer.

Bits are read MSB-first and big-endian: byte k contributes stream bits
8k .. 8k+7, with bit 8k being the most significant bit of byte k. Reads that
cross a byte boundary are concatenated in stream order.
"""

from tcf_consent.errors import UnexpectedEOFError

MAX_READ_BITS = 64


class BitReader:
    """Forward-only cursor over `data` with bit-granular reads."""

    __slots__ = ("_data", "_total_bits", "_pos")

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._total_bits = len(self._data) * 8
        self._pos = 0

    @property
    def position(self) -> int:
        """Number of bits consumed so far."""
        return self._pos

    @property
    def remaining(self) -> int:
        """Number of bits left to read."""
        return self._total_bits - self._pos

    def read_bits(self, nbits: int) -> int:
        """
        Read the next `nbits` bits and return them right-aligned.

        Raises:
            ValueError: If nbits is outside 1..64.
            UnexpectedEOFError: If fewer than nbits bits remain. The cursor
                                does not move in that case.
        """
        if not 1 <= nbits <= MAX_READ_BITS:
            raise ValueError(f"nbits must be in 1..{MAX_READ_BITS}, got {nbits}")
        if nbits > self.remaining:
            raise UnexpectedEOFError(nbits, self.remaining)

        start = self._pos
        end = start + nbits
        first_byte = start // 8
        last_byte = (end - 1) // 8
        # Load the covering bytes as one big-endian integer, then drop the
        # leading bits already consumed and the trailing bits not requested.
        chunk = int.from_bytes(self._data[first_byte:last_byte + 1], "big")
        tail = (last_byte + 1) * 8 - end
        self._pos = end
        return (chunk >> tail) & ((1 << nbits) - 1)

    def read_bool(self) -> bool:
        return self.read_bits(1) == 1

    def skip_to_end(self) -> None:
        """Consume every remaining bit."""
        self._pos = self._total_bits
