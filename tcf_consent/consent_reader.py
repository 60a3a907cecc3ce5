"""
Consent-string specific readers layered on top of BitReader.

ConsentReader never raises on underflow. The first UnexpectedEOFError is
latched in `error`, the rest of the stream is discarded and every later read
yields zero. That keeps the segment grammars a flat list of field reads; the
caller inspects `error` once the whole segment has been read.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from tcf_consent.bitreader import MAX_READ_BITS, BitReader
from tcf_consent.errors import InvalidLetterError, UnexpectedEOFError
from tcf_consent.models import EPOCH, BitSet, PubRestriction, RestrictionType

# 36-bit timestamps count deciseconds since the Unix epoch
TIME_BITS = 36
DECISECOND = timedelta(milliseconds=100)

LETTER_BITS = 6
LETTER_COUNT = 26


class ConsentReader:
    """Typed reads over a consent segment with a sticky first-error slot."""

    def __init__(self, data: bytes, strict: bool = False):
        self._bits = BitReader(data)
        self.strict = strict
        self.error: Optional[UnexpectedEOFError] = None

    @property
    def remaining(self) -> int:
        return self._bits.remaining

    def _read(self, nbits: int) -> int:
        try:
            return self._bits.read_bits(nbits)
        except UnexpectedEOFError as err:
            if self.error is None:
                self.error = err
            self._bits.skip_to_end()
            return 0

    def read_int(self, nbits: int) -> int:
        """Read an unsigned integer of nbits bits."""
        return self._read(nbits)

    def read_bool(self) -> bool:
        return self._read(1) == 1

    def read_time(self) -> datetime:
        """Read a 36-bit decisecond count and return it as an aware UTC datetime."""
        return EPOCH + self._read(TIME_BITS) * DECISECOND

    def read_string(self, length: int) -> str:
        """
        Read `length` letters of 6 bits each, where 0 is 'A' and 25 is 'Z'.

        Codes above 25 map past 'Z' unless the reader is strict, in which case
        they raise InvalidLetterError.
        """
        letters = []
        for _ in range(length):
            code = self._read(LETTER_BITS)
            if self.strict and code >= LETTER_COUNT:
                raise InvalidLetterError(code)
            letters.append(chr(ord("A") + code))
        return "".join(letters)

    def read_bit_field(self, nbits: int) -> BitSet:
        """
        Read nbits flags. Stream bit i (0-based) set means member i + 1.
        """
        mask = 0
        offset = 0
        while offset < nbits:
            width = min(MAX_READ_BITS, nbits - offset)
            chunk = self._read(width)
            for i in range(width):
                if (chunk >> (width - 1 - i)) & 1:
                    mask |= 1 << (offset + i + 1)
            offset += width
        return BitSet.from_mask(mask)

    def read_range_entries(self, num_entries: int, max_id: int, default_consent: bool) -> BitSet:
        """
        Read a run-length encoded id set of num_entries (is_range, start[, end]) records.

        With default_consent false the encoded ids are the members. With it true
        every id in 0..max_id starts as a member and the encoded ids are the
        exceptions; id 0 stays in the seed.
        """
        mask = (1 << (max_id + 1)) - 1 if default_consent else 0
        for _ in range(num_entries):
            is_range = self.read_bool()
            start = self.read_int(16)
            end = self.read_int(16) if is_range else start
            if end < start:
                continue
            span = ((1 << (end - start + 1)) - 1) << start
            if default_consent:
                mask &= ~span
            else:
                mask |= span
        return BitSet.from_mask(mask)

    def read_pub_restrictions(self, count: int) -> List[PubRestriction]:
        restrictions = []
        for _ in range(count):
            purpose_id = self.read_int(16)
            restriction_type = RestrictionType(self.read_int(2))
            num_entries = self.read_int(12)
            vendors = self.read_range_entries(num_entries, 0, False)
            restrictions.append(PubRestriction(
                purpose_id=purpose_id,
                restriction_type=restriction_type,
                num_entries=num_entries,
                restricted_vendors=vendors,
            ))
        return restrictions
