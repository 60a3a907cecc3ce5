import pytest

from tcf_consent.bitreader import BitReader
from tcf_consent.errors import UnexpectedEOFError

DATA = bytes([0xA5, 0x3C, 0xFF, 0x01, 0x80, 0x7E, 0x42, 0x99, 0x10])


def test_byte_reads_yield_the_buffer():
    reader = BitReader(DATA)
    assert [reader.read_bits(8) for _ in DATA] == list(DATA)
    assert reader.remaining == 0


@pytest.mark.parametrize("p,q", [(1, 1), (3, 5), (7, 13), (12, 12), (30, 34), (1, 63)])
def test_split_reads_concatenate_msb_first(p, q):
    whole = BitReader(DATA).read_bits(p + q)
    split = BitReader(DATA)
    assert whole == (split.read_bits(p) << q) | split.read_bits(q)


def test_reads_across_byte_boundaries():
    reader = BitReader(b"\x0f\xf0")
    assert reader.read_bits(4) == 0
    assert reader.read_bits(8) == 0xFF
    assert reader.read_bits(4) == 0


def test_unaligned_64_bit_read():
    reader = BitReader(DATA)
    reader.read_bits(3)
    expected = int.from_bytes(DATA, "big") >> (len(DATA) * 8 - 67) & ((1 << 64) - 1)
    assert reader.read_bits(64) == expected


def test_read_bool_and_remaining():
    reader = BitReader(b"\x80")
    assert reader.remaining == 8
    assert reader.read_bool() is True
    assert reader.read_bool() is False
    assert reader.remaining == 6
    assert reader.position == 2


def test_underflow_raises_and_keeps_position():
    reader = BitReader(b"\x01")
    reader.read_bits(3)
    with pytest.raises(UnexpectedEOFError) as excinfo:
        reader.read_bits(6)
    assert excinfo.value.needed == 6
    assert excinfo.value.remaining == 5
    assert reader.position == 3
    assert reader.read_bits(5) == 1


def test_empty_buffer():
    with pytest.raises(UnexpectedEOFError):
        BitReader(b"").read_bool()


@pytest.mark.parametrize("nbits", [0, -1, 65])
def test_width_out_of_range(nbits):
    with pytest.raises(ValueError):
        BitReader(DATA).read_bits(nbits)


def test_skip_to_end():
    reader = BitReader(DATA)
    reader.skip_to_end()
    assert reader.remaining == 0
