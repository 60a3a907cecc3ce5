"""
Decoded representations of TCF v1.1 and v2.0 consent strings.

ParsedConsent carries the header and vendor fields that both versions share.
ConsentV1 and ConsentV2 are the concrete results returned by parse(); only
ConsentV2 has the v2-only fields, the publisher restriction table and the
optional trailing segments.

Every record is immutable once built. Sets of purpose, feature and vendor ids
are BitSet instances, which behave like a read-only set of ints.
"""

from collections.abc import Set
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Iterable, Iterator, Optional, Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SegmentType(IntEnum):
    """3-bit discriminator leading every v2 segment except the core one."""
    CORE = 0
    DISCLOSED_VENDORS = 1
    ALLOWED_VENDORS = 2
    PUBLISHER_TC = 3


class RestrictionType(IntEnum):
    """How a publisher restriction constrains the listed vendors for a purpose."""
    NOT_ALLOWED = 0
    REQUIRE_CONSENT = 1
    REQUIRE_LEGITIMATE_INTEREST = 2
    UNDEFINED = 3   # reserved


class BitSet(Set):
    """
    Immutable set of non-negative ints stored as the bits of one Python int.

    Membership is O(1) and a set covering every vendor id up to 65535 costs
    about 8 KiB. Compares equal to any set or frozenset with the same members.
    """

    __slots__ = ("_mask",)

    def __init__(self, members: Iterable[int] = ()):
        mask = 0
        for member in members:
            if member < 0:
                raise ValueError(f"BitSet members must be non-negative, got {member}")
            mask |= 1 << member
        self._mask = mask

    @classmethod
    def from_mask(cls, mask: int) -> "BitSet":
        if mask < 0:
            raise ValueError("mask must be non-negative")
        instance = cls.__new__(cls)
        instance._mask = mask
        return instance

    @classmethod
    def _from_iterable(cls, it):
        return cls(it)

    @property
    def mask(self) -> int:
        return self._mask

    def __contains__(self, item) -> bool:
        if not isinstance(item, int) or item < 0:
            return False
        return (self._mask >> item) & 1 == 1

    def __iter__(self) -> Iterator[int]:
        remaining = self._mask
        while remaining:
            lowest = remaining & -remaining
            yield lowest.bit_length() - 1
            remaining ^= lowest

    def __len__(self) -> int:
        return bin(self._mask).count("1")

    def __hash__(self) -> int:
        return self._hash()

    def __and__(self, other):
        if isinstance(other, BitSet):
            return BitSet.from_mask(self._mask & other._mask)
        return super().__and__(other)

    def __or__(self, other):
        if isinstance(other, BitSet):
            return BitSet.from_mask(self._mask | other._mask)
        return super().__or__(other)

    def __sub__(self, other):
        if isinstance(other, BitSet):
            return BitSet.from_mask(self._mask & ~other._mask)
        return super().__sub__(other)

    def __repr__(self) -> str:
        return f"BitSet({sorted(self)!r})"


@dataclass(frozen=True)
class PubRestriction:
    """A publisher override for one purpose, applied to a set of vendors."""
    purpose_id: int = 0
    restriction_type: RestrictionType = RestrictionType.NOT_ALLOWED
    num_entries: int = 0
    restricted_vendors: BitSet = field(default_factory=BitSet)


@dataclass(frozen=True)
class Vendors:
    """A DisclosedVendors (type 1) or AllowedVendors (type 2) trailing segment."""
    segment_type: int = 0
    max_vendor_id: int = 0
    consented_vendors: BitSet = field(default_factory=BitSet)


@dataclass(frozen=True)
class PublisherTC:
    """The publisher purposes trailing segment (type 3)."""
    segment_type: int = SegmentType.PUBLISHER_TC
    pub_purposes_consent: BitSet = field(default_factory=BitSet)
    pub_purposes_li_transparency: BitSet = field(default_factory=BitSet)
    num_custom_purposes: int = 0
    custom_purposes_consent: BitSet = field(default_factory=BitSet)
    custom_purposes_li_transparency: BitSet = field(default_factory=BitSet)


@dataclass(frozen=True)
class ParsedConsent:
    """Fields present in both v1.1 and v2.0 core segments."""
    version: int = 0
    created: datetime = EPOCH
    last_updated: datetime = EPOCH
    cmp_id: int = 0
    cmp_version: int = 0
    consent_screen: int = 0
    consent_language: str = ""
    vendor_list_version: int = 0
    purposes_allowed: BitSet = field(default_factory=BitSet)
    max_vendor_id: int = 0
    consented_vendors: BitSet = field(default_factory=BitSet)

    def every_purpose_allowed(self, purpose_ids: Iterable[int]) -> bool:
        """True iff every purpose in purpose_ids has consent. Vacuously true when empty."""
        return all(purpose_id in self.purposes_allowed for purpose_id in purpose_ids)

    def vendor_allowed(self, vendor_id: int) -> bool:
        """True iff the user consented to vendor_id."""
        return vendor_id in self.consented_vendors


@dataclass(frozen=True)
class ConsentV1(ParsedConsent):
    """A decoded TCF v1.1 consent string."""


@dataclass(frozen=True)
class ConsentV2(ParsedConsent):
    """A decoded TCF v2.0 consent string, including any trailing segments."""
    policy_version: int = 0
    is_specific_service: bool = False
    use_non_standard_stacks: bool = False
    special_feature_optins: BitSet = field(default_factory=BitSet)
    purposes_transparency: BitSet = field(default_factory=BitSet)
    purpose_one_treatment: bool = False
    publisher_cc: str = ""
    legit_max_vendor_id: int = 0
    legit_consented_vendors: BitSet = field(default_factory=BitSet)
    num_pub_restrictions: int = 0
    pub_restrictions: Tuple[PubRestriction, ...] = ()
    disclosed_vendors: Optional[Vendors] = None
    allowed_vendors: Optional[Vendors] = None
    publisher_tc: Optional[PublisherTC] = None

    def vendor_legitimate_interest(self, vendor_id: int) -> bool:
        """True iff legitimate interest was established for vendor_id."""
        return vendor_id in self.legit_consented_vendors

    def restrictions_for_vendor(self, vendor_id: int) -> Tuple[PubRestriction, ...]:
        """Publisher restrictions that list vendor_id, in encoded order."""
        return tuple(r for r in self.pub_restrictions if vendor_id in r.restricted_vendors)
