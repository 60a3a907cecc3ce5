"""
Field-by-field grammars of the TCF segments.

Each decoder takes the raw bytes of one segment and returns the record along
with the reader, whose `error` slot tells the caller whether the segment was
truncated. The order of the reads below is the wire format.
"""

from typing import Tuple

from tcf_consent.consent_reader import ConsentReader
from tcf_consent.models import BitSet, ConsentV1, ConsentV2, PublisherTC, Vendors

VERSION_BITS = 6
PURPOSE_COUNT = 24
SPECIAL_FEATURE_COUNT = 12


def _read_vendor_set(r: ConsentReader, max_vendor_id: int) -> BitSet:
    """Vendor set without a default-consent bit: ranges or a max_vendor_id wide bitfield."""
    if r.read_bool():
        num_entries = r.read_int(12)
        return r.read_range_entries(num_entries, max_vendor_id, False)
    return r.read_bit_field(max_vendor_id)


def decode_core_v1(data: bytes, strict: bool = False) -> Tuple[ConsentV1, ConsentReader]:
    r = ConsentReader(data, strict=strict)
    fields = dict(
        version=r.read_int(VERSION_BITS),
        created=r.read_time(),
        last_updated=r.read_time(),
        cmp_id=r.read_int(12),
        cmp_version=r.read_int(12),
        consent_screen=r.read_int(6),
        consent_language=r.read_string(2),
        vendor_list_version=r.read_int(12),
        purposes_allowed=r.read_bit_field(PURPOSE_COUNT),
    )
    max_vendor_id = r.read_int(16)
    if r.read_bool():
        default_consent = r.read_bool()
        num_entries = r.read_int(12)
        vendors = r.read_range_entries(num_entries, max_vendor_id, default_consent)
    else:
        vendors = r.read_bit_field(max_vendor_id)
    return ConsentV1(max_vendor_id=max_vendor_id, consented_vendors=vendors, **fields), r


def decode_core_v2(data: bytes, strict: bool = False) -> Tuple[ConsentV2, ConsentReader]:
    """
    Decode a v2.0 core segment. Trailing segments are attached by the caller.

    The legitimate interest bitfield is max_vendor_id bits wide, not
    legit_max_vendor_id; strings in circulation are encoded that way.
    """
    r = ConsentReader(data, strict=strict)
    fields = dict(
        version=r.read_int(VERSION_BITS),
        created=r.read_time(),
        last_updated=r.read_time(),
        cmp_id=r.read_int(12),
        cmp_version=r.read_int(12),
        consent_screen=r.read_int(6),
        consent_language=r.read_string(2),
        vendor_list_version=r.read_int(12),
        policy_version=r.read_int(6),
        is_specific_service=r.read_bool(),
        use_non_standard_stacks=r.read_bool(),
        special_feature_optins=r.read_bit_field(SPECIAL_FEATURE_COUNT),
        purposes_allowed=r.read_bit_field(PURPOSE_COUNT),
        purposes_transparency=r.read_bit_field(PURPOSE_COUNT),
        purpose_one_treatment=r.read_bool(),
        publisher_cc=r.read_string(2),
    )
    max_vendor_id = r.read_int(16)
    consented_vendors = _read_vendor_set(r, max_vendor_id)

    legit_max_vendor_id = r.read_int(16)
    if r.read_bool():
        num_entries = r.read_int(12)
        legit_vendors = r.read_range_entries(num_entries, legit_max_vendor_id, False)
    else:
        legit_vendors = r.read_bit_field(max_vendor_id)

    num_pub_restrictions = r.read_int(12)
    pub_restrictions = tuple(r.read_pub_restrictions(num_pub_restrictions))

    consent = ConsentV2(
        max_vendor_id=max_vendor_id,
        consented_vendors=consented_vendors,
        legit_max_vendor_id=legit_max_vendor_id,
        legit_consented_vendors=legit_vendors,
        num_pub_restrictions=num_pub_restrictions,
        pub_restrictions=pub_restrictions,
        **fields,
    )
    return consent, r


def decode_vendors(data: bytes) -> Tuple[Vendors, ConsentReader]:
    """Decode a DisclosedVendors or AllowedVendors segment."""
    r = ConsentReader(data)
    segment_type = r.read_int(3)
    max_vendor_id = r.read_int(16)
    vendors = _read_vendor_set(r, max_vendor_id)
    return Vendors(segment_type=segment_type, max_vendor_id=max_vendor_id, consented_vendors=vendors), r


def decode_publisher_tc(data: bytes) -> Tuple[PublisherTC, ConsentReader]:
    r = ConsentReader(data)
    segment_type = r.read_int(3)
    pub_consent = r.read_bit_field(PURPOSE_COUNT)
    pub_li = r.read_bit_field(PURPOSE_COUNT)
    num_custom = r.read_int(6)
    return PublisherTC(
        segment_type=segment_type,
        pub_purposes_consent=pub_consent,
        pub_purposes_li_transparency=pub_li,
        num_custom_purposes=num_custom,
        custom_purposes_consent=r.read_bit_field(num_custom),
        custom_purposes_li_transparency=r.read_bit_field(num_custom),
    ), r
