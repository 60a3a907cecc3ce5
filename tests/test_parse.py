import logging
from datetime import datetime, timezone

import pytest

from tcf_consent import (
    ConsentV1,
    ConsentV2,
    DecodeError,
    InvalidLetterError,
    PublisherTC,
    PubRestriction,
    RestrictionType,
    TCFError,
    TooShortError,
    UnexpectedEOFError,
    UnsupportedVersionError,
    Vendors,
    parse,
    parse_publisher_tc,
    parse_vendors,
)

V1_CREATED = datetime(2018, 5, 3, 20, 10, 0, 800000, tzinfo=timezone.utc)
V2_CREATED = datetime(2020, 2, 25, 16, 16, 53, 200000, tzinfo=timezone.utc)


def v1_consent(vendors, max_vendor_id=10):
    return ConsentV1(
        version=1,
        created=V1_CREATED,
        last_updated=V1_CREATED,
        cmp_id=1,
        cmp_version=2,
        consent_screen=3,
        consent_language="EN",
        vendor_list_version=11,
        purposes_allowed=frozenset({1, 3, 5}),
        max_vendor_id=max_vendor_id,
        consented_vendors=frozenset(vendors),
    )


V1_CASES = {
    "BONMj34ONMj34ABACDENALqAAAAAplY": {1, 2, 5, 7, 9, 10},
    "BONMj34ONMj34ABACDENALqAAAAAqABAD2AAAAAAAAAAAAAAAAAAAAAAAAAA": {123},
    "BONMj34ONMj34ABACDENALqAAAAAqABgD2AdQAAAAAAAAAAAAAAAAAAAAAAAAAA": set(range(123, 235)),
    "BONMj34ONMj34ABACDENALqAAAAAqACAD2AOoAAAAAAAAAAAAAAAAAAAAAAAAAAAAA": {123, 234},
    "BONMj34ONMj34ABACDENALqAAAAAqACgD2AdUBWQHIAAAAAAAAAAAAAAAAAAAAAAAAAAAAA":
        set(range(123, 235)) | set(range(345, 457)),
    "BONMj34ONMj34ABACDENALqAAAAAqACAD3AVkByAAAAAAAAAAAAAAAAAAAAAAAAAAAAA": {123} | set(range(345, 457)),
}

V2_CORE = "COvVNSUOvVNSUKyACDENAPCEANAAABwAAAIgBAwAgAVQCAAIEAgYAQAQoBAAECAA"
V2_DISCLOSED = (
    "IFoEUQQgAIQwgIwQABAEAAAAOIAACAIAAAAQAIAgEAACEAAAAAgAQBAAAAAAAGBAAgAAAAAAAFAAECAAAgAAQARAEQAAAAAJAAIAAgAAAYQEAAAQmAgBC3ZAYzUw"
)
V2_ALLOWED = "QD5QAoBAAECAfIA"
V2_STRING = ".".join([V2_CORE, V2_DISCLOSED, V2_ALLOWED])

DISCLOSED_IDS = {
    2, 6, 8, 12, 18, 23, 37, 42, 47, 48, 53, 61, 65, 66, 72, 88, 98, 127, 128, 129, 133, 153,
    163, 192, 205, 215, 224, 243, 248, 281, 294, 304, 350, 351, 358, 371, 422, 424, 440, 447,
    467, 486, 498, 502, 512, 516, 553, 556, 571, 587, 612, 613, 618, 626, 648, 653, 656, 657,
    665, 676, 681, 683, 684, 686, 687, 688, 690, 691, 694, 702, 703, 707, 708, 711, 712, 714,
    716, 719, 720,
}

# bitfield vendor sets and two publisher restrictions
RESTRICTED_CORE = "COvVNSUOvVNSUAKAHBFRAwEoAeAAAUAAAIYgADKQAUJABAAEgAgADAAcACgAUABgAKA"
PUBLISHER_TC_SEGMENT = "YoAACAAAIdQ"


def expected_restricted_core(**segments):
    return ConsentV2(
        version=2,
        created=V2_CREATED,
        last_updated=V2_CREATED,
        cmp_id=10,
        cmp_version=7,
        consent_screen=1,
        consent_language="FR",
        vendor_list_version=48,
        policy_version=4,
        is_specific_service=True,
        use_non_standard_stacks=False,
        special_feature_optins=frozenset({1, 12}),
        purposes_allowed=frozenset({1, 2, 3, 24}),
        purposes_transparency=frozenset({2}),
        purpose_one_treatment=True,
        publisher_cc="DE",
        max_vendor_id=6,
        consented_vendors=frozenset({1, 3, 6}),
        legit_max_vendor_id=20,
        legit_consented_vendors=frozenset({2, 5}),
        num_pub_restrictions=2,
        pub_restrictions=(
            PubRestriction(2, RestrictionType.REQUIRE_CONSENT, 1, frozenset({3})),
            PubRestriction(7, RestrictionType.NOT_ALLOWED, 2, frozenset({10, 11, 12, 40})),
        ),
        **segments,
    )


@pytest.mark.parametrize("encoded,vendors", list(V1_CASES.items()))
def test_v1_strings(encoded, vendors):
    assert parse(encoded) == v1_consent(vendors)


def test_v1_queries():
    consent = parse("BONMj34ONMj34ABACDENALqAAAAAplY")
    assert consent.every_purpose_allowed([1, 3, 5])
    assert not consent.every_purpose_allowed([1, 2])
    assert consent.vendor_allowed(9)
    assert not consent.vendor_allowed(3)


def test_v1_default_consent_with_exception():
    consent = parse("BONMj34ONMj34ABACDENALqAAAAAXABAAGA")
    assert consent == v1_consent({0, 1, 2, 4, 5}, max_vendor_id=5)
    assert consent.vendor_allowed(4)
    assert not consent.vendor_allowed(3)


def test_v1_default_consent_without_entries():
    assert parse("BONMj34ONMj34ABACDENALqAAAAAXAAA").consented_vendors == set(range(0, 6))


def test_v2_with_disclosed_and_allowed_vendors():
    consent = parse(V2_STRING)
    assert consent == ConsentV2(
        version=2,
        created=V2_CREATED,
        last_updated=V2_CREATED,
        cmp_id=690,
        cmp_version=2,
        consent_screen=3,
        consent_language="EN",
        vendor_list_version=15,
        policy_version=2,
        is_specific_service=False,
        use_non_standard_stacks=False,
        special_feature_optins=frozenset({2}),
        purposes_allowed=frozenset({1, 2, 4}),
        purposes_transparency=frozenset({4, 5, 6}),
        purpose_one_treatment=False,
        publisher_cc="BE",
        max_vendor_id=129,
        consented_vendors=frozenset({42, 128, 129}),
        legit_max_vendor_id=129,
        legit_consented_vendors=frozenset({66, 128, 129}),
        num_pub_restrictions=0,
        pub_restrictions=(),
        disclosed_vendors=Vendors(1, 720, frozenset(DISCLOSED_IDS)),
        allowed_vendors=Vendors(2, 498, frozenset({128, 129, 498})),
        publisher_tc=None,
    )


def test_v2_core_only():
    consent = parse(V2_CORE)
    assert consent.disclosed_vendors is None
    assert consent.allowed_vendors is None
    assert consent.cmp_id == 690


def test_v2_restrictions_and_bitfield_vendor_sets():
    consent = parse(RESTRICTED_CORE)
    assert consent == expected_restricted_core()
    assert [r.purpose_id for r in consent.restrictions_for_vendor(11)] == [7]


def test_v2_publisher_tc_segment():
    consent = parse(RESTRICTED_CORE + "." + PUBLISHER_TC_SEGMENT)
    assert consent == expected_restricted_core(publisher_tc=PublisherTC(
        segment_type=3,
        pub_purposes_consent=frozenset({4, 6}),
        pub_purposes_li_transparency=frozenset({2, 24}),
        num_custom_purposes=3,
        custom_purposes_consent=frozenset({1, 3}),
        custom_purposes_li_transparency=frozenset({2}),
    ))


def test_empty_and_unknown_trailing_segments_are_skipped():
    # "AAAA" is segment type 0, "oAAA" type 5
    encoded = ".".join([RESTRICTED_CORE, "", "AAAA", "oAAA", PUBLISHER_TC_SEGMENT, ""])
    consent = parse(encoded)
    assert consent.publisher_tc is not None
    assert consent.disclosed_vendors is None
    assert consent.allowed_vendors is None


def test_truncated_trailing_segment_leaves_core_intact(caplog):
    with caplog.at_level(logging.WARNING, logger="tcf_consent.parse"):
        consent = parse(V2_CORE + ".IFoEUQ." + V2_ALLOWED)
    assert consent.disclosed_vendors is None
    assert consent.allowed_vendors == Vendors(2, 498, frozenset({128, 129, 498}))
    assert consent.cmp_id == 690
    assert "truncated disclosed_vendors" in caplog.text


def test_malformed_trailing_segment_is_skipped(caplog):
    with caplog.at_level(logging.WARNING, logger="tcf_consent.parse"):
        consent = parse(V2_CORE + ".I*Q")
    assert consent.disclosed_vendors is None
    assert "Skipping trailing segment 1" in caplog.text


def test_truncated_core_carries_partial_record():
    with pytest.raises(UnexpectedEOFError) as excinfo:
        parse("BONMj34ONMj34ABACDENALqAAAAA")
    err = excinfo.value
    assert (err.needed, err.remaining) == (16, 12)
    partial = err.consent
    assert isinstance(partial, ConsentV1)
    assert partial.cmp_id == 1
    assert partial.purposes_allowed == {1, 3, 5}
    assert partial.max_vendor_id == 0
    assert partial.consented_vendors == set()


def test_empty_string():
    with pytest.raises(TooShortError):
        parse("")


@pytest.mark.parametrize("encoded", ["AONMj34", "DOvVNSU", "bONM", "1"])
def test_unsupported_version(encoded):
    with pytest.raises(UnsupportedVersionError) as excinfo:
        parse(encoded)
    assert excinfo.value.leading == encoded[0]


@pytest.mark.parametrize("encoded", [
    "B",
    "BONMj",
    "BONM+34ONMj34ABACDENALqAAAAAplY",
    "BONMj34ONMj34ABACDENALqAAAAAplY=",
    "BONMj34ONMj34ABACDENALqAAAAAplY.IFoE",
    "COvVNSU*OvVNSUKyACDENAPCEANAAABw",
])
def test_invalid_base64(encoded):
    with pytest.raises(DecodeError):
        parse(encoded)


def test_errors_share_a_base_class():
    for exc in (TooShortError, UnsupportedVersionError, DecodeError, UnexpectedEOFError, InvalidLetterError):
        assert issubclass(exc, TCFError)


def test_strict_rejects_letters_past_z():
    encoded = "BONMj34ONMj34ABACD_NALqAAAAAplY"
    assert parse(encoded).consent_language == chr(ord("A") + 63) + "N"
    with pytest.raises(InvalidLetterError):
        parse(encoded, strict=True)


def test_parsing_is_idempotent():
    first = parse(V2_STRING)
    second = parse(V2_STRING)
    assert first == second
    assert hash(first) == hash(second)


def test_publisher_tc_segment_with_other_leading_letter():
    # purpose 1 consent pushes the first character past "Y"
    segment = "dAAACAAAAUg"
    consent = parse(RESTRICTED_CORE + "." + segment)
    assert consent.publisher_tc == PublisherTC(3, frozenset({1, 3}), frozenset({2}), 2, frozenset({1}), frozenset({2}))
    assert consent.disclosed_vendors is None


def test_disclosed_vendors_with_high_max_vendor_id():
    # max vendor id 8192 sets the bit that turns the leading "I" into "J"
    consent = parse(V2_CORE + ".JAAQARAAAA")
    assert consent.disclosed_vendors == Vendors(1, 8192, frozenset({8192}))
    assert consent.allowed_vendors is None
    assert consent.publisher_tc is None


def test_dispatch_is_logged_at_debug(caplog):
    with caplog.at_level(logging.DEBUG, logger="tcf_consent.parse"):
        parse(V2_CORE)
    assert "Decoded v2 consent string from CMP 690" in caplog.text


@pytest.mark.parametrize("segment,expected", [
    (V2_DISCLOSED, Vendors(1, 720, frozenset(DISCLOSED_IDS))),
    (V2_ALLOWED, Vendors(2, 498, frozenset({128, 129, 498}))),
    ("JAAQARAAAA", Vendors(1, 8192, frozenset({8192}))),
])
def test_parse_vendors(segment, expected):
    assert parse_vendors(segment) == expected


def test_parse_publisher_tc():
    assert parse_publisher_tc(PUBLISHER_TC_SEGMENT) == PublisherTC(
        segment_type=3,
        pub_purposes_consent=frozenset({4, 6}),
        pub_purposes_li_transparency=frozenset({2, 24}),
        num_custom_purposes=3,
        custom_purposes_consent=frozenset({1, 3}),
        custom_purposes_li_transparency=frozenset({2}),
    )


def test_parse_vendors_truncated():
    with pytest.raises(UnexpectedEOFError) as excinfo:
        parse_vendors("IFoEUQ")
    partial = excinfo.value.consent
    assert isinstance(partial, Vendors)
    assert (partial.segment_type, partial.max_vendor_id) == (1, 720)


def test_parse_publisher_tc_truncated():
    with pytest.raises(UnexpectedEOFError) as excinfo:
        parse_publisher_tc("YoA")
    partial = excinfo.value.consent
    assert isinstance(partial, PublisherTC)
    assert partial.segment_type == 3


@pytest.mark.parametrize("decoder", [parse_vendors, parse_publisher_tc])
@pytest.mark.parametrize("segment", ["I*Q", "IFoEU", "YoA="])
def test_single_segment_invalid_base64(decoder, segment):
    with pytest.raises(DecodeError):
        decoder(segment)
