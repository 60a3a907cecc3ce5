"""
Entry point for decoding a TCF consent string.

The leading character selects the version: 'B' is the 6-bit version 1 and 'C'
version 2 in the base64url alphabet. A v2 string may carry trailing segments
after the core segment, separated by dots; each one announces its kind in its
first three bits.
"""

import base64
import binascii
import dataclasses
import logging
import re
from typing import Dict, List, Union

from tcf_consent.errors import (
    DecodeError,
    TooShortError,
    UnsupportedVersionError,
)
from tcf_consent.models import ConsentV1, ConsentV2, PublisherTC, SegmentType, Vendors
from tcf_consent.segments import (
    decode_core_v1,
    decode_core_v2,
    decode_publisher_tc,
    decode_vendors,
)

logger = logging.getLogger(__name__)

V1_PREFIX = "B"
V2_PREFIX = "C"
SEGMENT_SEPARATOR = "."

_BASE64URL = re.compile(r"[A-Za-z0-9_-]*\Z")

# segment type -> (ConsentV2 field, decoder)
_TRAILING_SEGMENTS = {
    SegmentType.DISCLOSED_VENDORS: ("disclosed_vendors", decode_vendors),
    SegmentType.ALLOWED_VENDORS: ("allowed_vendors", decode_vendors),
    SegmentType.PUBLISHER_TC: ("publisher_tc", decode_publisher_tc),
}


def decode_segment(segment: str) -> bytes:
    """Decode one unpadded base64url segment."""
    if not _BASE64URL.match(segment):
        raise DecodeError(f"Segment is not base64url: {segment[:40]!r}")
    try:
        return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except binascii.Error as err:
        raise DecodeError(f"Segment is not base64url: {err}") from err


def parse(consent_string: str, strict: bool = False) -> Union[ConsentV1, ConsentV2]:
    """
    Decode a TCF v1.1 or v2.0 consent string.

    Args:
        consent_string (str): The encoded string, e.g. "BONMj34ONMj34ABACDENALqAAAAAplY".
        strict (bool): Reject language and country letters outside A..Z.

    Returns:
        ConsentV1 | ConsentV2: The decoded record.

    Raises:
        TooShortError: The string is empty.
        UnsupportedVersionError: The string starts with neither 'B' nor 'C'.
        DecodeError: The core segment is not valid base64url.
        UnexpectedEOFError: The core segment is truncated. The partially
                            decoded record is available as `err.consent`.
        InvalidLetterError: Only when strict and a letter code exceeds 'Z'.
    """
    if not consent_string:
        raise TooShortError()

    leading = consent_string[0]
    if leading == V1_PREFIX:
        data = decode_segment(consent_string)
        consent, reader = decode_core_v1(data, strict=strict)
    elif leading == V2_PREFIX:
        core, *trailing = consent_string.split(SEGMENT_SEPARATOR)
        data = decode_segment(core)
        consent, reader = decode_core_v2(data, strict=strict)
        segments = _decode_trailing_segments(trailing)
        if segments:
            consent = dataclasses.replace(consent, **segments)
    else:
        raise UnsupportedVersionError(leading)

    logger.debug("Decoded v%d consent string from CMP %d", consent.version, consent.cmp_id)
    if reader.error is not None:
        reader.error.consent = consent
        raise reader.error
    return consent


def _decode_trailing_segments(segments: List[str]) -> Dict[str, object]:
    """
    Decode the optional v2 segments into ConsentV2 field values.

    Empty and unknown segments are skipped. A segment that is malformed or
    truncated is dropped with a warning so that it cannot spoil the core record.
    """
    decoded = {}
    for index, segment in enumerate(segments, start=1):
        if not segment:
            continue
        try:
            data = decode_segment(segment)
        except DecodeError as err:
            logger.warning("Skipping trailing segment %d: %s", index, err)
            continue
        if not data:
            continue

        kind = data[0] >> 5
        if kind not in _TRAILING_SEGMENTS:
            logger.debug("Skipping trailing segment %d of unknown type %d", index, kind)
            continue

        field_name, decoder = _TRAILING_SEGMENTS[SegmentType(kind)]
        value, reader = decoder(data)
        if reader.error is not None:
            logger.warning("Skipping truncated %s segment %d: %s", field_name, index, reader.error)
            continue
        decoded[field_name] = value
    return decoded


def _parse_single_segment(segment: str, decoder):
    value, reader = decoder(decode_segment(segment))
    if reader.error is not None:
        reader.error.consent = value
        raise reader.error
    return value


def parse_vendors(segment: str) -> Vendors:
    """
    Decode one DisclosedVendors or AllowedVendors segment on its own.

    Raises:
        DecodeError: The segment is not valid base64url.
        UnexpectedEOFError: The segment is truncated; `err.consent` holds the
                            partially decoded Vendors.
    """
    return _parse_single_segment(segment, decode_vendors)


def parse_publisher_tc(segment: str) -> PublisherTC:
    """Decode one PublisherTC segment on its own. Raises like parse_vendors()."""
    return _parse_single_segment(segment, decode_publisher_tc)
