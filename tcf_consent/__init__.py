"""
Decoder for IAB TCF v1.1 and v2.0 consent strings.

    >>> from tcf_consent import parse
    >>> consent = parse("BONMj34ONMj34ABACDENALqAAAAAplY")
    >>> consent.every_purpose_allowed([1, 3])
    True
"""

from tcf_consent.errors import (
    DecodeError,
    InvalidLetterError,
    TCFError,
    TooShortError,
    UnexpectedEOFError,
    UnsupportedVersionError,
)
from tcf_consent.models import (
    BitSet,
    ConsentV1,
    ConsentV2,
    ParsedConsent,
    PublisherTC,
    PubRestriction,
    RestrictionType,
    SegmentType,
    Vendors,
)
from tcf_consent.parse import parse, parse_publisher_tc, parse_vendors

__version__ = "0.1.0"

__all__ = [
    "parse",
    "parse_vendors",
    "parse_publisher_tc",
    "ParsedConsent",
    "ConsentV1",
    "ConsentV2",
    "PubRestriction",
    "RestrictionType",
    "Vendors",
    "PublisherTC",
    "SegmentType",
    "BitSet",
    "TCFError",
    "TooShortError",
    "UnsupportedVersionError",
    "DecodeError",
    "UnexpectedEOFError",
    "InvalidLetterError",
]
