"""
Exception hierarchy raised while decoding TCF consent strings.

Every error derives from TCFError, so callers that only care whether a string
could be decoded can catch that single class.
"""


class TCFError(Exception):
    """Base class for all consent string decoding errors."""


class TooShortError(TCFError):
    """The consent string is empty."""

    def __init__(self, message: str = "Consent string is too short"):
        super().__init__(message)


class UnsupportedVersionError(TCFError):
    """The leading character does not announce TCF v1.1 ('B') or v2.0 ('C')."""

    def __init__(self, leading: str):
        self.leading = leading
        super().__init__(f"Unsupported consent string version (leading character {leading!r})")


class DecodeError(TCFError):
    """A segment is not valid unpadded base64url."""


class UnexpectedEOFError(TCFError):
    """
    The bit stream ran out before a field was fully read.

    When raised from parse(), `consent` holds the partially populated record.
    Its values past the point of underflow are zeroed and must not be trusted.
    """

    def __init__(self, needed: int, remaining: int):
        self.needed = needed
        self.remaining = remaining
        self.consent = None
        super().__init__(f"Unexpected end of bit stream: need {needed} bits, have {remaining}")


class InvalidLetterError(TCFError):
    """A 6-bit letter code is outside A..Z (only raised in strict mode)."""

    def __init__(self, code: int):
        self.code = code
        super().__init__(f"Letter code {code} is outside the range A..Z")
