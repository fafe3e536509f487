"""
Certificate data codec.

Canonical serialization and strict parsing of the eight-field CEPP certificate
record carried in the ``CEPP-Data`` mail header. The parser works on
attacker-controlled header text, so every malformation is reported as a
:class:`~cepp.exceptions.CertificateParseError` and nothing is coerced.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import astuple, dataclass, fields

from .exceptions import CertificateParseError

logger = logging.getLogger(__name__)

# Fixed field order of a well-formed record
FIELD_ORDER: tuple[str, ...] = ("v", "s", "a", "i", "nb", "na", "d", "l")

FIELD_SEPARATOR = ";"
CANONICAL_SEPARATOR = "; "
KEY_VALUE_SEPARATOR = "="


@dataclass(frozen=True)
class CertificateRecord:
    """A CEPP certificate record.

    Attributes:
        v: Protocol version
        s: Serial number
        a: Signature algorithm id
        i: Issuer id
        nb: Not-before timestamp (``YYMMDDHHMMSSZ``)
        na: Not-after timestamp (``YYMMDDHHMMSSZ``)
        d: Subject domain
        l: Classification level
    """

    v: str
    s: str
    a: str
    i: str
    nb: str
    na: str
    d: str
    l: str  # noqa: E741

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> CertificateRecord:
        """Build a record from a mapping keyed by the short field names."""
        missing = [key for key in FIELD_ORDER if key not in data]
        if missing:
            msg = f"Certificate fields missing: {', '.join(missing)}"
            raise ValueError(msg)
        return cls(**{key: str(data[key]) for key in FIELD_ORDER})

    def to_dict(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def serialize_certificate(record: CertificateRecord) -> str:
    """Return the canonical string form of a record.

    This exact string is what gets signed and placed in the ``CEPP-Data`` header.
    """
    return CANONICAL_SEPARATOR.join(
        f"{key}{KEY_VALUE_SEPARATOR}{value}" for key, value in zip(FIELD_ORDER, astuple(record))
    )


def parse_certificate(data: object) -> CertificateRecord:
    """
    Strictly parse a ``CEPP-Data`` header value.

    Args:
        data: The raw header value

    Returns:
        The parsed certificate record, with values stored verbatim

    Raises:
        CertificateParseError: If the input is not exactly eight ``key=value``
            segments in canonical key order
    """
    if not isinstance(data, str):
        msg = f"Certificate data must be a string, got {type(data).__name__}"
        raise CertificateParseError(msg)

    segments = data.split(FIELD_SEPARATOR)
    if len(segments) != len(FIELD_ORDER):
        msg = f"Expected {len(FIELD_ORDER)} fields, found {len(segments)}"
        raise CertificateParseError(msg)

    values: dict[str, str] = {}
    for position, (expected_key, segment) in enumerate(zip(FIELD_ORDER, segments)):
        parts = segment.split(KEY_VALUE_SEPARATOR)
        if len(parts) != 2:
            msg = f"Field {position} is not a single key=value pair"
            raise CertificateParseError(msg)
        key, value = parts
        if key.strip() != expected_key:
            msg = f"Field {position} has key {key.strip()!r}, expected {expected_key!r}"
            raise CertificateParseError(msg)
        values[expected_key] = value

    return CertificateRecord(**values)


def try_parse_certificate(data: object) -> CertificateRecord | None:
    """Parse a header value, returning ``None`` instead of raising."""
    try:
        return parse_certificate(data)
    except CertificateParseError as e:
        logger.debug("Rejected certificate data: %s", e.message)
        return None
