"""
Validity checks for CEPP certificate records.

Covers the protocol version, serial number format, validity window and
sender-domain match. Signature checking is not done here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from .codec import CertificateRecord

logger = logging.getLogger(__name__)

SUPPORTED_VERSION = "1"

TIMESTAMP_LENGTH = 13
TIMESTAMP_SUFFIX = "Z"
TIMESTAMP_FORMAT = "%y%m%d%H%M%S"


class ValidityFailure(str, Enum):
    """Which validity sub-check rejected a record."""

    VERSION = "version"
    SERIAL = "serial"
    WINDOW = "window"
    DOMAIN = "domain"


def _is_ascii_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def is_timestamp(value: object) -> bool:
    """Return True if ``value`` is 12 digits followed by ``Z``."""
    return (
        isinstance(value, str)
        and len(value) == TIMESTAMP_LENGTH
        and _is_ascii_digits(value[:-1])
        and value.endswith(TIMESTAMP_SUFFIX)
    )


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a CEPP timestamp (``YYMMDDHHMMSSZ``, UTC).

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT) + TIMESTAMP_SUFFIX


def current_timestamp(now: datetime | None = None) -> str:
    return format_timestamp(now or datetime.now(timezone.utc))


def check_version(record: CertificateRecord) -> bool:
    return record.v == SUPPORTED_VERSION


def check_serial(record: CertificateRecord) -> bool:
    """The serial number must be a non-negative base-10 integer."""
    return _is_ascii_digits(record.s)


def check_window(not_before: str, current: str, not_after: str) -> bool:
    """
    Check that ``current`` lies strictly inside the validity window.

    Args:
        not_before: The record's ``nb`` timestamp
        current: The current timestamp, same format
        not_after: The record's ``na`` timestamp

    Returns:
        True if ``not_before < current < not_after``; False if any timestamp
        is malformed
    """
    if not (is_timestamp(not_before) and is_timestamp(current) and is_timestamp(not_after)):
        return False
    return int(not_before[:-1]) < int(current[:-1]) < int(not_after[:-1])


def sender_domain(sender_address: str) -> str | None:
    """
    Extract the mail domain from a sender address.

    ``"Name <user@example.com>"`` yields ``"example.com"``. Addresses without
    exactly one ``@`` yield None.
    """
    if not isinstance(sender_address, str):
        return None
    parts = sender_address.split("@")
    if len(parts) != 2:
        return None
    domain = parts[1]
    if domain.endswith(">"):
        domain = domain[:-1]
    return domain


def check_domain(record_domain: str, sender_address: str) -> bool:
    """Check that the record's subject domain matches the sender's domain.

    Mail domains are case-insensitive, so both sides are lower-cased.
    """
    domain = sender_domain(sender_address)
    if not domain or not record_domain:
        return False
    return record_domain.lower() == domain.lower()


def find_validity_failure(
    record: CertificateRecord, current: str, sender_address: str
) -> ValidityFailure | None:
    """Run the sub-checks in order and return the first that fails, if any."""
    if not check_version(record):
        return ValidityFailure.VERSION
    if not check_serial(record):
        return ValidityFailure.SERIAL
    if not check_window(record.nb, current, record.na):
        return ValidityFailure.WINDOW
    if not check_domain(record.d, sender_address):
        return ValidityFailure.DOMAIN
    return None


def check_certificate(record: CertificateRecord, current: str, sender_address: str) -> bool:
    """Return True if the record passes every validity sub-check."""
    failure = find_validity_failure(record, current, sender_address)
    if failure is not None:
        logger.debug("Certificate %s failed %s check", record.s, failure.value)
        return False
    return True
