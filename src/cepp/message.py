"""Attach and check CEPP certificate headers on e-mail messages."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime
from email.message import Message

from .service import CertificationService, SignedCertificate, VerificationOutcome
from .truststore import CAKeyEntry, TrustedIssuer

logger = logging.getLogger(__name__)

DATA_HEADER = "CEPP-Data"
SIGNATURE_HEADER = "CEPP-Signature"

# RFC 5322 unfolding: a line break followed by whitespace
_FOLDING = re.compile(r"\r?\n(?=[ \t])")


def _unfold(value: object) -> str:
    return _FOLDING.sub("", str(value))


def attach_certificate(message: Message, signed: SignedCertificate) -> Message:
    """Set the CEPP headers on ``message``, replacing any existing ones."""
    del message[DATA_HEADER]
    del message[SIGNATURE_HEADER]
    message[DATA_HEADER] = signed.data
    message[SIGNATURE_HEADER] = signed.signature
    return message


def extract_certificate_headers(message: Message) -> tuple[list[str], list[str]]:
    """Return every ``CEPP-Data`` and ``CEPP-Signature`` value, unfolded."""
    data = [_unfold(value) for value in message.get_all(DATA_HEADER) or []]
    signatures = [_unfold(value) for value in message.get_all(SIGNATURE_HEADER) or []]
    return data, signatures


def sender_address(message: Message) -> str:
    sender = message.get("From")
    return _unfold(sender) if sender is not None else ""


def verify_message(
    message: Message,
    trust_store: Mapping[str, TrustedIssuer],
    now: datetime | str | None = None,
    service: CertificationService | None = None,
) -> VerificationOutcome:
    """Verify the CEPP headers of a message against its ``From`` address."""
    service = service or CertificationService()
    data, signatures = extract_certificate_headers(message)
    return service.verify_incoming(data, signatures, sender_address(message), trust_store, now)


def sign_message(
    message: Message,
    issuer_id: str,
    ca_keystore: Mapping[str, CAKeyEntry],
    now: datetime | None = None,
    service: CertificationService | None = None,
) -> SignedCertificate:
    """
    Sign an outgoing message with default certificate fields.

    The subject domain comes from the message's ``From`` header.

    Raises:
        UnknownIssuerError: If the issuer has no keystore entry
        ValueError: If the message has no usable sender address
    """
    service = service or CertificationService()
    record = service.build_certificate_fields(sender_address(message), issuer_id, ca_keystore, now)
    signed = service.sign_new_certificate(record, issuer_id, ca_keystore)
    attach_certificate(message, signed)
    logger.debug("Attached certificate %s to message", signed.record.s)
    return signed
