"""
Certification service.

Orchestrates the codec, signature engine and validity checks into the two
operations offered to the embedding mail client: producing a signed
certificate for an outgoing message and classifying the certificate headers
of an incoming one.

The service holds no state between calls. Trust stores and keystores are
passed in explicitly on every call.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from opentelemetry import trace

from .codec import CertificateRecord, parse_certificate, serialize_certificate
from .exceptions import (
    CertificateParseError,
    UnknownIssuerError,
    UnsupportedAlgorithmError,
)
from .signing import AlgorithmRegistry, default_registry
from .truststore import CAKeyEntry, TrustedIssuer
from .validity import (
    SUPPORTED_VERSION,
    ValidityFailure,
    current_timestamp,
    find_validity_failure,
    format_timestamp,
    sender_domain,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_LEVEL = "2"
DEFAULT_VALIDITY = timedelta(days=8)
DEFAULT_BACKDATE = timedelta(days=1)
SERIAL_NUMBER_LIMIT = 10**16

HeaderValue = str | Sequence[str] | None


class VerificationResult(str, Enum):
    """Classification of an incoming message's certificate headers."""

    VALID = "valid"
    NO_HEADER = "no_header"
    MALFORMED = "malformed"
    UNTRUSTED_ISSUER = "untrusted_issuer"
    NOT_YET_VALID_OR_EXPIRED = "not_yet_valid_or_expired"
    DOMAIN_MISMATCH = "domain_mismatch"
    BAD_SIGNATURE = "bad_signature"

    @property
    def is_trusted(self) -> bool:
        return self is VerificationResult.VALID


_VALIDITY_RESULTS = {
    ValidityFailure.VERSION: VerificationResult.MALFORMED,
    ValidityFailure.SERIAL: VerificationResult.MALFORMED,
    ValidityFailure.WINDOW: VerificationResult.NOT_YET_VALID_OR_EXPIRED,
    ValidityFailure.DOMAIN: VerificationResult.DOMAIN_MISMATCH,
}


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of verifying one message.

    ``reason`` is diagnostic only; trust decisions must use ``result``.
    """

    result: VerificationResult
    record: CertificateRecord | None = None
    reason: str = ""

    @property
    def is_trusted(self) -> bool:
        return self.result.is_trusted


@dataclass(frozen=True)
class SignedCertificate:
    """A certificate record with its canonical string and signature."""

    record: CertificateRecord
    data: str
    signature: str


def _single_header(value: HeaderValue) -> str | None:
    """Return the header value if it is present exactly once and non-empty."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if len(value) != 1 or not isinstance(value[0], str):
        return None
    return value[0] or None


def _as_timestamp(now: datetime | str | None) -> str:
    if isinstance(now, str):
        return now
    return current_timestamp(now)


class CertificationService:
    """Signs and verifies CEPP certificates against caller-supplied key material."""

    def __init__(self, registry: AlgorithmRegistry | None = None) -> None:
        self.registry = registry or default_registry()

    def sign_new_certificate(
        self,
        fields: CertificateRecord | Mapping[str, object],
        issuer_id: str,
        ca_keystore: Mapping[str, CAKeyEntry],
    ) -> SignedCertificate:
        """
        Produce a signed certificate for an outgoing message.

        Args:
            fields: The record, or a mapping of its fields. ``i`` is always
                taken from ``issuer_id``; ``v`` and ``a`` default to the
                supported version and the issuer's algorithm.
            issuer_id: The signing CA
            ca_keystore: Mapping from issuer id to private key material

        Returns:
            The record, its canonical string and the signature string

        Raises:
            UnknownIssuerError: If the issuer has no keystore entry
            UnsupportedAlgorithmError: If the record's algorithm is not
                registered or does not match the issuer's key
            CertificateParseError: If a field value would break the
                canonical format or is not ASCII
            SigningError: If the issuer's key material is unusable
        """
        with tracer.start_as_current_span("cepp.sign_new_certificate") as span:
            span.set_attribute("cepp.issuer", issuer_id)
            key = ca_keystore.get(issuer_id)
            if key is None:
                raise UnknownIssuerError(issuer_id)

            if isinstance(fields, CertificateRecord):
                record = dataclasses.replace(fields, i=issuer_id)
            else:
                values = dict(fields)
                values.setdefault("v", SUPPORTED_VERSION)
                values.setdefault("a", key.algorithm_id)
                values["i"] = issuer_id
                try:
                    record = CertificateRecord.from_mapping(values)
                except ValueError as e:
                    raise CertificateParseError(str(e)) from e

            if record.a not in self.registry or record.a != key.algorithm_id:
                raise UnsupportedAlgorithmError(record.a)

            data = serialize_certificate(record)
            try:
                parse_certificate(data)
            except CertificateParseError as e:
                msg = "Certificate field values must not contain ';' or '='"
                raise CertificateParseError(msg) from e

            if not data.isascii():
                msg = "Certificate field values must be ASCII so the header is sent unencoded"
                raise CertificateParseError(msg)

            signature = self.registry.sign(record.a, key, data.encode("ascii"))
            logger.info(
                "Signed certificate %s for %s by %r",
                record.s,
                record.d,
                issuer_id,
                extra={"cepp_issuer": issuer_id, "cepp_serial": record.s},
            )
            return SignedCertificate(record=record, data=data, signature=signature)

    def verify_incoming(
        self,
        data_header: HeaderValue,
        signature_header: HeaderValue,
        sender_address: str,
        trust_store: Mapping[str, TrustedIssuer],
        now: datetime | str | None = None,
    ) -> VerificationOutcome:
        """
        Classify the certificate headers of an incoming message.

        Checks run cheapest first: header presence, strict parse, issuer
        lookup, version/serial/window/domain, and finally the signature over
        the untouched ``CEPP-Data`` header string. Never raises.

        Args:
            data_header: ``CEPP-Data`` value(s); absent or duplicated headers
                are rejected
            signature_header: ``CEPP-Signature`` value(s)
            sender_address: The message author, e.g. ``"Name <user@example.com>"``
            trust_store: Mapping from issuer id to trusted public key material
            now: Current time as a datetime or CEPP timestamp; defaults to now

        Returns:
            The verification outcome
        """
        with tracer.start_as_current_span("cepp.verify_incoming") as span:
            try:
                outcome = self._verify(data_header, signature_header, sender_address, trust_store, now)
            except Exception:
                logger.exception("Unexpected fault while verifying certificate")
                outcome = VerificationOutcome(
                    VerificationResult.BAD_SIGNATURE, reason="verification fault"
                )
            span.set_attribute("cepp.result", outcome.result.value)

        context = {"cepp_result": outcome.result.value}
        if outcome.is_trusted:
            logger.info("Certificate verified for %s", sender_address, extra=context)
        else:
            logger.info(
                "Certificate rejected (%s): %s", outcome.result.value, outcome.reason, extra=context
            )
        return outcome

    def _verify(
        self,
        data_header: HeaderValue,
        signature_header: HeaderValue,
        sender_address: str,
        trust_store: Mapping[str, TrustedIssuer],
        now: datetime | str | None,
    ) -> VerificationOutcome:
        data = _single_header(data_header)
        signature = _single_header(signature_header)
        if data is None or signature is None:
            return VerificationOutcome(
                VerificationResult.NO_HEADER, reason="certificate headers absent or duplicated"
            )

        try:
            record = parse_certificate(data)
        except CertificateParseError as e:
            return VerificationOutcome(VerificationResult.MALFORMED, reason=e.message)

        try:
            payload = data.encode("utf-8")
        except UnicodeEncodeError:
            return VerificationOutcome(
                VerificationResult.MALFORMED, record, "certificate data is not encodable text"
            )

        issuer = trust_store.get(record.i)
        if issuer is None:
            return VerificationOutcome(
                VerificationResult.UNTRUSTED_ISSUER, record, f"issuer {record.i!r} is not trusted"
            )
        if record.a not in self.registry or record.a != issuer.algorithm_id:
            return VerificationOutcome(
                VerificationResult.UNTRUSTED_ISSUER,
                record,
                f"algorithm {record.a!r} is not accepted for issuer {record.i!r}",
            )

        failure = find_validity_failure(record, _as_timestamp(now), sender_address)
        if failure is not None:
            return VerificationOutcome(
                _VALIDITY_RESULTS[failure], record, f"{failure.value} check failed"
            )

        if not self.registry.verify(record.a, issuer, payload, signature):
            return VerificationOutcome(
                VerificationResult.BAD_SIGNATURE, record, "signature does not match certificate data"
            )
        return VerificationOutcome(VerificationResult.VALID, record)

    def build_certificate_fields(
        self,
        sender_address: str,
        issuer_id: str,
        ca_keystore: Mapping[str, CAKeyEntry],
        now: datetime | None = None,
        validity: timedelta = DEFAULT_VALIDITY,
        level: str = DEFAULT_LEVEL,
        serial: int | None = None,
    ) -> CertificateRecord:
        """
        Build the default record for an outgoing message.

        The window opens one day before ``now`` and lasts ``validity``; the
        subject domain is the sender's mail domain.

        Raises:
            UnknownIssuerError: If the issuer has no keystore entry
            ValueError: If the sender address has no usable domain
        """
        key = ca_keystore.get(issuer_id)
        if key is None:
            raise UnknownIssuerError(issuer_id)
        domain = sender_domain(sender_address)
        if not domain:
            msg = f"Cannot determine mail domain of sender {sender_address!r}"
            raise ValueError(msg)

        moment = (now or datetime.now(timezone.utc)).replace(second=0, microsecond=0)
        not_before = moment - DEFAULT_BACKDATE
        return CertificateRecord(
            v=SUPPORTED_VERSION,
            s=str(serial if serial is not None else secrets.randbelow(SERIAL_NUMBER_LIMIT)),
            a=key.algorithm_id,
            i=issuer_id,
            nb=format_timestamp(not_before),
            na=format_timestamp(not_before + validity),
            d=domain,
            l=level,
        )

    @staticmethod
    def spam_contact_for(
        outcome: VerificationOutcome, trust_store: Mapping[str, TrustedIssuer]
    ) -> str | None:
        """Return the issuing CA's spam-report address for a trusted message."""
        if not outcome.is_trusted or outcome.record is None:
            return None
        issuer = trust_store.get(outcome.record.i)
        return issuer.spam_contact_address if issuer is not None else None


_default_service = CertificationService()


def sign_new_certificate(
    fields: CertificateRecord | Mapping[str, object],
    issuer_id: str,
    ca_keystore: Mapping[str, CAKeyEntry],
) -> SignedCertificate:
    return _default_service.sign_new_certificate(fields, issuer_id, ca_keystore)


def verify_incoming(
    data_header: HeaderValue,
    signature_header: HeaderValue,
    sender_address: str,
    trust_store: Mapping[str, TrustedIssuer],
    now: datetime | str | None = None,
) -> VerificationOutcome:
    return _default_service.verify_incoming(
        data_header, signature_header, sender_address, trust_store, now
    )


def build_certificate_fields(
    sender_address: str,
    issuer_id: str,
    ca_keystore: Mapping[str, CAKeyEntry],
    now: datetime | None = None,
    validity: timedelta = DEFAULT_VALIDITY,
    level: str = DEFAULT_LEVEL,
    serial: int | None = None,
) -> CertificateRecord:
    return _default_service.build_certificate_fields(
        sender_address, issuer_id, ca_keystore, now, validity, level, serial
    )


def spam_contact_for(
    outcome: VerificationOutcome, trust_store: Mapping[str, TrustedIssuer]
) -> str | None:
    return CertificationService.spam_contact_for(outcome, trust_store)
