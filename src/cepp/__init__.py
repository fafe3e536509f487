"""
CEPP - a lightweight certificate protocol for e-mail authentication.

A sender attaches a CA-signed certificate record to an outgoing message in the
``CEPP-Data`` and ``CEPP-Signature`` headers; a receiver checks the record
against its trusted CA public keys to decide whether the claimed sending
domain is authentic.
"""

__version__ = "0.1.0"

from .codec import CertificateRecord, parse_certificate, serialize_certificate, try_parse_certificate
from .exceptions import (
    CeppError,
    CertificateParseError,
    ConfigurationError,
    SigningError,
    UnknownIssuerError,
    UnsupportedAlgorithmError,
)
from .service import (
    CertificationService,
    SignedCertificate,
    VerificationOutcome,
    VerificationResult,
    sign_new_certificate,
    verify_incoming,
)
from .signing import AlgorithmRegistry, ECDSAAlgorithm, SignatureAlgorithm, default_registry
from .truststore import CAKeyEntry, CAKeystore, TrustedIssuer, TrustStore

__all__ = [
    "AlgorithmRegistry",
    "CAKeyEntry",
    "CAKeystore",
    "CeppError",
    "CertificateParseError",
    "CertificateRecord",
    "CertificationService",
    "ConfigurationError",
    "ECDSAAlgorithm",
    "SignatureAlgorithm",
    "SignedCertificate",
    "SigningError",
    "TrustStore",
    "TrustedIssuer",
    "UnknownIssuerError",
    "UnsupportedAlgorithmError",
    "VerificationOutcome",
    "VerificationResult",
    "default_registry",
    "parse_certificate",
    "serialize_certificate",
    "sign_new_certificate",
    "try_parse_certificate",
    "verify_incoming",
]
