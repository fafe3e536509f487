"""
Custom exceptions for the CEPP certificate engine.
"""

from __future__ import annotations


class CeppError(Exception):
    """Base exception for all CEPP-related errors."""

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class CertificateParseError(CeppError):
    """Raised when a CEPP-Data header is not a well-formed certificate record."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "MALFORMED")


class UnsupportedAlgorithmError(CeppError):
    """Raised when an algorithm id has no entry in the signature registry."""

    def __init__(self, algorithm_id: str) -> None:
        super().__init__(f"Unsupported signature algorithm: {algorithm_id!r}", "UNSUPPORTED_ALGORITHM")
        self.algorithm_id = algorithm_id


class UnknownIssuerError(CeppError):
    """Raised when an issuer id is missing from the CA keystore or trust store."""

    def __init__(self, issuer_id: str) -> None:
        super().__init__(f"Unknown certificate issuer: {issuer_id!r}", "UNKNOWN_ISSUER")
        self.issuer_id = issuer_id


class SigningError(CeppError):
    """Raised when a signature cannot be produced from the issuer's key material."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Certificate signing failed: {reason}", "SIGNING_FAILED")


class CryptoFault(CeppError):
    """Fault raised by an underlying primitive while verifying.

    Never leaves the signature engine: verification converts it to ``False``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason, "CRYPTO_FAULT")


class ConfigurationError(CeppError):
    """Raised for trust store, keystore or service configuration errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "CONFIGURATION")
