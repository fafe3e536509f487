"""
Signature engine for CEPP certificate records.

Algorithms are strategies registered in an :class:`AlgorithmRegistry` under
the id carried in the record's ``a`` field. Verification is total: any fault
raised by the underlying primitive becomes a negative result.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Protocol

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from .exceptions import CryptoFault, SigningError, UnsupportedAlgorithmError

logger = logging.getLogger(__name__)


class PublicKeyParameters(Protocol):
    curve_name: str
    public_key_hex: str


class PrivateKeyParameters(Protocol):
    curve_name: str
    private_key_hex: str


class SignatureAlgorithm(ABC):
    """A sign/verify capability keyed by algorithm id."""

    algorithm_id: str

    @abstractmethod
    def sign(self, key: PrivateKeyParameters, message: bytes) -> str:
        """Sign ``message`` and return the encoded signature string.

        Raises:
            SigningError: If the key material cannot be used
        """

    @abstractmethod
    def verify(self, key: PublicKeyParameters, message: bytes, signature: str) -> bool:
        """Return True only if ``signature`` is valid for ``message``. Never raises."""


_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "secp256k1": ec.SECP256K1,
    "secp256r1": ec.SECP256R1,
    "prime256v1": ec.SECP256R1,
    "p256": ec.SECP256R1,
    "p-256": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "p384": ec.SECP384R1,
    "p-384": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
    "p521": ec.SECP521R1,
    "p-521": ec.SECP521R1,
}


def curve_for_name(curve_name: str) -> ec.EllipticCurve:
    """Return the curve object for a named curve.

    Raises:
        ValueError: If the curve is not supported
    """
    try:
        return _CURVES[curve_name.strip().lower()]()
    except (KeyError, AttributeError) as e:
        msg = f"Unsupported elliptic curve: {curve_name!r}"
        raise ValueError(msg) from e


class ECDSAAlgorithm(SignatureAlgorithm):
    """ECDSA over a named curve with SHA-256 and DER-encoded hex signatures.

    Private keys are hex-encoded scalars and public keys hex-encoded SEC1
    points, as distributed in CA keystores and trust stores.
    """

    algorithm_id = "ecdsa"

    def __init__(self, hash_algorithm: hashes.HashAlgorithm | None = None) -> None:
        self._hash_algorithm = hash_algorithm or hashes.SHA256()

    def _load_private_key(self, key: PrivateKeyParameters) -> ec.EllipticCurvePrivateKey:
        curve = curve_for_name(key.curve_name)
        return ec.derive_private_key(int(key.private_key_hex, 16), curve)

    def _load_public_key(self, key: PublicKeyParameters) -> ec.EllipticCurvePublicKey:
        curve = curve_for_name(key.curve_name)
        return ec.EllipticCurvePublicKey.from_encoded_point(curve, bytes.fromhex(key.public_key_hex))

    def sign(self, key: PrivateKeyParameters, message: bytes) -> str:
        try:
            private_key = self._load_private_key(key)
        except (ValueError, TypeError, AttributeError, UnsupportedAlgorithm) as e:
            msg = f"invalid ECDSA private key: {e}"
            raise SigningError(msg) from e
        return private_key.sign(message, ec.ECDSA(self._hash_algorithm)).hex()

    def verify(self, key: PublicKeyParameters, message: bytes, signature: str) -> bool:
        try:
            self._verify_or_raise(key, message, signature)
        except CryptoFault as e:
            logger.debug("ECDSA verification failed: %s", e.message)
            return False
        return True

    def _verify_or_raise(self, key: PublicKeyParameters, message: bytes, signature: str) -> None:
        if not isinstance(signature, str) or not isinstance(message, bytes):
            msg = "signature must be a hex string over a byte message"
            raise CryptoFault(msg)
        try:
            public_key = self._load_public_key(key)
        except (ValueError, TypeError, AttributeError, UnsupportedAlgorithm) as e:
            msg = f"invalid ECDSA public key: {e}"
            raise CryptoFault(msg) from e
        try:
            signature_bytes = bytes.fromhex(signature)
        except ValueError as e:
            msg = "signature is not valid hex"
            raise CryptoFault(msg) from e
        try:
            public_key.verify(signature_bytes, message, ec.ECDSA(self._hash_algorithm))
        except InvalidSignature as e:
            msg = "signature does not match"
            raise CryptoFault(msg) from e
        except (ValueError, TypeError) as e:
            msg = f"malformed signature: {e}"
            raise CryptoFault(msg) from e


class AlgorithmRegistry:
    """Registry mapping algorithm id to a :class:`SignatureAlgorithm`."""

    def __init__(self, algorithms: Iterable[SignatureAlgorithm] = ()) -> None:
        self._algorithms: dict[str, SignatureAlgorithm] = {}
        for algorithm in algorithms:
            self.register(algorithm)

    def register(self, algorithm: SignatureAlgorithm) -> None:
        """Register an algorithm, replacing any entry with the same id."""
        if algorithm.algorithm_id in self._algorithms:
            logger.warning("Replacing signature algorithm %r", algorithm.algorithm_id)
        self._algorithms[algorithm.algorithm_id] = algorithm

    def get(self, algorithm_id: str) -> SignatureAlgorithm:
        try:
            return self._algorithms[algorithm_id]
        except (KeyError, TypeError) as e:
            raise UnsupportedAlgorithmError(str(algorithm_id)) from e

    def __contains__(self, algorithm_id: object) -> bool:
        return isinstance(algorithm_id, str) and algorithm_id in self._algorithms

    def algorithm_ids(self) -> list[str]:
        return sorted(self._algorithms)

    def sign(self, algorithm_id: str, key: PrivateKeyParameters, message: bytes) -> str:
        """
        Sign a message with the named algorithm.

        Raises:
            UnsupportedAlgorithmError: If the algorithm id is not registered
            SigningError: If the key material cannot be used
        """
        return self.get(algorithm_id).sign(key, message)

    def verify(
        self, algorithm_id: str, key: PublicKeyParameters, message: bytes, signature: str
    ) -> bool:
        """Verify a signature; unknown algorithms fail closed."""
        if algorithm_id not in self:
            logger.info("Refusing signature with unknown algorithm %r", algorithm_id)
            return False
        return self._algorithms[algorithm_id].verify(key, message, signature)


def default_registry() -> AlgorithmRegistry:
    """Return a new registry holding the built-in algorithms."""
    return AlgorithmRegistry([ECDSAAlgorithm()])
