import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from cepp.exceptions import SigningError, UnsupportedAlgorithmError
from cepp.signing import (
    AlgorithmRegistry,
    ECDSAAlgorithm,
    SignatureAlgorithm,
    curve_for_name,
    default_registry,
)
from cepp.truststore import CAKeyEntry, TrustedIssuer
from conftest import make_key_pair

MESSAGE = b"v=1; s=123; a=ecdsa; i=CA; nb=250101000000Z; na=250108000000Z; d=example.com; l=2"


@pytest.fixture
def keys(issuer_keys):
    private_hex, public_hex = issuer_keys
    return (
        CAKeyEntry(curve_name="secp256k1", private_key_hex=private_hex),
        TrustedIssuer(curve_name="secp256k1", public_key_hex=public_hex),
    )


def _flip(text: str, index: int = 10) -> str:
    replacement = "0" if text[index] != "0" else "1"
    return text[:index] + replacement + text[index + 1 :]


def test_sign_and_verify(keys):
    private, public = keys
    algorithm = ECDSAAlgorithm()
    signature = algorithm.sign(private, MESSAGE)
    assert algorithm.verify(public, MESSAGE, signature)


def test_signature_is_der_hex(keys):
    private, _ = keys
    signature = ECDSAAlgorithm().sign(private, MESSAGE)
    assert signature == signature.lower()
    r, s = decode_dss_signature(bytes.fromhex(signature))
    assert r > 0 and s > 0


def test_signature_uses_sha256_over_message(keys, issuer_keys):
    private, _ = keys
    signature = ECDSAAlgorithm().sign(private, MESSAGE)
    public_key = ec.EllipticCurvePublicKey.from_encoded_point(
        ec.SECP256K1(), bytes.fromhex(issuer_keys[1])
    )
    public_key.verify(bytes.fromhex(signature), MESSAGE, ec.ECDSA(hashes.SHA256()))


def test_verify_rejects_tampered_message(keys):
    private, public = keys
    algorithm = ECDSAAlgorithm()
    signature = algorithm.sign(private, MESSAGE)
    assert not algorithm.verify(public, MESSAGE.replace(b"s=123", b"s=124"), signature)


def test_verify_rejects_tampered_signature(keys):
    private, public = keys
    algorithm = ECDSAAlgorithm()
    signature = algorithm.sign(private, MESSAGE)
    assert not algorithm.verify(public, MESSAGE, _flip(signature, len(signature) - 4))


def test_verify_rejects_other_issuer_key(keys, other_issuer_keys):
    private, _ = keys
    other_public = TrustedIssuer(public_key_hex=other_issuer_keys[1])
    signature = ECDSAAlgorithm().sign(private, MESSAGE)
    assert not ECDSAAlgorithm().verify(other_public, MESSAGE, signature)


@pytest.mark.parametrize(
    "signature",
    ["", "zz", "abc", "00" * 70, "3006020101020101", "30" * 3],
)
def test_verify_is_total_over_bad_signatures(keys, signature):
    _, public = keys
    assert ECDSAAlgorithm().verify(public, MESSAGE, signature) is False


@pytest.mark.parametrize("signature", [None, 12, b"3044"])
def test_verify_rejects_non_string_signatures(keys, signature):
    _, public = keys
    assert ECDSAAlgorithm().verify(public, MESSAGE, signature) is False


@pytest.mark.parametrize(
    ("curve_name", "public_key_hex"),
    [
        ("secp256k1", "04" + "00" * 64),
        ("secp256k1", "05abcdef"),
        ("secp256k1", "04"),
        ("brainpool-unknown", "04" + "11" * 64),
    ],
)
def test_verify_is_total_over_bad_keys(keys, curve_name, public_key_hex):
    private, _ = keys
    signature = ECDSAAlgorithm().sign(private, MESSAGE)
    public = TrustedIssuer(curve_name=curve_name, public_key_hex=public_key_hex)
    assert ECDSAAlgorithm().verify(public, MESSAGE, signature) is False


def test_verify_rejects_curve_mismatch(keys):
    private, _ = keys
    signature = ECDSAAlgorithm().sign(private, MESSAGE)
    _, p256_public = make_key_pair(ec.SECP256R1())
    # A P-256 point read as secp256k1 is not on the curve
    public = TrustedIssuer(curve_name="secp256k1", public_key_hex=p256_public)
    assert ECDSAAlgorithm().verify(public, MESSAGE, signature) is False


def test_other_curves_are_supported():
    private_hex, public_hex = make_key_pair(ec.SECP384R1())
    algorithm = ECDSAAlgorithm()
    signature = algorithm.sign(CAKeyEntry(curve_name="p384", private_key_hex=private_hex), MESSAGE)
    assert algorithm.verify(
        TrustedIssuer(curve_name="secp384r1", public_key_hex=public_hex), MESSAGE, signature
    )


def test_compressed_public_key(issuer_keys):
    private_hex, _ = issuer_keys
    private_key = ec.derive_private_key(int(private_hex, 16), ec.SECP256K1())
    compressed = private_key.public_key().public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
    ).hex()
    algorithm = ECDSAAlgorithm()
    signature = algorithm.sign(CAKeyEntry(private_key_hex=private_hex), MESSAGE)
    assert algorithm.verify(TrustedIssuer(public_key_hex=compressed), MESSAGE, signature)


def test_sign_with_bad_private_key_raises():
    with pytest.raises(SigningError):
        ECDSAAlgorithm().sign(CAKeyEntry(private_key_hex="00"), MESSAGE)
    with pytest.raises(SigningError):
        ECDSAAlgorithm().sign(CAKeyEntry(curve_name="nope", private_key_hex="01"), MESSAGE)


def test_curve_for_name():
    assert isinstance(curve_for_name("secp256k1"), ec.SECP256K1)
    assert isinstance(curve_for_name("P256"), ec.SECP256R1)
    with pytest.raises(ValueError, match="Unsupported elliptic curve"):
        curve_for_name("curve25519")


class _ReversingAlgorithm(SignatureAlgorithm):
    algorithm_id = "reverse"

    def sign(self, key, message):
        return message[::-1].hex()

    def verify(self, key, message, signature):
        return signature == message[::-1].hex()


def test_registry_dispatch(keys):
    private, public = keys
    registry = default_registry()
    assert "ecdsa" in registry
    signature = registry.sign("ecdsa", private, MESSAGE)
    assert registry.verify("ecdsa", public, MESSAGE, signature)


def test_registry_unknown_algorithm(keys):
    private, public = keys
    registry = default_registry()
    with pytest.raises(UnsupportedAlgorithmError):
        registry.sign("rsa", private, MESSAGE)
    assert registry.verify("rsa", public, MESSAGE, "00") is False
    assert None not in registry


def test_registry_accepts_new_algorithms(keys):
    private, public = keys
    registry = AlgorithmRegistry([ECDSAAlgorithm(), _ReversingAlgorithm()])
    assert registry.algorithm_ids() == ["ecdsa", "reverse"]
    signature = registry.sign("reverse", private, MESSAGE)
    assert registry.verify("reverse", public, MESSAGE, signature)
    assert not registry.verify("ecdsa", public, MESSAGE, signature)


def test_default_registries_are_independent():
    first = default_registry()
    first.register(_ReversingAlgorithm())
    assert "reverse" not in default_registry()
