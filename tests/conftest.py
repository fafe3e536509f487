"""
Test configuration for the CEPP test suite.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from cepp.codec import CertificateRecord
from cepp.truststore import CAKeystore, TrustStore

ISSUER = "RU Certificate Authority"
OTHER_ISSUER = "Other Certificate Authority"
SPAM_CONTACT = "spam@ca.ru.nl"

# Inside the window of the sample record below
NOW = datetime(2025, 1, 4, 12, 30, 15, tzinfo=timezone.utc)


def make_key_pair(curve: ec.EllipticCurve | None = None) -> tuple[str, str]:
    """Return (private scalar hex, uncompressed public point hex)."""
    private_key = ec.generate_private_key(curve or ec.SECP256K1())
    private_hex = format(private_key.private_numbers().private_value, "064x")
    public_hex = private_key.public_key().public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    ).hex()
    return private_hex, public_hex


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def issuer_keys() -> tuple[str, str]:
    return make_key_pair()


@pytest.fixture(scope="session")
def other_issuer_keys() -> tuple[str, str]:
    return make_key_pair()


@pytest.fixture
def ca_keystore(issuer_keys, other_issuer_keys) -> CAKeystore:
    return CAKeystore.from_mapping(
        {
            ISSUER: {"algorithmId": "ecdsa", "curveName": "secp256k1", "privateKeyHex": issuer_keys[0]},
            OTHER_ISSUER: {"curveName": "secp256k1", "privateKeyHex": other_issuer_keys[0]},
        }
    )


@pytest.fixture
def trust_store(issuer_keys) -> TrustStore:
    return TrustStore.from_mapping(
        {
            ISSUER: {
                "spamContactAddress": SPAM_CONTACT,
                "algorithmId": "ecdsa",
                "curveName": "secp256k1",
                "publicKeyHex": issuer_keys[1],
            }
        }
    )


@pytest.fixture
def record() -> CertificateRecord:
    return CertificateRecord(
        v="1",
        s="123",
        a="ecdsa",
        i=ISSUER,
        nb="250101000000Z",
        na="250108000000Z",
        d="example.com",
        l="2",
    )
