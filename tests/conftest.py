"""Pytest configuration and shared fixtures for SD-JWT tests."""

import time
from typing import Any

import pytest

from sd_jwt_kit import (
    KeyJwtVerifier,
    SeededSaltGenerator,
    cnf_claim,
    jwk_generate,
    jwk_signer,
    jwk_verifier,
    sd_jwt,
    sd_object,
)

ISSUER_URL = "https://example.com"


@pytest.fixture(scope="session")
def issuer_jwk() -> dict[str, Any]:
    """Generate an ES256 issuer key for testing."""
    return jwk_generate("P-256", kid="signing-key-01")


@pytest.fixture(scope="session")
def holder_jwk() -> dict[str, Any]:
    """Generate an ES256 holder key for testing."""
    return jwk_generate("P-256")


@pytest.fixture
def issuer_signer(issuer_jwk):
    return jwk_signer(issuer_jwk)


@pytest.fixture
def issuer_jwt_verifier(issuer_jwk) -> KeyJwtVerifier:
    return KeyJwtVerifier(jwk_verifier(issuer_jwk))


@pytest.fixture
def holder_signer(holder_jwk):
    return jwk_signer(holder_jwk)


@pytest.fixture
def seeded_salts() -> SeededSaltGenerator:
    """Deterministic salts for reproducible disclosures."""
    return SeededSaltGenerator(seed=42)


@pytest.fixture
def now() -> int:
    return int(time.time())


@pytest.fixture
def address_spec():
    """Plain registered claims and a structured address with four hidden subclaims."""
    return (
        sd_jwt()
        .sub("6c5c0a49-b589-431d-bae7-219122a9ec2c")
        .iss("https://example.com/issuer")
        .iat(1516239022)
        .exp(1735689661)
        .structured(
            "address",
            sd_object()
            .sd("street_address", "Schulstr. 12")
            .sd("locality", "Schulpforta")
            .sd("region", "Sachsen-Anhalt")
            .sd("country", "DE"),
        )
        .build()
    )


@pytest.fixture
def person_spec(holder_jwk):
    """A holder-bound credential mixing every kind of claim."""
    return (
        sd_jwt()
        .iss(ISSUER_URL)
        .iat(1683000000)
        .cnf(cnf_claim(holder_jwk))
        .sd("given_name", "Erika")
        .sd("family_name", "Mustermann")
        .plain("nationality", "DE")
        .recursive(
            "address",
            sd_object().sd("street_address", "Heidestrasse 17").plain("country", "DE"),
        )
        .build()
    )


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "unit: fast tests of a single module")
    config.addinivalue_line(
        "markers", "integration: end-to-end issuance, presentation and verification"
    )
