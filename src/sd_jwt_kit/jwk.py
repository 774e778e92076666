"""JSON Web Key generation and management.

Supports EC P-256 (ES256) and OKP Ed25519 (EdDSA) keys as JWK dictionaries.
"""

import hashlib
from typing import Any, Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from . import json_utils
from .jws import EdDSASigner, EdDSAVerifier, ES256Signer, ES256Verifier

# Required members for each key type according to RFC 7638
THUMBPRINT_MEMBERS = {
    "EC": ("crv", "kty", "x", "y"),
    "OKP": ("crv", "kty", "x"),
}


def jwk_generate(crv: str = "P-256", kid: Optional[str] = None) -> dict[str, Any]:
    """Generate a key pair as a private JWK.

    Args:
        crv: "P-256" for ES256 or "Ed25519" for EdDSA
        kid: Optional key identifier

    Returns:
        JWK dictionary containing both private and public key material
    """
    if crv == "P-256":
        private_key = ec.generate_private_key(ec.SECP256R1())
        public_numbers = private_key.public_key().public_numbers()
        jwk = {
            "kty": "EC",
            "crv": "P-256",
            "x": json_utils.b64url_encode(public_numbers.x.to_bytes(32, byteorder="big")),
            "y": json_utils.b64url_encode(public_numbers.y.to_bytes(32, byteorder="big")),
            "d": json_utils.b64url_encode(
                private_key.private_numbers().private_value.to_bytes(32, byteorder="big")
            ),
        }
    elif crv == "Ed25519":
        ed_key = ed25519.Ed25519PrivateKey.generate()
        jwk = {
            "kty": "OKP",
            "crv": "Ed25519",
            "x": json_utils.b64url_encode(
                ed_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
            ),
            "d": json_utils.b64url_encode(
                ed_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
            ),
        }
    else:
        raise ValueError(f"Unsupported curve: {crv}")

    if kid is not None:
        jwk["kid"] = kid
    return jwk


def jwk_public(jwk: dict[str, Any]) -> dict[str, Any]:
    """Strip private key material from a JWK."""
    return {k: v for k, v in jwk.items() if k != "d"}


def jwk_algorithm(jwk: dict[str, Any]) -> str:
    """Infer the JWS algorithm for a key.

    Raises:
        ValueError: If the key type or curve is unsupported
    """
    kty, crv = jwk.get("kty"), jwk.get("crv")
    if kty == "EC" and crv == "P-256":
        return "ES256"
    if kty == "OKP" and crv == "Ed25519":
        return "EdDSA"
    raise ValueError(f"Unsupported key: kty={kty}, crv={crv}")


def jwk_signer(jwk: dict[str, Any]) -> Union[ES256Signer, EdDSASigner]:
    """Create a signer from a private JWK.

    Raises:
        KeyError: If private key component is missing
        ValueError: If key type is not supported
    """
    if "d" not in jwk:
        raise KeyError("Private key component (d) missing from JWK")

    d = json_utils.b64url_decode(jwk["d"])
    if jwk_algorithm(jwk) == "ES256":
        private_key = ec.derive_private_key(int.from_bytes(d, byteorder="big"), ec.SECP256R1())
        return ES256Signer(private_key)
    return EdDSASigner(ed25519.Ed25519PrivateKey.from_private_bytes(d))


def jwk_verifier(jwk: dict[str, Any]) -> Union[ES256Verifier, EdDSAVerifier]:
    """Create a verifier from a public (or private) JWK.

    Raises:
        KeyError: If a required public component is missing
        ValueError: If key type is not supported or the point is invalid
    """
    x = json_utils.b64url_decode(jwk["x"])
    if jwk_algorithm(jwk) == "ES256":
        y = json_utils.b64url_decode(jwk["y"])
        public_numbers = ec.EllipticCurvePublicNumbers(
            int.from_bytes(x, byteorder="big"),
            int.from_bytes(y, byteorder="big"),
            ec.SECP256R1(),
        )
        return ES256Verifier(public_numbers.public_key())
    return EdDSAVerifier(ed25519.Ed25519PublicKey.from_public_bytes(x))


def jwk_thumbprint(jwk: dict[str, Any]) -> str:
    """Compute the RFC 7638 SHA-256 thumbprint of a JWK, base64url-encoded.

    Raises:
        ValueError: If key type is unsupported or required members are missing
    """
    kty = jwk.get("kty")
    if kty not in THUMBPRINT_MEMBERS:
        raise ValueError(f"Unsupported key type: {kty}")

    members = {}
    for name in THUMBPRINT_MEMBERS[kty]:
        if name not in jwk:
            raise ValueError(f"Required member {name} missing from JWK")
        members[name] = jwk[name]

    # Members are already in lexicographic order
    canonical = json_utils.encode(members)
    return json_utils.b64url_encode(hashlib.sha256(canonical).digest())


def cnf_claim(holder_jwk: dict[str, Any]) -> dict[str, Any]:
    """Create a confirmation (cnf) claim binding the holder's public key."""
    return {"jwk": jwk_public(holder_jwk)}
