"""JWS compact signing with pluggable signers and verifiers.

This module provides generic JWS compact serialization sign and verify
functions that accept signer and verifier objects, allowing keys to be
managed externally. No signature algorithm is implemented here beyond the
``cryptography``-backed ES256 and EdDSA reference signers.
"""

from typing import Any, Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, utils

from . import json_utils


class Signer(Protocol):
    """Protocol for JWS signers."""

    def sign(self, message: bytes) -> bytes:
        """Sign a message and return the signature.

        Args:
            message: The JWS signing input

        Returns:
            The signature bytes
        """

    @property
    def algorithm(self) -> str:
        """Get the JWS algorithm identifier.

        Returns:
            JWS algorithm identifier (e.g., "ES256")
        """


class Verifier(Protocol):
    """Protocol for JWS verifiers."""

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature on a message.

        Args:
            message: The JWS signing input
            signature: The signature to verify

        Returns:
            True if signature is valid, False otherwise
        """


class JwtSignatureVerifier(Protocol):
    """Protocol for verifying a whole compact JWT."""

    def verify(self, jwt: str) -> tuple[bool, Optional[dict[str, Any]]]:
        """Verify a compact JWT.

        Returns:
            Tuple of (is_valid, payload if verified successfully)
        """


def decode_unverified(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Decode header and payload of a compact JWT without checking the signature.

    Args:
        token: Compact JWS

    Returns:
        Tuple of (header, payload)

    Raises:
        ValueError: If the token is not a three-part compact JWS with JSON
            object header and payload
    """
    parts = token.split(".")
    if len(parts) != 3 or not all(parts[:2]):
        raise ValueError("Not a compact JWS")
    header = json_utils.b64url_decode_json(parts[0])
    payload = json_utils.b64url_decode_json(parts[1])
    if not json_utils.is_object(header) or not json_utils.is_object(payload):
        raise ValueError("JWS header and payload must be JSON objects")
    return header, payload


def jws_sign(
    payload: dict[str, Any],
    signer: Signer,
    header: Optional[dict[str, Any]] = None,
) -> str:
    """Create a compact JWS.

    Args:
        payload: The claims to sign
        signer: A signer object that implements the sign method
        header: Additional header parameters (e.g. typ, kid)

    Returns:
        Compact serialization ``header.payload.signature``
    """
    jose_header = dict(header or {})
    jose_header["alg"] = signer.algorithm

    signing_input = (
        json_utils.b64url_encode_json(jose_header) + "." + json_utils.b64url_encode_json(payload)
    )
    signature = signer.sign(signing_input.encode("ascii"))

    return signing_input + "." + json_utils.b64url_encode(signature)


def jws_verify(token: str, verifier: Verifier) -> tuple[bool, Optional[dict[str, Any]]]:
    """Verify a compact JWS.

    Args:
        token: Compact JWS
        verifier: A verifier object that implements the verify method

    Returns:
        Tuple of (verification_result, payload if verified successfully)
    """
    try:
        _, payload = decode_unverified(token)
        signing_input, _, signature_b64 = token.rpartition(".")
        signature = json_utils.b64url_decode(signature_b64)

        if verifier.verify(signing_input.encode("ascii"), signature):
            return True, payload
        return False, None

    except (ValueError, TypeError, UnicodeError):
        return False, None


class KeyJwtVerifier:
    """Verifies whole JWTs with one key, checking the header ``alg``."""

    def __init__(self, verifier: Verifier, algorithm: Optional[str] = None):
        self.verifier = verifier
        self.algorithm = algorithm or getattr(verifier, "algorithm", None)

    def verify(self, jwt: str) -> tuple[bool, Optional[dict[str, Any]]]:
        try:
            header, _ = decode_unverified(jwt)
        except ValueError:
            return False, None
        if header.get("alg") in (None, "none"):
            return False, None
        if self.algorithm is not None and header["alg"] != self.algorithm:
            return False, None
        return jws_verify(jwt, self.verifier)


class ES256Signer:
    """ECDSA P-256 SHA-256 signer implementation."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        """Initialize ES256 signer with a P-256 private key."""
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise ValueError("ES256 requires a P-256 key")
        self.private_key = private_key

    def sign(self, message: bytes) -> bytes:
        """Sign a message with ES256."""
        signature_der = self.private_key.sign(message, ec.ECDSA(hashes.SHA256()))

        # Convert DER to raw (r||s) format for JWS
        r, s = utils.decode_dss_signature(signature_der)
        return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")

    @property
    def algorithm(self) -> str:
        return "ES256"


class ES256Verifier:
    """ECDSA P-256 SHA-256 verifier implementation."""

    def __init__(self, public_key: ec.EllipticCurvePublicKey):
        self.public_key = public_key

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Verify a raw (r||s) signature with ES256."""
        try:
            if len(signature) != 64:
                return False

            r = int.from_bytes(signature[:32], byteorder="big")
            s = int.from_bytes(signature[32:], byteorder="big")
            signature_der = utils.encode_dss_signature(r, s)

            self.public_key.verify(signature_der, message, ec.ECDSA(hashes.SHA256()))
            return True

        except InvalidSignature:
            return False
        except (ValueError, TypeError):
            return False

    @property
    def algorithm(self) -> str:
        return "ES256"


class EdDSASigner:
    """Ed25519 signer implementation."""

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        self.private_key = private_key

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)

    @property
    def algorithm(self) -> str:
        return "EdDSA"


class EdDSAVerifier:
    """Ed25519 verifier implementation."""

    def __init__(self, public_key: ed25519.Ed25519PublicKey):
        self.public_key = public_key

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            self.public_key.verify(signature, message)
            return True
        except InvalidSignature:
            return False
        except (ValueError, TypeError):
            return False

    @property
    def algorithm(self) -> str:
        return "EdDSA"
