"""Disclosure encoding, salting and digest computation for SD-JWT."""

import hashlib
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from . import json_utils
from .config import settings
from .errors import MalformedDisclosure, UnsupportedHashAlgorithm


class HashAlgorithm(str, Enum):
    """Hash algorithms registered for ``_sd_alg`` (IANA Named Information)."""

    SHA_256 = "sha-256"
    SHA_384 = "sha-384"
    SHA_512 = "sha-512"
    SHA3_256 = "sha3-256"
    SHA3_384 = "sha3-384"
    SHA3_512 = "sha3-512"

    @classmethod
    def from_name(cls, name: Any) -> "HashAlgorithm":
        """Look up an algorithm by its ``_sd_alg`` name.

        Raises:
            UnsupportedHashAlgorithm: If the name is not recognized
        """
        for alg in cls:
            if alg.value == name:
                return alg
        raise UnsupportedHashAlgorithm(f"Unsupported hash algorithm: {name}", alg=name)

    def hash(self, data: bytes) -> bytes:
        return hashlib.new(_HASHLIB_NAMES[self], data).digest()


_HASHLIB_NAMES = {
    HashAlgorithm.SHA_256: "sha256",
    HashAlgorithm.SHA_384: "sha384",
    HashAlgorithm.SHA_512: "sha512",
    HashAlgorithm.SHA3_256: "sha3_256",
    HashAlgorithm.SHA3_384: "sha3_384",
    HashAlgorithm.SHA3_512: "sha3_512",
}


class SaltGenerator(Protocol):
    """Protocol for generating cryptographic salts for disclosures."""

    def generate_salt(self, length: int = 16) -> bytes:
        """Generate a cryptographic salt.

        Args:
            length: Salt length in bytes (default 16 for 128 bits)

        Returns:
            Random salt bytes
        """


class SecureSaltGenerator:
    """Cryptographically secure salt generator using secrets module."""

    def generate_salt(self, length: int = 16) -> bytes:
        return secrets.token_bytes(length)


class SeededSaltGenerator:
    """Deterministic salt generator for testing purposes.

    WARNING: This generator is NOT cryptographically secure and should
    only be used for testing and reproducible examples.
    """

    def __init__(self, seed: int = 42):
        import random

        self._random = random.Random(seed)

    def generate_salt(self, length: int = 16) -> bytes:
        return bytes(self._random.getrandbits(8) for _ in range(length))


# Default secure salt generator instance
_default_salt_generator = SecureSaltGenerator()


def generate_salt(salt_generator: Optional[SaltGenerator] = None) -> str:
    """Generate a base64url-encoded salt of at least 128 bits.

    Args:
        salt_generator: Optional custom salt generator (uses secure default if None)

    Returns:
        base64url salt text
    """
    if salt_generator is None:
        salt_generator = _default_salt_generator
    return json_utils.b64url_encode(salt_generator.generate_salt(max(16, settings.salt_bytes)))


def digest_of(wire_form: str, hash_alg: HashAlgorithm) -> str:
    """Hash the wire form of a disclosure (or a presentation) to base64url text."""
    return json_utils.b64url_encode(hash_alg.hash(wire_form.encode("ascii")))


@dataclass(frozen=True)
class Disclosure:
    """An openable (salt, claim name?, claim value) triple.

    Equality and hashing use the wire form only: two disclosures are the same
    iff their encoded strings are identical.
    """

    value: str
    salt: str = field(compare=False)
    claim_name: Optional[str] = field(compare=False)
    claim_value: Any = field(compare=False)

    @classmethod
    def create(cls, salt: str, claim_name: Optional[str], claim_value: Any) -> "Disclosure":
        array = [salt, claim_value] if claim_name is None else [salt, claim_name, claim_value]
        return cls(json_utils.b64url_encode_json(array), salt, claim_name, claim_value)

    @classmethod
    def decode(cls, wire_form: str) -> "Disclosure":
        """Decode a disclosure from its wire form.

        Raises:
            MalformedDisclosure: If the text is not base64url JSON of shape
                ``[salt, value]`` or ``[salt, name, value]``
        """
        try:
            array = json_utils.b64url_decode_json(wire_form)
        except (ValueError, UnicodeError) as e:
            raise MalformedDisclosure(f"Disclosure is not base64url JSON: {e}") from e

        if not isinstance(array, list) or len(array) not in (2, 3):
            raise MalformedDisclosure("Disclosure must be a JSON array of 2 or 3 elements")
        if not isinstance(array[0], str):
            raise MalformedDisclosure("Disclosure salt must be a string")

        if len(array) == 2:
            return cls(wire_form, array[0], None, array[1])

        claim_name = array[1]
        if not isinstance(claim_name, str):
            raise MalformedDisclosure("Disclosure claim name must be a string")
        if claim_name in json_utils.RESERVED_CLAIM_NAMES:
            raise MalformedDisclosure(f"Disclosure uses reserved claim name {claim_name!r}")
        return cls(wire_form, array[0], claim_name, array[2])

    @property
    def is_array_element(self) -> bool:
        return self.claim_name is None

    def digest(self, hash_alg: HashAlgorithm) -> str:
        return digest_of(self.value, hash_alg)


def encode_disclosure(
    salt: str,
    claim_name: Optional[str],
    claim_value: Any,
    hash_alg: HashAlgorithm,
) -> tuple[str, str]:
    """Encode a disclosure and compute its digest.

    Returns:
        Tuple of (wire_form, digest)
    """
    disclosure = Disclosure.create(salt, claim_name, claim_value)
    return disclosure.value, disclosure.digest(hash_alg)


def decoy_digest(hash_alg: HashAlgorithm, salt_generator: Optional[SaltGenerator] = None) -> str:
    """Create a digest over a random, disclosure-shaped string that is never disclosed."""
    salt = generate_salt(salt_generator)
    filler = generate_salt(salt_generator)
    _, digest = encode_disclosure(salt, filler, filler, hash_alg)
    return digest
