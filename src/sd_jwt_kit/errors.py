"""Error codes and exception types for sd-jwt-kit.

Every failure the library reports carries exactly one ``ErrorCode``. Internal
steps raise the typed exceptions below; public pipelines capture them into a
``Result`` so callers can reject a token without catching anything.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Verification and issuance error codes."""

    # Parsing
    MALFORMED_SERIALIZATION = "MALFORMED_SERIALIZATION"
    MALFORMED_DISCLOSURE = "MALFORMED_DISCLOSURE"
    # Digests
    UNSUPPORTED_HASH_ALGORITHM = "UNSUPPORTED_HASH_ALGORITHM"
    DISCLOSURE_DIGEST_MISMATCH = "DISCLOSURE_DIGEST_MISMATCH"
    UNUSED_DISCLOSURE = "UNUSED_DISCLOSURE"
    MISSING_REQUIRED_DIGEST = "MISSING_REQUIRED_DIGEST"
    # Signatures
    INVALID_JWT = "INVALID_JWT"
    # Key binding
    KEY_BINDING_POLICY_VIOLATION = "KEY_BINDING_POLICY_VIOLATION"
    SD_HASH_MISMATCH = "SD_HASH_MISMATCH"
    INVALID_KEY_BINDING_SIGNATURE = "INVALID_KEY_BINDING_SIGNATURE"
    # Envelope
    AUDIENCE_MISMATCH = "AUDIENCE_MISMATCH"
    STALE_ISSUED_AT = "STALE_ISSUED_AT"
    # Key source
    UNSUPPORTED_ISSUER_FORMAT = "UNSUPPORTED_ISSUER_FORMAT"
    AMBIGUOUS_KEY = "AMBIGUOUS_KEY"
    KEY_NOT_FOUND = "KEY_NOT_FOUND"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    CANCELLED = "CANCELLED"
    # Issuance
    RESERVED_CLAIM_NAME_USED = "RESERVED_CLAIM_NAME_USED"
    SIGNING_FAILED = "SIGNING_FAILED"


class SdJwtError(Exception):
    """Base class for all SD-JWT failures."""

    code: ErrorCode

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ParsingError(SdJwtError):
    pass


class MalformedSerialization(ParsingError):
    code = ErrorCode.MALFORMED_SERIALIZATION


class MalformedDisclosure(ParsingError):
    code = ErrorCode.MALFORMED_DISCLOSURE


class DigestError(SdJwtError):
    pass


class UnsupportedHashAlgorithm(DigestError):
    code = ErrorCode.UNSUPPORTED_HASH_ALGORITHM


class DisclosureDigestMismatch(DigestError):
    code = ErrorCode.DISCLOSURE_DIGEST_MISMATCH


class UnusedDisclosure(DigestError):
    code = ErrorCode.UNUSED_DISCLOSURE


class MissingRequiredDigest(DigestError):
    code = ErrorCode.MISSING_REQUIRED_DIGEST


class SignatureError(SdJwtError):
    pass


class InvalidJwt(SignatureError):
    code = ErrorCode.INVALID_JWT


class KeyBindingError(SdJwtError):
    pass


class KeyBindingPolicyViolation(KeyBindingError):
    code = ErrorCode.KEY_BINDING_POLICY_VIOLATION


class SdHashMismatch(KeyBindingError):
    code = ErrorCode.SD_HASH_MISMATCH


class InvalidKeyBindingSignature(KeyBindingError):
    code = ErrorCode.INVALID_KEY_BINDING_SIGNATURE


class EnvelopeError(SdJwtError):
    pass


class AudienceMismatch(EnvelopeError):
    code = ErrorCode.AUDIENCE_MISMATCH


class StaleIssuedAt(EnvelopeError):
    code = ErrorCode.STALE_ISSUED_AT


class KeySourceError(SdJwtError):
    pass


class UnsupportedIssuerFormat(KeySourceError):
    code = ErrorCode.UNSUPPORTED_ISSUER_FORMAT


class AmbiguousKey(KeySourceError):
    code = ErrorCode.AMBIGUOUS_KEY


class KeyNotFound(KeySourceError):
    code = ErrorCode.KEY_NOT_FOUND


class NetworkFailure(KeySourceError):
    code = ErrorCode.NETWORK_FAILURE


class Cancelled(KeySourceError):
    code = ErrorCode.CANCELLED


class IssuanceError(SdJwtError):
    pass


class ReservedClaimNameUsed(IssuanceError):
    code = ErrorCode.RESERVED_CLAIM_NAME_USED


class SigningFailed(IssuanceError):
    code = ErrorCode.SIGNING_FAILED


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a public operation: exactly one of ``value`` or ``error``."""

    value: Optional[T] = None
    error: Optional[SdJwtError] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: SdJwtError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def get_or_raise(self) -> T:
        """Return the value, or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
