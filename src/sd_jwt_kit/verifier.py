"""SD-JWT verification.

Each pipeline moves strictly forward through::

    UNPARSED -> PARSED -> SIGNATURE_VERIFIED -> DIGESTS_VERIFIED
             -> [KEY_BINDING_VERIFIED] -> VERIFIED

and stops at the first violation. Public entry points return a ``Result``;
nothing is retried and the values under verification are never mutated.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

from . import json_utils
from .claims import recreate_claims
from .config import settings
from .digest import Disclosure, HashAlgorithm
from .errors import (
    AudienceMismatch,
    DisclosureDigestMismatch,
    InvalidJwt,
    InvalidKeyBindingSignature,
    KeyBindingPolicyViolation,
    MalformedSerialization,
    MissingRequiredDigest,
    Result,
    SdHashMismatch,
    SdJwtError,
    StaleIssuedAt,
    UnusedDisclosure,
)
from .jwk import jwk_verifier
from .jws import JwtSignatureVerifier, KeyJwtVerifier, decode_unverified
from .key_binding import KB_JWT_TYPE, sd_hash
from .serialization import SEPARATOR, Issuance, Presentation, hash_algorithm_of, parse

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class VerificationState(str, Enum):
    UNPARSED = "unparsed"
    PARSED = "parsed"
    SIGNATURE_VERIFIED = "signature_verified"
    DIGESTS_VERIFIED = "digests_verified"
    KEY_BINDING_VERIFIED = "key_binding_verified"
    VERIFIED = "verified"


@dataclass(frozen=True)
class VerifiedSdJwt:
    """A successfully verified SD-JWT and the claims that were checked."""

    sd_jwt: Union[Issuance, Presentation]
    claims: dict[str, Any]
    kb_claims: Optional[dict[str, Any]] = None
    envelope_claims: Optional[dict[str, Any]] = None

    def recreate_claims(self) -> dict[str, Any]:
        return recreate_claims(self.claims, self.sd_jwt.disclosures)


def _transition(state: VerificationState) -> None:
    logger.debug("SD-JWT verification reached %s", state.value)


def _capture(operation: Callable[[], T]) -> Result[T]:
    try:
        return Result.ok(operation())
    except SdJwtError as e:
        logger.warning("SD-JWT rejected: %s (%s)", e.code.value, e.message)
        return Result.fail(e)


def _verify_jwt(jwt_verifier: JwtSignatureVerifier, jwt: str) -> dict[str, Any]:
    is_valid, claims = jwt_verifier.verify(jwt)
    if not is_valid or claims is None:
        raise InvalidJwt("Issuer-signed JWT signature verification failed")
    _transition(VerificationState.SIGNATURE_VERIFIED)
    return claims


def verify_disclosures(
    claims: dict[str, Any], disclosures: Iterable[Disclosure], hash_alg: HashAlgorithm
) -> None:
    """Cross-check disclosures against the digests of a verified payload.

    Every disclosure must be referenced exactly once; digests without a
    disclosure are allowed (hidden claims and decoys).

    Raises:
        DisclosureDigestMismatch: A digest or disclosure is duplicated, a
            disclosure is of the wrong kind for its slot, or it would
            overwrite an existing claim
        MissingRequiredDigest: An ``_sd`` array or ``...`` marker does not
            carry digest strings
        UnusedDisclosure: A disclosure is not referenced by any digest
        MalformedSerialization: The claims nest deeper than
            ``MAX_NESTING_DEPTH`` once disclosures are opened
    """
    disclosures = list(disclosures)
    by_digest: dict[str, Disclosure] = {}
    for disclosure in disclosures:
        digest = disclosure.digest(hash_alg)
        if digest in by_digest:
            raise DisclosureDigestMismatch("Disclosure presented more than once", digest=digest)
        by_digest[digest] = disclosure

    seen: set[str] = set()
    used: set[Disclosure] = set()

    def _open(digest: Any) -> Optional[Disclosure]:
        if not isinstance(digest, str):
            raise MissingRequiredDigest("Digest slot does not hold a digest string")
        if digest in seen:
            raise DisclosureDigestMismatch("Digest appears more than once", digest=digest)
        seen.add(digest)
        disclosure = by_digest.get(digest)
        if disclosure is not None:
            used.add(disclosure)
        return disclosure

    def _walk(value: Any, depth: int) -> None:
        if isinstance(value, (dict, list)) and depth > json_utils.MAX_NESTING_DEPTH:
            raise MalformedSerialization("Disclosed claims nest too deeply")
        if isinstance(value, dict):
            _walk_object(value, depth)
        elif isinstance(value, list):
            _walk_array(value, depth)

    def _walk_object(obj: dict[str, Any], depth: int) -> None:
        if json_utils.ARRAY_DIGEST_KEY in obj:
            raise MissingRequiredDigest("'...' is only allowed as an array element digest")

        names = set(obj)
        digests = obj.get(json_utils.SD_CLAIM, [])
        if not isinstance(digests, list):
            raise MissingRequiredDigest("_sd must be an array of digests")

        for digest in digests:
            disclosure = _open(digest)
            if disclosure is None:
                continue
            if disclosure.claim_name is None:
                raise DisclosureDigestMismatch("Array element disclosure referenced from _sd")
            if disclosure.claim_name in names:
                raise DisclosureDigestMismatch(
                    f"Disclosed claim {disclosure.claim_name!r} already present",
                    claim=disclosure.claim_name,
                )
            names.add(disclosure.claim_name)
            _walk(disclosure.claim_value, depth + 1)

        for name, child in obj.items():
            if name != json_utils.SD_CLAIM:
                _walk(child, depth + 1)

    def _walk_array(array: list[Any], depth: int) -> None:
        for element in array:
            if isinstance(element, dict) and json_utils.ARRAY_DIGEST_KEY in element:
                if len(element) != 1:
                    raise MissingRequiredDigest("Array element digest must be the only key")
                disclosure = _open(element[json_utils.ARRAY_DIGEST_KEY])
                if disclosure is None:
                    continue
                if disclosure.claim_name is not None:
                    raise DisclosureDigestMismatch("Object claim disclosure referenced as array element")
                _walk(disclosure.claim_value, depth + 1)
            else:
                _walk(element, depth + 1)

    _walk(claims, 1)

    unused = [d for d in disclosures if d not in used]
    if unused:
        raise UnusedDisclosure(f"{len(unused)} disclosure(s) not referenced by any digest")
    _transition(VerificationState.DIGESTS_VERIFIED)


class KeyBindingVerifier:
    """Policy deciding whether a KB-JWT must, may or must not be present.

    When a KB-JWT is present its signature is checked with the holder key
    (by default the ``cnf.jwk`` of the verified SD-JWT) and its ``sd_hash``
    must match the presented text.
    A missing or unusable ``cnf.jwk`` fails the signature check.
    """

    def __init__(
        self,
        presence: Callable[[Optional[str]], bool],
        holder_key_verifier: Optional[JwtSignatureVerifier] = None,
        expected_audience: Optional[str] = None,
        expected_nonce: Optional[str] = None,
        clock: Optional[Clock] = None,
        iat_offset: Optional[float] = None,
    ):
        self.presence = presence
        self.holder_key_verifier = holder_key_verifier
        self.expected_audience = expected_audience
        self.expected_nonce = expected_nonce
        self.clock = clock
        self.iat_offset = iat_offset

    @classmethod
    def must_not_be_present(cls) -> "KeyBindingVerifier":
        return cls(lambda kb_jwt: kb_jwt is None)

    @classmethod
    def must_be_present(
        cls,
        holder_key_verifier: Optional[JwtSignatureVerifier] = None,
        expected_audience: Optional[str] = None,
        expected_nonce: Optional[str] = None,
        clock: Optional[Clock] = None,
        iat_offset: Optional[float] = None,
    ) -> "KeyBindingVerifier":
        return cls(
            lambda kb_jwt: kb_jwt is not None,
            holder_key_verifier,
            expected_audience,
            expected_nonce,
            clock,
            iat_offset,
        )

    @classmethod
    def custom(
        cls,
        predicate: Callable[[Optional[str]], bool],
        holder_key_verifier: Optional[JwtSignatureVerifier] = None,
    ) -> "KeyBindingVerifier":
        return cls(predicate, holder_key_verifier)

    def _holder_verifier(self, sd_jwt_claims: dict[str, Any]) -> JwtSignatureVerifier:
        if self.holder_key_verifier is not None:
            return self.holder_key_verifier
        cnf = sd_jwt_claims.get("cnf")
        if not isinstance(cnf, dict) or not isinstance(cnf.get("jwk"), dict):
            raise InvalidKeyBindingSignature("SD-JWT has no cnf.jwk to verify key binding")
        try:
            return KeyJwtVerifier(jwk_verifier(cnf["jwk"]))
        except (KeyError, ValueError) as e:
            raise InvalidKeyBindingSignature(f"Unusable holder key in cnf: {e}") from e

    def verify(
        self,
        sd_jwt_claims: dict[str, Any],
        presentation: str,
        kb_jwt: Optional[str],
        hash_alg: HashAlgorithm,
    ) -> Optional[dict[str, Any]]:
        """Apply the policy to the KB-JWT segment of a presentation.

        Args:
            sd_jwt_claims: Verified issuer-signed JWT payload
            presentation: Presented text up to and including the last ``~``
            kb_jwt: KB-JWT segment, or None when the text ends with ``~``
            hash_alg: The SD-JWT's ``_sd_alg``

        Returns:
            The verified KB-JWT claims, or None when no KB-JWT was presented
        """
        if not self.presence(kb_jwt):
            raise KeyBindingPolicyViolation(
                "Key binding JWT presence not accepted", present=kb_jwt is not None
            )
        if kb_jwt is None:
            return None

        try:
            header, _ = decode_unverified(kb_jwt)
        except ValueError as e:
            raise InvalidKeyBindingSignature(f"Key binding JWT is malformed: {e}") from e
        if header.get("typ") != KB_JWT_TYPE:
            raise InvalidKeyBindingSignature(f"Key binding JWT typ must be {KB_JWT_TYPE}")

        is_valid, kb_claims = self._holder_verifier(sd_jwt_claims).verify(kb_jwt)
        if not is_valid or kb_claims is None:
            raise InvalidKeyBindingSignature("Key binding JWT signature verification failed")

        if kb_claims.get(json_utils.SD_HASH_CLAIM) != sd_hash(presentation, hash_alg):
            raise SdHashMismatch("sd_hash does not match the presented SD-JWT")

        if self.expected_audience is not None and kb_claims.get("aud") != self.expected_audience:
            raise AudienceMismatch("Key binding JWT audience mismatch", aud=kb_claims.get("aud"))
        if self.expected_nonce is not None and kb_claims.get("nonce") != self.expected_nonce:
            raise KeyBindingPolicyViolation("Key binding JWT nonce mismatch")
        if self.clock is not None:
            check_issued_at(kb_claims.get("iat"), self.clock, self.iat_offset)

        _transition(VerificationState.KEY_BINDING_VERIFIED)
        return kb_claims


def check_issued_at(iat: Any, clock: Clock, iat_offset: Optional[float]) -> None:
    """Require ``iat`` within ``[now - iat_offset, now]``.

    Raises:
        StaleIssuedAt: If ``iat`` is missing, in the future or too old
    """
    offset = settings.iat_offset_seconds if iat_offset is None else iat_offset
    now = clock()
    if isinstance(iat, bool) or not isinstance(iat, (int, float)):
        raise StaleIssuedAt("iat claim missing or not a number")
    if iat > now or iat < now - offset:
        raise StaleIssuedAt("iat outside the accepted window", iat=iat, now=now)


def _verify_issuance(jwt_verifier: JwtSignatureVerifier, text: str) -> VerifiedSdJwt:
    issuance = Issuance.parse(text)
    _transition(VerificationState.PARSED)

    claims = _verify_jwt(jwt_verifier, issuance.jwt)
    verify_disclosures(claims, issuance.disclosures, hash_algorithm_of(claims))

    _transition(VerificationState.VERIFIED)
    return VerifiedSdJwt(issuance, claims)


def _verify_presentation(
    jwt_verifier: JwtSignatureVerifier,
    key_binding_verifier: KeyBindingVerifier,
    text: str,
) -> VerifiedSdJwt:
    jwt, disclosures, kb_jwt = parse(text)
    presentation = Presentation(jwt, tuple(disclosures), kb_jwt)
    _transition(VerificationState.PARSED)

    claims = _verify_jwt(jwt_verifier, jwt)
    hash_alg = hash_algorithm_of(claims)
    verify_disclosures(claims, disclosures, hash_alg)

    covered = text[: text.rindex(SEPARATOR) + 1]
    kb_claims = key_binding_verifier.verify(claims, covered, kb_jwt, hash_alg)

    _transition(VerificationState.VERIFIED)
    return VerifiedSdJwt(presentation, claims, kb_claims)


def _verify_enveloped_presentation(
    sd_jwt_verifier: JwtSignatureVerifier,
    envelope_verifier: JwtSignatureVerifier,
    clock: Clock,
    iat_offset: Optional[float],
    expected_audience: str,
    envelope_text: str,
) -> VerifiedSdJwt:
    is_valid, envelope_claims = envelope_verifier.verify(envelope_text)
    if not is_valid or envelope_claims is None:
        raise InvalidJwt("Envelope JWT signature verification failed")

    audience = envelope_claims.get("aud")
    audiences = audience if isinstance(audience, list) else [audience]
    if expected_audience not in audiences:
        raise AudienceMismatch("Envelope audience mismatch", aud=audience)

    check_issued_at(envelope_claims.get("iat"), clock, iat_offset)

    embedded = envelope_claims.get(json_utils.SD_JWT_CLAIM)
    if not isinstance(embedded, str):
        raise MalformedSerialization(f"Envelope has no {json_utils.SD_JWT_CLAIM} claim")

    verified = _verify_presentation(
        sd_jwt_verifier, KeyBindingVerifier.must_not_be_present(), embedded
    )
    return VerifiedSdJwt(verified.sd_jwt, verified.claims, None, envelope_claims)


def verify_issuance(jwt_verifier: JwtSignatureVerifier, text: str) -> Result[VerifiedSdJwt]:
    """Verify an SD-JWT as issued (it must end with ``~``)."""
    return _capture(lambda: _verify_issuance(jwt_verifier, text))


def verify_presentation(
    jwt_verifier: JwtSignatureVerifier,
    key_binding_verifier: KeyBindingVerifier,
    text: str,
) -> Result[VerifiedSdJwt]:
    """Verify a presentation, applying ``key_binding_verifier`` to its KB-JWT segment."""
    return _capture(lambda: _verify_presentation(jwt_verifier, key_binding_verifier, text))


def verify_enveloped_presentation(
    sd_jwt_verifier: JwtSignatureVerifier,
    envelope_verifier: JwtSignatureVerifier,
    expected_audience: str,
    envelope_text: str,
    clock: Clock = time.time,
    iat_offset: Optional[float] = None,
) -> Result[VerifiedSdJwt]:
    """Verify a presentation carried as ``_sd_jwt`` inside a holder-signed envelope JWT.

    The envelope's ``aud`` must equal ``expected_audience`` and its ``iat``
    must lie within ``[now - iat_offset, now]``; the embedded presentation
    must not carry a KB-JWT.
    """
    return _capture(
        lambda: _verify_enveloped_presentation(
            sd_jwt_verifier, envelope_verifier, clock, iat_offset, expected_audience, envelope_text
        )
    )
