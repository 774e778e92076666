"""SD-JWT VC verification with issuer key resolution.

Resolves the issuer's key from ``iss``/``kid`` (metadata URL or DID), then
runs the synchronous verification pipelines with it.
"""

import logging
import time
from typing import Optional

from . import json_utils
from .errors import InvalidJwt, KeyNotFound, MalformedSerialization, Result, SdJwtError
from .jws import JwtSignatureVerifier, decode_unverified
from .resolvers import (
    DidResolver,
    HttpClientFactory,
    JwkSetVerifier,
    key_source,
    resolve_keys,
)
from .serialization import parse
from .verifier import (
    Clock,
    KeyBindingVerifier,
    VerifiedSdJwt,
    verify_enveloped_presentation,
    verify_issuance,
    verify_presentation,
)

logger = logging.getLogger(__name__)

SD_JWT_VC_TYPE = "dc+sd-jwt"

# Media type used before the draft renamed it; still accepted on verification
LEGACY_SD_JWT_VC_TYPE = "vc+sd-jwt"


class SdJwtVcVerifier:
    """Verifies SD-JWT VCs whose issuer key is found from ``iss``.

    The issuer-signed JWT must carry a ``typ`` header of ``dc+sd-jwt``
    (or the older ``vc+sd-jwt``).
    """

    def __init__(
        self,
        http_client_factory: Optional[HttpClientFactory] = None,
        did_resolver: Optional[DidResolver] = None,
    ):
        """Initialize the verifier.

        Args:
            http_client_factory: Creates the ``httpx.AsyncClient`` used for
                issuer metadata (a default client when None)
            did_resolver: ``(did, kid) -> [jwk]``, sync or async, for DID issuers
        """
        self.http_client_factory = http_client_factory
        self.did_resolver = did_resolver

    async def issuer_verifier(self, jwt: str) -> JwtSignatureVerifier:
        """Resolve the issuer key(s) for an issuer-signed JWT.

        Raises:
            InvalidJwt: If the JWT is malformed, is not typed as an SD-JWT VC,
                or no published key matches its kid
            KeySourceError: If the issuer cannot be resolved
        """
        try:
            header, payload = decode_unverified(jwt)
        except ValueError as e:
            raise InvalidJwt(f"Issuer-signed JWT is malformed: {e}") from e

        typ = header.get("typ")
        if typ not in (SD_JWT_VC_TYPE, LEGACY_SD_JWT_VC_TYPE):
            raise InvalidJwt(f"Issuer-signed JWT has typ {typ!r}, expected {SD_JWT_VC_TYPE!r}")

        source = key_source(payload.get("iss"), header.get("kid"))
        logger.debug("Resolving issuer keys from %s", type(source).__name__)
        try:
            keys = await resolve_keys(source, self.http_client_factory, self.did_resolver)
        except KeyNotFound as e:
            raise InvalidJwt(f"No issuer key verifies this JWT: {e.message}") from e
        return JwkSetVerifier(keys)

    async def verify_issuance(self, text: str) -> Result[VerifiedSdJwt]:
        try:
            jwt, _, _ = parse(text)
            jwt_verifier = await self.issuer_verifier(jwt)
        except SdJwtError as e:
            logger.warning("SD-JWT VC rejected: %s", e.code.value)
            return Result.fail(e)
        return verify_issuance(jwt_verifier, text)

    async def verify_presentation(
        self, text: str, key_binding_verifier: KeyBindingVerifier
    ) -> Result[VerifiedSdJwt]:
        try:
            jwt, _, _ = parse(text)
            jwt_verifier = await self.issuer_verifier(jwt)
        except SdJwtError as e:
            logger.warning("SD-JWT VC rejected: %s", e.code.value)
            return Result.fail(e)
        return verify_presentation(jwt_verifier, key_binding_verifier, text)

    async def verify_enveloped_presentation(
        self,
        envelope_text: str,
        envelope_verifier: JwtSignatureVerifier,
        expected_audience: str,
        clock: Clock = time.time,
        iat_offset: Optional[float] = None,
    ) -> Result[VerifiedSdJwt]:
        try:
            try:
                _, envelope_claims = decode_unverified(envelope_text)
            except ValueError as e:
                raise InvalidJwt(f"Envelope JWT is malformed: {e}") from e
            embedded = envelope_claims.get(json_utils.SD_JWT_CLAIM)
            if not isinstance(embedded, str):
                raise MalformedSerialization(f"Envelope has no {json_utils.SD_JWT_CLAIM} claim")
            jwt, _, _ = parse(embedded)
            jwt_verifier = await self.issuer_verifier(jwt)
        except SdJwtError as e:
            logger.warning("SD-JWT VC rejected: %s", e.code.value)
            return Result.fail(e)
        return verify_enveloped_presentation(
            jwt_verifier, envelope_verifier, expected_audience, envelope_text, clock, iat_offset
        )
