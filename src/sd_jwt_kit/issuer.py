"""SD-JWT issuance.

Builds the disclosed document from a claim specification, records the hash
algorithm in ``_sd_alg``, and has the external signer sign it exactly once.
"""

import logging
import secrets
from typing import Any, Optional, Union

from . import json_utils
from .claim_spec import DecoyPolicy, ObjectBuilder, ObjectSpec
from .config import settings
from .digest import HashAlgorithm, SaltGenerator
from .disclosure_tree import DisclosureTreeBuilder
from .errors import IssuanceError, Result, SigningFailed
from .jws import Signer, jws_sign
from .serialization import Issuance

logger = logging.getLogger(__name__)


class SdJwtIssuer:
    """Issues SD-JWTs signed by one issuer key."""

    def __init__(
        self,
        signer: Signer,
        hash_alg: Optional[HashAlgorithm] = None,
        decoy_policy: Optional[DecoyPolicy] = None,
        salt_generator: Optional[SaltGenerator] = None,
        header: Optional[dict[str, Any]] = None,
        rng: Optional[secrets.SystemRandom] = None,
    ):
        """Initialize the issuer.

        Args:
            signer: Signer for the issuer's signing key
            hash_alg: Digest algorithm (defaults to ``SD_JWT_HASH_ALG``)
            decoy_policy: Decoy digests per level (none by default)
            salt_generator: Optional salt generator for deterministic testing
            header: Extra JWS header parameters, e.g. ``typ`` and ``kid``
            rng: Source of randomness for decoy counts and positions
        """
        self.signer = signer
        self.hash_alg = hash_alg or HashAlgorithm.from_name(settings.hash_alg)
        self.decoy_policy = decoy_policy or DecoyPolicy.none()
        self.salt_generator = salt_generator
        self.header = dict(header or {})
        self.rng = rng

    def issue(self, spec: Union[ObjectSpec, ObjectBuilder]) -> Result[Issuance]:
        """Issue an SD-JWT for ``spec``.

        Returns:
            Result holding the :class:`Issuance`, or an ``IssuanceError``
            (``ReservedClaimNameUsed`` or ``SigningFailed``)
        """
        if isinstance(spec, ObjectBuilder):
            spec = spec.build()

        builder = DisclosureTreeBuilder(
            self.hash_alg, self.decoy_policy, self.salt_generator, self.rng
        )
        try:
            document, disclosures = builder.build(spec)
        except IssuanceError as e:
            logger.warning("Issuance rejected: %s", e.code.value)
            return Result.fail(e)

        document[json_utils.SD_ALG_CLAIM] = self.hash_alg.value

        try:
            jwt = jws_sign(document, self.signer, header=self.header)
        except Exception as e:
            logger.warning("Issuer signer failed: %s", type(e).__name__)
            error = SigningFailed(f"Signer failed: {e}")
            error.__cause__ = e
            return Result.fail(error)

        logger.debug("Issued SD-JWT with %d disclosures", len(disclosures))
        return Result.ok(Issuance(jwt, tuple(disclosures)))


def issue(
    spec: Union[ObjectSpec, ObjectBuilder],
    hash_alg: HashAlgorithm,
    decoy_policy: Optional[DecoyPolicy],
    signer: Signer,
    salt_generator: Optional[SaltGenerator] = None,
    header: Optional[dict[str, Any]] = None,
) -> Result[Issuance]:
    """Issue an SD-JWT in one call. See :meth:`SdJwtIssuer.issue`."""
    return SdJwtIssuer(signer, hash_alg, decoy_policy, salt_generator, header).issue(spec)
