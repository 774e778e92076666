"""Key binding for SD-JWT presentations.

A Key Binding JWT (KB-JWT) is signed by the holder and carries ``sd_hash``,
the digest of the presentation text up to and including the last ``~``.
An enveloped presentation instead carries the whole presentation inside a
holder-signed JWT.
"""

import time
from typing import Any, Optional

from . import json_utils
from .digest import HashAlgorithm, digest_of
from .jws import Signer, jws_sign

KB_JWT_TYPE = "kb+jwt"


def sd_hash(presentation: str, hash_alg: HashAlgorithm) -> str:
    """Digest of a presentation string that ends with ``~`` (no KB-JWT)."""
    return digest_of(presentation, hash_alg)


def create_kb_jwt(
    presentation: str,
    hash_alg: HashAlgorithm,
    holder_signer: Signer,
    audience: str,
    nonce: str,
    issued_at: Optional[int] = None,
    extra_claims: Optional[dict[str, Any]] = None,
) -> str:
    """Create a Key Binding JWT for a presentation.

    Args:
        presentation: ``<jwt>~<d1>~...~`` (must end with ``~``)
        hash_alg: The SD-JWT's ``_sd_alg``
        holder_signer: Signer using holder's private key
        audience: Verifier identifier (aud claim)
        nonce: Verifier challenge (nonce claim)
        issued_at: Issuance time (iat claim), defaults to now
        extra_claims: Additional claims for the KB-JWT payload

    Returns:
        Compact KB-JWT
    """
    if not presentation.endswith("~"):
        raise ValueError("Key binding covers a presentation ending with '~'")

    payload: dict[str, Any] = dict(extra_claims or {})
    payload.update(
        {
            "iat": issued_at if issued_at is not None else int(time.time()),
            "aud": audience,
            "nonce": nonce,
            json_utils.SD_HASH_CLAIM: sd_hash(presentation, hash_alg),
        }
    )
    return jws_sign(payload, holder_signer, header={"typ": KB_JWT_TYPE})


def create_envelope(
    presentation: str,
    holder_signer: Signer,
    audience: str,
    nonce: Optional[str] = None,
    issued_at: Optional[int] = None,
) -> str:
    """Wrap a presentation (without KB-JWT) in a holder-signed envelope JWT.

    Returns:
        Compact envelope JWT carrying the presentation as ``_sd_jwt``
    """
    if not presentation.endswith("~"):
        raise ValueError("Enveloped presentations must not carry a KB-JWT")

    payload: dict[str, Any] = {
        "aud": audience,
        "iat": issued_at if issued_at is not None else int(time.time()),
        json_utils.SD_JWT_CLAIM: presentation,
    }
    if nonce is not None:
        payload["nonce"] = nonce
    return jws_sign(payload, holder_signer)
