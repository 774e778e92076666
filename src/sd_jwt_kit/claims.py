"""Recreate the plain claims of an SD-JWT from its disclosed document.

The inverse of the disclosure tree builder: every digest with a matching
disclosure is replaced by the disclosed claim (or array element); digests
without one, including decoys, are dropped. Containers nested deeper than
``MAX_NESTING_DEPTH`` are returned as they are, and disclosures are not
opened past that depth. Never fails.
"""

from typing import Any, Iterable

from . import json_utils
from .digest import Disclosure, HashAlgorithm
from .errors import UnsupportedHashAlgorithm


def recreate_claims(payload: dict[str, Any], disclosures: Iterable[Disclosure]) -> dict[str, Any]:
    """Recreate the claims of a disclosed document.

    Args:
        payload: Issuer-signed JWT payload (with ``_sd``/``...`` digests)
        disclosures: Disclosures available to open those digests

    Returns:
        Claims with ``_sd``, ``_sd_alg`` and ``...`` markers removed
    """
    try:
        hash_alg = HashAlgorithm.from_name(
            payload.get(json_utils.SD_ALG_CLAIM, HashAlgorithm.SHA_256.value)
        )
        by_digest = {d.digest(hash_alg): d for d in disclosures}
    except UnsupportedHashAlgorithm:
        by_digest = {}

    claims = _recreate(payload, by_digest, 1)
    claims.pop(json_utils.SD_ALG_CLAIM, None)
    return claims


def _recreate(value: Any, by_digest: dict[str, Disclosure], depth: int) -> Any:
    if depth > json_utils.MAX_NESTING_DEPTH:
        return value
    if isinstance(value, dict):
        return _recreate_object(value, by_digest, depth)
    if isinstance(value, list):
        return _recreate_array(value, by_digest, depth)
    return value


def _recreate_object(obj: dict[str, Any], by_digest: dict[str, Disclosure], depth: int) -> dict[str, Any]:
    result = {
        name: _recreate(child, by_digest, depth + 1)
        for name, child in obj.items()
        if name != json_utils.SD_CLAIM
    }

    digests = obj.get(json_utils.SD_CLAIM)
    if isinstance(digests, list) and depth < json_utils.MAX_NESTING_DEPTH:
        for digest in digests:
            disclosure = by_digest.get(digest) if isinstance(digest, str) else None
            if disclosure is None or disclosure.claim_name is None:
                continue
            result[disclosure.claim_name] = _recreate(disclosure.claim_value, by_digest, depth + 1)

    return result


def _recreate_array(array: list[Any], by_digest: dict[str, Disclosure], depth: int) -> list[Any]:
    result = []
    for element in array:
        if _is_array_digest(element):
            disclosure = by_digest.get(element[json_utils.ARRAY_DIGEST_KEY])
            if disclosure is not None and disclosure.claim_name is None and depth < json_utils.MAX_NESTING_DEPTH:
                result.append(_recreate(disclosure.claim_value, by_digest, depth + 1))
        else:
            result.append(_recreate(element, by_digest, depth + 1))
    return result


def _is_array_digest(element: Any) -> bool:
    return (
        isinstance(element, dict)
        and len(element) == 1
        and isinstance(element.get(json_utils.ARRAY_DIGEST_KEY), str)
    )
