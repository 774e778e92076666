"""Issuer key sources for SD-JWT VC.

The issuer's verification key is located from the ``iss`` claim and the
JWT header ``kid``:

- ``iss`` is an HTTPS URL: the JWKS is published in the issuer metadata
  document at ``https://<host>/.well-known/jwt-vc-issuer/<path>``.
- ``iss`` is a DID: keys are looked up by a caller-supplied DID resolver,
  using ``kid`` as a DID URL (``<did>#<fragment>``).

Resolution makes single-shot calls to the injected collaborators; retries
belong to them.
"""

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlsplit

import httpx

from . import json_utils
from .config import settings
from .errors import AmbiguousKey, Cancelled, KeyNotFound, NetworkFailure, UnsupportedIssuerFormat
from .jwk import jwk_algorithm, jwk_verifier
from .jws import decode_unverified, jws_verify

logger = logging.getLogger(__name__)

DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[A-Za-z0-9._:%-]*[A-Za-z0-9._%-]$")

HttpClientFactory = Callable[[], httpx.AsyncClient]
DidResolver = Callable[[str, Optional[str]], Union[list[dict[str, Any]], Awaitable[list[dict[str, Any]]]]]


@dataclass(frozen=True)
class Metadata:
    issuer_url: str
    kid: Optional[str] = None


@dataclass(frozen=True)
class DIDUrl:
    did: str
    kid: Optional[str] = None


@dataclass(frozen=True)
class Unsupported:
    iss: Any
    kid: Optional[str] = None


KeySource = Union[Metadata, DIDUrl, Unsupported]


def key_source(iss: Any, kid: Optional[str] = None) -> KeySource:
    """Classify where the issuer's keys can be found. Never fails."""
    if not isinstance(iss, str):
        return Unsupported(iss, kid)

    parts = urlsplit(iss)
    if parts.scheme == "https" and parts.netloc:
        return Metadata(iss, kid)

    if DID_PATTERN.match(iss):
        if kid is not None and kid.startswith("#"):
            kid = iss + kid
        if kid is not None and not kid.startswith(iss + "#"):
            return Unsupported(iss, kid)
        return DIDUrl(iss, kid)

    return Unsupported(iss, kid)


def metadata_url(issuer_url: str) -> str:
    """URL of the JWT VC issuer metadata document for ``issuer_url``."""
    parts = urlsplit(issuer_url)
    path = parts.path.rstrip("/")
    return f"https://{parts.netloc}{settings.metadata_path}{path}"


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds)


async def _get_json(client: httpx.AsyncClient, url: str) -> Any:
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.InvalidURL as e:
        raise KeyNotFound(f"Unusable key URL {url!r}: {e}", url=url) from e
    except httpx.HTTPError as e:
        logger.warning("Fetching %s failed: %s", url, type(e).__name__)
        raise NetworkFailure(f"Fetching {url} failed: {e}", url=url) from e

    try:
        return json_utils.decode(response.content)
    except ValueError as e:
        raise KeyNotFound(f"{url} did not return JSON", url=url) from e


def select_keys(keys: Any, kid: Optional[str]) -> list[dict[str, Any]]:
    """Pick the verification key(s) from a JWK set's ``keys``.

    With a ``kid`` exactly one key must carry it; without one the set must
    hold exactly one key.

    Raises:
        KeyNotFound: If no key matches
        AmbiguousKey: If more than one key matches
    """
    if not isinstance(keys, list) or not all(isinstance(k, dict) for k in keys):
        raise KeyNotFound("JWK set has no 'keys' array")

    candidates = keys if kid is None else [k for k in keys if k.get("kid") == kid]
    if not candidates:
        raise KeyNotFound("No issuer key matches", kid=kid)
    if len(candidates) > 1:
        raise AmbiguousKey(f"{len(candidates)} issuer keys match", kid=kid)
    return candidates


async def _metadata_keys(source: Metadata, http_client_factory: HttpClientFactory) -> list[dict[str, Any]]:
    url = metadata_url(source.issuer_url)
    async with http_client_factory() as client:
        metadata = await _get_json(client, url)
        if not isinstance(metadata, dict) or metadata.get("issuer") != source.issuer_url:
            raise KeyNotFound("Issuer metadata does not belong to iss", url=url)

        jwks = metadata.get("jwks")
        if jwks is None and isinstance(metadata.get("jwks_uri"), str):
            jwks = await _get_json(client, metadata["jwks_uri"])

    if not isinstance(jwks, dict):
        raise KeyNotFound("Issuer metadata has no JWK set", url=url)
    return select_keys(jwks.get("keys"), source.kid)


async def _did_keys(source: DIDUrl, did_resolver: Optional[DidResolver]) -> list[dict[str, Any]]:
    if did_resolver is None:
        raise UnsupportedIssuerFormat("No DID resolver configured", iss=source.did)
    try:
        keys = did_resolver(source.did, source.kid)
        if inspect.isawaitable(keys):
            keys = await keys
    except Exception as e:
        logger.warning("DID resolution of %s failed: %s", source.did, type(e).__name__)
        raise NetworkFailure(f"DID resolution failed: {e}", did=source.did) from e

    if not keys:
        raise KeyNotFound("DID resolver returned no keys", did=source.did, kid=source.kid)
    return list(keys)


async def resolve_keys(
    source: KeySource,
    http_client_factory: Optional[HttpClientFactory] = None,
    did_resolver: Optional[DidResolver] = None,
) -> list[dict[str, Any]]:
    """Fetch the issuer's public JWKs for a key source.

    Raises:
        UnsupportedIssuerFormat: For :class:`Unsupported` sources, or DIDs
            without a resolver
        KeyNotFound: If the metadata or resolver yields no usable key
        AmbiguousKey: If the metadata holds several keys and no ``kid`` picks one
        NetworkFailure: If a collaborator fails
        Cancelled: If a collaborator call was cancelled while this task was not
    """
    try:
        if isinstance(source, Metadata):
            return await _metadata_keys(source, http_client_factory or _default_http_client)
        if isinstance(source, DIDUrl):
            return await _did_keys(source, did_resolver)
    except asyncio.CancelledError as e:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
        raise Cancelled("Issuer key resolution was cancelled") from e
    raise UnsupportedIssuerFormat(f"Unsupported issuer: {source.iss!r}", iss=source.iss)


class JwkSetVerifier:
    """Verifies JWTs against any of a set of public JWKs."""

    def __init__(self, keys: list[dict[str, Any]]):
        self.keys = keys

    def verify(self, jwt: str) -> tuple[bool, Optional[dict[str, Any]]]:
        try:
            header, _ = decode_unverified(jwt)
        except ValueError:
            return False, None

        for key in self.keys:
            try:
                if jwk_algorithm(key) != header.get("alg"):
                    continue
                verifier = jwk_verifier(key)
            except (KeyError, ValueError):
                continue
            is_valid, payload = jws_verify(jwt, verifier)
            if is_valid:
                return True, payload
        return False, None
