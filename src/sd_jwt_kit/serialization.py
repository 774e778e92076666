"""SD-JWT values and the combined serialization format.

Wire grammar::

    <JWT>~<Disclosure 1>~...~<Disclosure n>~[<KB-JWT>]

There are always ``n + 1`` tildes. Without a KB-JWT the text ends with ``~``.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from . import json_utils
from .claims import recreate_claims
from .digest import Disclosure, HashAlgorithm
from .errors import MalformedDisclosure, MalformedSerialization, UnsupportedHashAlgorithm
from .jws import Signer, decode_unverified
from .key_binding import create_envelope, create_kb_jwt

SEPARATOR = "~"


def compose(jwt: str, disclosures: Iterable[Disclosure], kb_jwt: Optional[str] = None) -> str:
    """Serialize an SD-JWT in the combined format."""
    return SEPARATOR.join([jwt, *(d.value for d in disclosures), kb_jwt or ""])


def parse(text: str) -> tuple[str, list[Disclosure], Optional[str]]:
    """Parse the combined format.

    Returns:
        Tuple of (jwt, disclosures, kb_jwt or None)

    Raises:
        MalformedSerialization: If there is no ``~``, the JWT segment is
            empty, or a middle segment is not a disclosure
    """
    if SEPARATOR not in text:
        raise MalformedSerialization("SD-JWT must contain at least one '~'")

    jwt, *middle, last = text.split(SEPARATOR)
    if not jwt:
        raise MalformedSerialization("SD-JWT is missing the issuer-signed JWT")

    disclosures = []
    for index, segment in enumerate(middle):
        try:
            disclosures.append(Disclosure.decode(segment))
        except MalformedDisclosure as e:
            raise MalformedSerialization(
                f"Segment {index + 1} is not a disclosure: {e.message}", segment=index + 1
            ) from e

    return jwt, disclosures, (last or None)


def hash_algorithm_of(payload: dict[str, Any]) -> HashAlgorithm:
    """The ``_sd_alg`` of a JWT payload (``sha-256`` when absent).

    Raises:
        UnsupportedHashAlgorithm: If the named algorithm is not recognized
    """
    return HashAlgorithm.from_name(payload.get(json_utils.SD_ALG_CLAIM, HashAlgorithm.SHA_256.value))


@dataclass(frozen=True)
class SdJwt:
    """An issuer-signed JWT and a set of disclosures."""

    jwt: str
    disclosures: tuple[Disclosure, ...] = ()

    @property
    def payload(self) -> dict[str, Any]:
        """The JWT payload, decoded without signature verification."""
        return decode_unverified(self.jwt)[1]

    @property
    def hash_alg(self) -> HashAlgorithm:
        return hash_algorithm_of(self.payload)

    def recreate_claims(self) -> dict[str, Any]:
        """Claims with every available disclosure applied."""
        return recreate_claims(self.payload, self.disclosures)


@dataclass(frozen=True)
class Issuance(SdJwt):
    """An SD-JWT as issued: the signed JWT and every disclosure created for it."""

    def serialize(self) -> str:
        return compose(self.jwt, self.disclosures)

    def present(self, predicate: Optional[Callable[[Disclosure], bool]] = None) -> "Presentation":
        """Keep the disclosures accepted by ``predicate`` (all when None), in issuance order."""
        kept = tuple(d for d in self.disclosures if predicate is None or predicate(d))
        return Presentation(self.jwt, kept)

    def present_claims(self, claim_names: Iterable[str]) -> "Presentation":
        """Keep the disclosures of the named claims, and of the hidden parents they sit in."""
        names = set(claim_names)
        parents = disclosure_parents(self.payload, self.disclosures)

        keep: set[Disclosure] = set()
        for disclosure in self.disclosures:
            if disclosure.claim_name in names:
                current: Optional[Disclosure] = disclosure
                while current is not None and current not in keep:
                    keep.add(current)
                    current = parents.get(current)

        return self.present(lambda d: d in keep)

    @classmethod
    def parse(cls, text: str) -> "Issuance":
        """Parse an issuance; a KB-JWT segment is rejected.

        Raises:
            MalformedSerialization: If the text is malformed or ends with a KB-JWT
        """
        jwt, disclosures, kb_jwt = parse(text)
        if kb_jwt is not None:
            raise MalformedSerialization("An issued SD-JWT must end with '~'")
        return cls(jwt, tuple(disclosures))


@dataclass(frozen=True)
class Presentation(SdJwt):
    """An SD-JWT as presented: a subset of disclosures and optionally a KB-JWT."""

    kb_jwt: Optional[str] = None

    def serialize(self) -> str:
        return compose(self.jwt, self.disclosures, self.kb_jwt)

    def without_key_binding(self) -> str:
        """The presentation text covered by ``sd_hash``."""
        return compose(self.jwt, self.disclosures)

    def with_key_binding(
        self,
        holder_signer: Signer,
        audience: str,
        nonce: str,
        issued_at: Optional[int] = None,
        hash_alg: Optional[HashAlgorithm] = None,
    ) -> "Presentation":
        """Attach a freshly signed KB-JWT."""
        kb_jwt = create_kb_jwt(
            self.without_key_binding(),
            hash_alg or self.hash_alg,
            holder_signer,
            audience,
            nonce,
            issued_at,
        )
        return Presentation(self.jwt, self.disclosures, kb_jwt)

    def serialize_with_key_binding(
        self,
        holder_signer: Signer,
        audience: str,
        nonce: str,
        issued_at: Optional[int] = None,
        hash_alg: Optional[HashAlgorithm] = None,
    ) -> str:
        return self.with_key_binding(holder_signer, audience, nonce, issued_at, hash_alg).serialize()

    def envelope(
        self,
        holder_signer: Signer,
        audience: str,
        nonce: Optional[str] = None,
        issued_at: Optional[int] = None,
    ) -> str:
        """Serialize as an enveloped presentation (compact JWT)."""
        return create_envelope(self.without_key_binding(), holder_signer, audience, nonce, issued_at)

    @classmethod
    def parse(cls, text: str) -> "Presentation":
        jwt, disclosures, kb_jwt = parse(text)
        return cls(jwt, tuple(disclosures), kb_jwt)


def disclosure_parents(
    payload: dict[str, Any], disclosures: Iterable[Disclosure]
) -> dict[Disclosure, Optional[Disclosure]]:
    """Map each reachable disclosure to the disclosure whose value references it.

    Top-level disclosures map to None. Disclosures not referenced anywhere
    are absent from the result.
    """
    try:
        hash_alg = hash_algorithm_of(payload)
    except UnsupportedHashAlgorithm:
        return {}
    by_digest = {d.digest(hash_alg): d for d in disclosures}
    parents: dict[Disclosure, Optional[Disclosure]] = {}

    stack: list[tuple[Any, Optional[Disclosure]]] = [(payload, None)]
    while stack:
        value, parent = stack.pop()
        if isinstance(value, dict):
            for digest in _digests_at(value):
                disclosure = by_digest.get(digest)
                if disclosure is not None and disclosure not in parents:
                    parents[disclosure] = parent
                    stack.append((disclosure.claim_value, disclosure))
            stack.extend((child, parent) for child in value.values())
        elif isinstance(value, list):
            stack.extend((child, parent) for child in value)
    return parents


def _digests_at(obj: dict[str, Any]) -> list[str]:
    if set(obj) == {json_utils.ARRAY_DIGEST_KEY} and isinstance(obj[json_utils.ARRAY_DIGEST_KEY], str):
        return [obj[json_utils.ARRAY_DIGEST_KEY]]
    sd = obj.get(json_utils.SD_CLAIM)
    if isinstance(sd, list):
        return [d for d in sd if isinstance(d, str)]
    return []
