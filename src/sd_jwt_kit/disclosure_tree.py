"""Turn a claim specification into a disclosed document and its disclosures.

Hidden object claims are replaced by digests in the enclosing object's
``_sd`` array; hidden array elements are replaced in place by
``{"...": digest}`` markers. Disclosures are returned in pre-order, matching
declaration order, with a recursively disclosed parent before the
disclosures of its own children.
"""

import logging
import secrets
from typing import Any, Optional, Union

from . import json_utils
from .claim_spec import (
    ArraySpec,
    DecoyPolicy,
    ObjectSpec,
    Plain,
    PlainElement,
    Recursive,
    Sd,
    SdElement,
    Structured,
)
from .digest import Disclosure, HashAlgorithm, SaltGenerator, decoy_digest, generate_salt
from .errors import ReservedClaimNameUsed

logger = logging.getLogger(__name__)


class DisclosureTreeBuilder:
    """Builds (disclosed document, disclosures) from an :class:`ObjectSpec`."""

    def __init__(
        self,
        hash_alg: HashAlgorithm = HashAlgorithm.SHA_256,
        decoy_policy: Optional[DecoyPolicy] = None,
        salt_generator: Optional[SaltGenerator] = None,
        rng: Optional[secrets.SystemRandom] = None,
    ):
        self.hash_alg = hash_alg
        self.decoy_policy = decoy_policy or DecoyPolicy.none()
        self.salt_generator = salt_generator
        self.rng = rng or secrets.SystemRandom()

    def build(self, spec: ObjectSpec) -> tuple[dict[str, Any], list[Disclosure]]:
        """Build the disclosed document for ``spec``.

        Raises:
            ReservedClaimNameUsed: If ``_sd``, ``_sd_alg`` or ``...`` is used
                as a claim name anywhere in the spec
        """
        document, disclosures = self._object(spec)
        logger.debug("Built disclosed document with %d disclosures", len(disclosures))
        return document, disclosures

    def _disclose(self, claim_name: Optional[str], claim_value: Any) -> Disclosure:
        return Disclosure.create(generate_salt(self.salt_generator), claim_name, claim_value)

    def _decoys(self, override: Optional[DecoyPolicy]) -> list[str]:
        count = (override or self.decoy_policy).count(self.rng)
        return [decoy_digest(self.hash_alg, self.salt_generator) for _ in range(count)]

    def _subtree(self, spec: Union[ObjectSpec, ArraySpec]) -> tuple[Any, list[Disclosure]]:
        if isinstance(spec, ObjectSpec):
            return self._object(spec)
        return self._array(spec)

    def _object(self, spec: ObjectSpec) -> tuple[dict[str, Any], list[Disclosure]]:
        document: dict[str, Any] = {}
        digests: list[str] = []
        disclosures: list[Disclosure] = []

        for name, claim in spec.claims:
            _check_claim_name(name)

            if isinstance(claim, Plain):
                _check_plain_value(claim.value)
                document[name] = claim.value

            elif isinstance(claim, Sd):
                _check_plain_value(claim.value)
                disclosure = self._disclose(name, claim.value)
                disclosures.append(disclosure)
                digests.append(disclosure.digest(self.hash_alg))

            elif isinstance(claim, Structured):
                sub_value, sub_disclosures = self._subtree(claim.subtree)
                document[name] = sub_value
                disclosures.extend(sub_disclosures)

            elif isinstance(claim, Recursive):
                sub_value, sub_disclosures = self._subtree(claim.subtree)
                disclosure = self._disclose(name, sub_value)
                disclosures.append(disclosure)
                disclosures.extend(sub_disclosures)
                digests.append(disclosure.digest(self.hash_alg))

            else:
                raise TypeError(f"Unknown claim spec: {claim!r}")

        digests.extend(self._decoys(spec.decoys))
        if digests:
            # Sorted so neither declaration order nor decoys can be told apart
            document[json_utils.SD_CLAIM] = sorted(digests)

        return document, disclosures

    def _array(self, spec: ArraySpec) -> tuple[list[Any], list[Disclosure]]:
        elements: list[Any] = []
        disclosures: list[Disclosure] = []

        for element in spec.elements:
            _check_plain_value(element.value)
            if isinstance(element, PlainElement):
                elements.append(element.value)
            elif isinstance(element, SdElement):
                disclosure = self._disclose(None, element.value)
                disclosures.append(disclosure)
                elements.append({json_utils.ARRAY_DIGEST_KEY: disclosure.digest(self.hash_alg)})
            else:
                raise TypeError(f"Unknown element spec: {element!r}")

        for digest in self._decoys(spec.decoys):
            position = self.rng.randint(0, len(elements))
            elements.insert(position, {json_utils.ARRAY_DIGEST_KEY: digest})

        return elements, disclosures


def _check_claim_name(name: str) -> None:
    if name in json_utils.RESERVED_CLAIM_NAMES:
        raise ReservedClaimNameUsed(f"Reserved claim name {name!r} used in claims", claim=name)


def _check_plain_value(value: Any) -> None:
    if isinstance(value, dict):
        for name, child in value.items():
            _check_claim_name(name)
            _check_plain_value(child)
    elif isinstance(value, list):
        for child in value:
            _check_plain_value(child)
