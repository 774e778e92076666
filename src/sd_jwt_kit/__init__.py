"""sd-jwt-kit: Selective Disclosure JWT (SD-JWT) and SD-JWT VC."""

# Hide module imports
from . import (
    claim_spec,
    claims,
    digest,
    disclosure_tree,
    errors,
    issuer,
    jwk,
    jws,
    key_binding,
    resolvers,
    serialization,
    vc_verifier,
    verifier,
)
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
    sd_array,
    sd_jwt,
    sd_object,
)
from .claims import recreate_claims
from .digest import (
    Disclosure,
    HashAlgorithm,
    SaltGenerator,
    SecureSaltGenerator,
    SeededSaltGenerator,
    digest_of,
    encode_disclosure,
)
from .disclosure_tree import DisclosureTreeBuilder
from .errors import ErrorCode, Result, SdJwtError
from .issuer import SdJwtIssuer, issue
from .jwk import cnf_claim, jwk_generate, jwk_public, jwk_signer, jwk_thumbprint, jwk_verifier
from .jws import (
    JwtSignatureVerifier,
    KeyJwtVerifier,
    Signer,
    Verifier,
    jws_sign,
    jws_verify,
)
from .resolvers import DIDUrl, KeySource, Metadata, Unsupported, key_source, resolve_keys
from .serialization import Issuance, Presentation, compose, parse
from .vc_verifier import SD_JWT_VC_TYPE, SdJwtVcVerifier
from .verifier import (
    KeyBindingVerifier,
    VerifiedSdJwt,
    verify_enveloped_presentation,
    verify_issuance,
    verify_presentation,
)

del claim_spec, claims, digest, disclosure_tree, errors, issuer, jwk, jws
del key_binding, resolvers, serialization, vc_verifier, verifier

__version__ = "0.1.0"


__all__ = [
    "__version__",
    # Claim specifications
    "sd_jwt",
    "sd_object",
    "sd_array",
    "ObjectSpec",
    "ArraySpec",
    "Plain",
    "Sd",
    "Structured",
    "Recursive",
    "PlainElement",
    "SdElement",
    "DecoyPolicy",
    # Disclosures and digests
    "Disclosure",
    "HashAlgorithm",
    "encode_disclosure",
    "digest_of",
    "DisclosureTreeBuilder",
    # Salt generators for deterministic testing
    "SaltGenerator",
    "SecureSaltGenerator",
    "SeededSaltGenerator",
    # Issuance
    "SdJwtIssuer",
    "issue",
    # Combined serialization
    "Issuance",
    "Presentation",
    "compose",
    "parse",
    # Verification
    "verify_issuance",
    "verify_presentation",
    "verify_enveloped_presentation",
    "KeyBindingVerifier",
    "VerifiedSdJwt",
    "recreate_claims",
    # Protocols for custom signers and verifiers
    "Signer",
    "Verifier",
    "JwtSignatureVerifier",
    "KeyJwtVerifier",
    "jws_sign",
    "jws_verify",
    # JWKs
    "jwk_generate",
    "jwk_public",
    "jwk_signer",
    "jwk_verifier",
    "jwk_thumbprint",
    "cnf_claim",
    # SD-JWT VC issuer key sources
    "key_source",
    "resolve_keys",
    "KeySource",
    "Metadata",
    "DIDUrl",
    "Unsupported",
    "SdJwtVcVerifier",
    "SD_JWT_VC_TYPE",
    # Errors
    "ErrorCode",
    "Result",
    "SdJwtError",
]
