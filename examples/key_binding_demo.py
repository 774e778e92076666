#!/usr/bin/env python3
"""Demo script showing key binding for SD-JWT presentations."""

import time

from sd_jwt_kit import (
    KeyBindingVerifier,
    KeyJwtVerifier,
    SdJwtIssuer,
    cnf_claim,
    jwk_generate,
    jwk_signer,
    jwk_verifier,
    sd_jwt,
    sd_object,
    verify_presentation,
)


def demonstrate_key_binding():
    """Bind a presentation to the holder key named in cnf."""
    print("=" * 60)
    print("KEY BINDING DEMONSTRATION")
    print("=" * 60)

    issuer_jwk = jwk_generate(kid="dmv-issuer-2024")
    holder_jwk = jwk_generate()
    print("\n1. Generated issuer and holder keys")

    spec = (
        sd_jwt()
        .iss("https://dmv.example.gov")
        .iat(int(time.time()))
        .cnf(cnf_claim(holder_jwk))
        .plain("license_class", "Class C")
        .sd("full_name", "Jane Smith")
        .sd("date_of_birth", "1995-03-20")
        .recursive(
            "address",
            sd_object().sd("street", "456 Oak Avenue").plain("city", "Los Angeles").plain("state", "CA"),
        )
    )
    issuance = SdJwtIssuer(jwk_signer(issuer_jwk), header={"typ": "dc+sd-jwt"}).issue(spec).get_or_raise()
    print(f"2. Issued credential with {len(issuance.disclosures)} disclosures")

    audience = "https://bar.example"
    nonce = "1234567890"
    text = issuance.present_claims(["full_name", "street"]).serialize_with_key_binding(
        jwk_signer(holder_jwk), audience, nonce
    )
    print("3. Holder presented full_name and street with a KB-JWT")

    policy = KeyBindingVerifier.must_be_present(
        expected_audience=audience, expected_nonce=nonce, clock=time.time
    )
    result = verify_presentation(KeyJwtVerifier(jwk_verifier(issuer_jwk)), policy, text)
    print(f"4. Verified: {result.is_ok}")
    if result.is_ok:
        print(f"   Disclosed claims: {result.value.recreate_claims()}")

    replayed = verify_presentation(
        KeyJwtVerifier(jwk_verifier(issuer_jwk)),
        KeyBindingVerifier.must_be_present(expected_nonce="other-nonce"),
        text,
    )
    print(f"5. Replay with another nonce rejected: {replayed.error.code.value}")


if __name__ == "__main__":
    demonstrate_key_binding()
