#!/usr/bin/env python3
"""Example of using the minimal public API for SD-JWT issuance and verification."""

import sd_jwt_kit


def main():
    """Demonstrate minimal API usage."""
    print("SD-JWT Minimal API Example")
    print("=" * 40)

    # 1. Generate an issuer key (ES256 by default)
    print("\n1. Generating issuer key...")
    issuer_jwk = sd_jwt_kit.jwk_generate(kid="issuer-key-1")
    print(f"   Thumbprint: {sd_jwt_kit.jwk_thumbprint(issuer_jwk)}")

    # 2. Describe which claims are selectively disclosable
    spec = (
        sd_jwt_kit.sd_jwt()
        .iss("https://issuer.example")
        .sd("given_name", "John")
        .sd("email", "john@example.com")
        .structured("address", sd_jwt_kit.sd_object().sd("locality", "Anytown").plain("country", "US"))
    )

    # 3. Issue
    print("\n2. Issuing SD-JWT...")
    issuer = sd_jwt_kit.SdJwtIssuer(
        sd_jwt_kit.jwk_signer(issuer_jwk), decoy_policy=sd_jwt_kit.DecoyPolicy.between(1, 3)
    )
    issuance = issuer.issue(spec).get_or_raise()
    for disclosure in issuance.disclosures:
        print(f"   Disclosure for {disclosure.claim_name}: {disclosure.value[:24]}...")

    # 4. Holder reveals only the email
    presentation = issuance.present_claims(["email"])
    text = presentation.serialize()
    print(f"\n3. Presentation has {text.count('~')} tildes")

    # 5. Verify
    print("\n4. Verifying...")
    jwt_verifier = sd_jwt_kit.KeyJwtVerifier(sd_jwt_kit.jwk_verifier(sd_jwt_kit.jwk_public(issuer_jwk)))
    result = sd_jwt_kit.verify_presentation(
        jwt_verifier, sd_jwt_kit.KeyBindingVerifier.must_not_be_present(), text
    )
    if result.is_ok:
        print(f"   Claims: {result.value.recreate_claims()}")
    else:
        print(f"   Rejected: {result.error.code.value}")


if __name__ == "__main__":
    main()
