"""Tests for SD-JWT VC issuer key resolution."""

import asyncio

import httpx
import pytest

from sd_jwt_kit import (
    SD_JWT_VC_TYPE,
    DIDUrl,
    KeyBindingVerifier,
    KeyJwtVerifier,
    Metadata,
    SdJwtIssuer,
    SdJwtVcVerifier,
    Unsupported,
    cnf_claim,
    jwk_generate,
    jwk_public,
    jwk_signer,
    jwk_verifier,
    key_source,
    resolve_keys,
    sd_jwt,
)
from sd_jwt_kit import json_utils
from sd_jwt_kit.errors import (
    AmbiguousKey,
    Cancelled,
    ErrorCode,
    KeyNotFound,
    NetworkFailure,
    UnsupportedIssuerFormat,
)
from sd_jwt_kit.resolvers import metadata_url
from sd_jwt_kit.vc_verifier import LEGACY_SD_JWT_VC_TYPE

ISSUER_URL = "https://example.com"
METADATA_PATH = "/.well-known/jwt-vc-issuer"
EBSI_DID = "did:ebsi:zvHWX359A3CvfJnCYaAiAde"
AUDIENCE = "https://verifier.example.org"


def mock_client_factory(handler):
    """Create an ``httpx.AsyncClient`` factory backed by a mock transport."""

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


def metadata_handler(document, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(str(request.url))
        if request.url.path == METADATA_PATH:
            return httpx.Response(200, json=document)
        return httpx.Response(404)

    return handler


def unreachable_factory() -> httpx.AsyncClient:
    raise AssertionError("HTTP must not be used for DID issuers")


@pytest.fixture
def other_jwk():
    return jwk_generate("P-256", kid="signing-key-02")


@pytest.fixture
def issuer_metadata(issuer_jwk, other_jwk):
    return {
        "issuer": ISSUER_URL,
        "jwks": {"keys": [jwk_public(other_jwk), jwk_public(issuer_jwk)]},
    }


@pytest.fixture
def vc_spec(holder_jwk):
    return (
        sd_jwt()
        .iss(ISSUER_URL)
        .vct("https://credentials.example.com/identity_credential")
        .cnf(cnf_claim(holder_jwk))
        .sd("given_name", "Erika")
        .sd("family_name", "Mustermann")
    )


class TestKeySource:
    """Test classifying issuers."""

    @pytest.mark.unit
    def test_https_issuer(self):
        assert key_source(ISSUER_URL) == Metadata(ISSUER_URL)
        assert key_source(ISSUER_URL, "key-1") == Metadata(ISSUER_URL, "key-1")

    @pytest.mark.unit
    def test_did_issuer(self):
        kid = f"{EBSI_DID}#keys-1"
        assert key_source(EBSI_DID, kid) == DIDUrl(EBSI_DID, kid)
        assert key_source(EBSI_DID) == DIDUrl(EBSI_DID)

    @pytest.mark.unit
    def test_did_relative_kid(self):
        assert key_source(EBSI_DID, "#keys-1") == DIDUrl(EBSI_DID, f"{EBSI_DID}#keys-1")

    @pytest.mark.unit
    def test_did_kid_of_other_did(self):
        assert isinstance(key_source(EBSI_DID, "did:web:example.com#key-1"), Unsupported)

    @pytest.mark.unit
    @pytest.mark.parametrize("iss", ["http://example.com", "urn:example:issuer", "https://", "did:", 42, None])
    def test_unsupported_issuers(self, iss):
        assert key_source(iss) == Unsupported(iss)

    @pytest.mark.unit
    def test_metadata_url_keeps_issuer_path(self):
        assert metadata_url("https://example.com/tenant/1234") == (
            "https://example.com/.well-known/jwt-vc-issuer/tenant/1234"
        )
        assert metadata_url("https://example.com/") == "https://example.com/.well-known/jwt-vc-issuer"


class TestResolveKeys:
    """Test fetching issuer keys."""

    @pytest.mark.asyncio
    async def test_metadata_jwks(self, issuer_metadata, issuer_jwk):
        requests = []
        factory = mock_client_factory(metadata_handler(issuer_metadata, requests))

        keys = await resolve_keys(Metadata(ISSUER_URL, "signing-key-01"), factory)

        assert keys == [jwk_public(issuer_jwk)]
        assert requests == ["https://example.com/.well-known/jwt-vc-issuer"]

    @pytest.mark.asyncio
    async def test_metadata_jwks_uri(self, issuer_jwk):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == METADATA_PATH:
                return httpx.Response(200, json={"issuer": ISSUER_URL, "jwks_uri": f"{ISSUER_URL}/jwks.json"})
            if request.url.path == "/jwks.json":
                return httpx.Response(200, json={"keys": [jwk_public(issuer_jwk)]})
            return httpx.Response(404)

        keys = await resolve_keys(Metadata(ISSUER_URL), mock_client_factory(handler))
        assert keys == [jwk_public(issuer_jwk)]

    @pytest.mark.asyncio
    async def test_metadata_malformed_jwks_uri(self):
        """A jwks_uri that is not a usable URL is reported as a missing key set."""
        document = {"issuer": ISSUER_URL, "jwks_uri": "http://[::1"}

        with pytest.raises(KeyNotFound):
            await resolve_keys(Metadata(ISSUER_URL), mock_client_factory(metadata_handler(document)))

    @pytest.mark.asyncio
    async def test_ambiguous_without_kid(self, issuer_metadata):
        with pytest.raises(AmbiguousKey):
            await resolve_keys(Metadata(ISSUER_URL), mock_client_factory(metadata_handler(issuer_metadata)))

    @pytest.mark.asyncio
    async def test_unknown_kid(self, issuer_metadata):
        with pytest.raises(KeyNotFound):
            await resolve_keys(
                Metadata(ISSUER_URL, "missing"), mock_client_factory(metadata_handler(issuer_metadata))
            )

    @pytest.mark.asyncio
    async def test_metadata_for_other_issuer(self, issuer_metadata):
        document = dict(issuer_metadata, issuer="https://attacker.example")
        with pytest.raises(KeyNotFound):
            await resolve_keys(Metadata(ISSUER_URL, "signing-key-01"), mock_client_factory(metadata_handler(document)))

    @pytest.mark.asyncio
    async def test_metadata_not_json(self):
        factory = mock_client_factory(lambda request: httpx.Response(200, content=b"<html></html>"))
        with pytest.raises(KeyNotFound):
            await resolve_keys(Metadata(ISSUER_URL), factory)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        factory = mock_client_factory(lambda request: httpx.Response(503))
        with pytest.raises(NetworkFailure):
            await resolve_keys(Metadata(ISSUER_URL), factory)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkFailure) as exc_info:
            await resolve_keys(Metadata(ISSUER_URL), mock_client_factory(handler))
        assert exc_info.value.code is ErrorCode.NETWORK_FAILURE

    @pytest.mark.asyncio
    async def test_unsupported_source(self):
        with pytest.raises(UnsupportedIssuerFormat):
            await resolve_keys(Unsupported("urn:example:issuer"))

    @pytest.mark.asyncio
    async def test_did_without_resolver(self):
        with pytest.raises(UnsupportedIssuerFormat):
            await resolve_keys(DIDUrl(EBSI_DID), unreachable_factory)

    @pytest.mark.asyncio
    async def test_did_sync_resolver(self, issuer_jwk):
        calls = []

        def resolver(did, kid):
            calls.append((did, kid))
            return [jwk_public(issuer_jwk)]

        keys = await resolve_keys(DIDUrl(EBSI_DID, f"{EBSI_DID}#keys-1"), unreachable_factory, resolver)

        assert keys == [jwk_public(issuer_jwk)]
        assert calls == [(EBSI_DID, f"{EBSI_DID}#keys-1")]

    @pytest.mark.asyncio
    async def test_did_resolver_failure(self):
        async def resolver(did, kid):
            raise ConnectionError("resolver down")

        with pytest.raises(NetworkFailure):
            await resolve_keys(DIDUrl(EBSI_DID), did_resolver=resolver)

    @pytest.mark.asyncio
    async def test_did_resolver_without_keys(self):
        with pytest.raises(KeyNotFound):
            await resolve_keys(DIDUrl(EBSI_DID), did_resolver=lambda did, kid: [])

    @pytest.mark.asyncio
    async def test_collaborator_cancelled(self):
        async def resolver(did, kid):
            raise asyncio.CancelledError()

        with pytest.raises(Cancelled):
            await resolve_keys(DIDUrl(EBSI_DID), did_resolver=resolver)

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self):
        started = asyncio.Event()

        async def resolver(did, kid):
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(resolve_keys(DIDUrl(EBSI_DID), did_resolver=resolver))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestSdJwtVcVerifier:
    """Test verifying SD-JWT VCs with resolved issuer keys."""

    def _issue(self, issuer_jwk, spec, kid="signing-key-01"):
        header = {"typ": SD_JWT_VC_TYPE}
        if kid is not None:
            header["kid"] = kid
        return SdJwtIssuer(jwk_signer(issuer_jwk), header=header).issue(spec).get_or_raise()

    @pytest.mark.asyncio
    async def test_issuance_with_kid(self, issuer_jwk, issuer_metadata, vc_spec):
        issuance = self._issue(issuer_jwk, vc_spec)
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_issuance(issuance.serialize())

        assert result.is_ok
        assert result.value.recreate_claims()["given_name"] == "Erika"

    @pytest.mark.asyncio
    async def test_issuance_without_kid_single_key(self, issuer_jwk, vc_spec):
        document = {"issuer": ISSUER_URL, "jwks": {"keys": [jwk_public(issuer_jwk)]}}
        issuance = self._issue(issuer_jwk, vc_spec, kid=None)
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(document)))

        assert (await verifier.verify_issuance(issuance.serialize())).is_ok

    @pytest.mark.asyncio
    async def test_unknown_kid_is_invalid_jwt(self, issuer_jwk, issuer_metadata, vc_spec):
        issuance = self._issue(issuer_jwk, vc_spec, kid="rotated-away")
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.INVALID_JWT

    @pytest.mark.asyncio
    async def test_kid_of_other_key_is_invalid_jwt(self, issuer_jwk, issuer_metadata, vc_spec):
        issuance = self._issue(issuer_jwk, vc_spec, kid="signing-key-02")
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.INVALID_JWT

    @pytest.mark.asyncio
    async def test_malformed_jwks_uri_is_a_result(self, issuer_jwk, vc_spec):
        document = {"issuer": ISSUER_URL, "jwks_uri": "http://[::1"}
        issuance = self._issue(issuer_jwk, vc_spec)
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(document)))

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.INVALID_JWT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("typ", [None, "JWT", "kb+jwt"])
    async def test_issuer_jwt_must_be_typed_as_vc(self, issuer_jwk, issuer_metadata, vc_spec, typ):
        header = {"kid": "signing-key-01"}
        if typ is not None:
            header["typ"] = typ
        issuance = SdJwtIssuer(jwk_signer(issuer_jwk), header=header).issue(vc_spec).get_or_raise()
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.INVALID_JWT

    @pytest.mark.asyncio
    async def test_legacy_vc_type_accepted(self, issuer_jwk, issuer_metadata, vc_spec):
        header = {"typ": LEGACY_SD_JWT_VC_TYPE, "kid": "signing-key-01"}
        issuance = SdJwtIssuer(jwk_signer(issuer_jwk), header=header).issue(vc_spec).get_or_raise()
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        assert (await verifier.verify_issuance(issuance.serialize())).is_ok

    @pytest.mark.asyncio
    async def test_unreachable_issuer(self, issuer_jwk, vc_spec):
        issuance = self._issue(issuer_jwk, vc_spec)
        verifier = SdJwtVcVerifier(mock_client_factory(lambda request: httpx.Response(500)))

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.NETWORK_FAILURE

    @pytest.mark.asyncio
    async def test_unsupported_issuer(self, issuer_jwk):
        issuance = self._issue(issuer_jwk, sd_jwt().iss("urn:example:issuer").sd("a", 1))
        verifier = SdJwtVcVerifier(unreachable_factory)

        result = await verifier.verify_issuance(issuance.serialize())
        assert result.error.code is ErrorCode.UNSUPPORTED_ISSUER_FORMAT

    @pytest.mark.asyncio
    async def test_did_jwk_issuer(self):
        issuer_key = jwk_generate("Ed25519")
        did = "did:jwk:" + json_utils.b64url_encode_json(jwk_public(issuer_key))

        async def resolve_did_jwk(requested_did, kid):
            encoded = requested_did[len("did:jwk:"):]
            return [json_utils.b64url_decode_json(encoded)]

        issuance = self._issue(issuer_key, sd_jwt().iss(did).sd("degree", "MSc"), kid="#0")
        verifier = SdJwtVcVerifier(unreachable_factory, resolve_did_jwk)

        result = await verifier.verify_issuance(issuance.serialize())

        assert result.is_ok
        assert result.value.recreate_claims() == {"iss": did, "degree": "MSc"}

    @pytest.mark.asyncio
    async def test_presentation_with_key_binding(self, issuer_jwk, issuer_metadata, vc_spec, holder_signer):
        issuance = self._issue(issuer_jwk, vc_spec)
        text = issuance.present_claims(["family_name"]).serialize_with_key_binding(
            holder_signer, AUDIENCE, "nonce-1"
        )
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_presentation(
            text, KeyBindingVerifier.must_be_present(expected_audience=AUDIENCE, expected_nonce="nonce-1")
        )

        assert result.is_ok
        assert "given_name" not in result.value.recreate_claims()

    @pytest.mark.asyncio
    async def test_enveloped_presentation(self, issuer_jwk, issuer_metadata, vc_spec, holder_jwk, holder_signer, now):
        issuance = self._issue(issuer_jwk, vc_spec)
        envelope = issuance.present().envelope(holder_signer, AUDIENCE, issued_at=now)
        verifier = SdJwtVcVerifier(mock_client_factory(metadata_handler(issuer_metadata)))

        result = await verifier.verify_enveloped_presentation(
            envelope, KeyJwtVerifier(jwk_verifier(holder_jwk)), AUDIENCE, clock=lambda: now
        )

        assert result.is_ok
        assert result.value.envelope_claims["aud"] == AUDIENCE

    @pytest.mark.asyncio
    async def test_malformed_text(self):
        result = await SdJwtVcVerifier(unreachable_factory).verify_issuance("not an sd-jwt")
        assert result.error.code is ErrorCode.MALFORMED_SERIALIZATION
