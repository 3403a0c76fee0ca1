"""Tests for key material, signing and DID Documents."""

import json

import base58
import pytest
import respx
from httpx import Response

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from transferable_vc.canonical import base64url_decode, base64url_encode, canonical_bytes, without_proof
from transferable_vc.did_resolver import DIDResolutionError, DIDResolver, build_did_document
from transferable_vc.keys import (
    KeyMaterialError,
    P256_PRIVATE_CODEC,
    KeyPair,
    load_key_pairs,
    private_key_from_multibase,
    private_key_to_multibase,
    public_key_from_multibase,
    public_key_to_multibase,
)

from conftest import DID, DID_URL, METHOD_ID


def same_key(a, b):
    return a.public_numbers() == b.public_numbers()


class TestMultikey:

    def test_public_key_round_trip(self, key_pair):
        encoded = public_key_to_multibase(key_pair.public_key)
        assert encoded.startswith("zDn")
        assert same_key(public_key_from_multibase(encoded), key_pair.public_key)

    def test_private_key_round_trip(self, key_pair):
        encoded = private_key_to_multibase(key_pair.private_key)
        restored = private_key_from_multibase(encoded)
        assert restored.private_numbers() == key_pair.private_key.private_numbers()

    def test_rejects_non_base58btc(self):
        with pytest.raises(KeyMaterialError):
            public_key_from_multibase("uAAAA")

    def test_rejects_wrong_codec(self, key_pair):
        with pytest.raises(KeyMaterialError):
            public_key_from_multibase(private_key_to_multibase(key_pair.private_key))

    def test_rejects_zero_secret(self):
        encoded = "z" + base58.b58encode(P256_PRIVATE_CODEC + bytes(32)).decode("ascii")
        with pytest.raises(KeyMaterialError, match="Invalid P-256 secret"):
            private_key_from_multibase(encoded)


class TestKeyPair:

    def test_multikey_round_trip(self, key_pair):
        restored = KeyPair.from_dict(key_pair.to_dict())
        assert restored == key_pair
        assert same_key(restored.public_key, key_pair.public_key)

    def test_jwk_round_trip(self, jwk_key_pair):
        data = jwk_key_pair.to_dict()
        assert data["publicKeyJwk"]["crv"] == "P-256"
        assert "d" in data["privateKeyJwk"]
        restored = KeyPair.from_dict(data)
        assert same_key(restored.public_key, jwk_key_pair.public_key)

    def test_controller_defaults_to_did(self, key_pair):
        data = key_pair.to_dict()
        del data["controller"]
        assert KeyPair.from_dict(data).did == DID

    def test_mismatched_public_key(self, key_pair):
        data = key_pair.to_dict()
        data["publicKeyMultibase"] = public_key_to_multibase(
            ec.generate_private_key(ec.SECP256R1()).public_key()
        )
        with pytest.raises(KeyMaterialError):
            KeyPair.from_dict(data)

    def test_zero_jwk_secret(self, jwk_key_pair):
        data = jwk_key_pair.to_dict()
        data["privateKeyJwk"]["d"] = base64url_encode(bytes(32))
        with pytest.raises(KeyMaterialError):
            KeyPair.from_dict(data)

    def test_missing_secret(self, key_pair):
        with pytest.raises(KeyMaterialError):
            KeyPair.from_dict(key_pair.verification_method())

    def test_generate(self):
        pair = KeyPair.generate("did:web:issuer.example.com")
        assert pair.id == "did:web:issuer.example.com#keys-1"
        assert pair.type == "Multikey"


class TestLoadKeyPairs:

    def test_single_object(self, key_pairs_json):
        pairs = load_key_pairs(key_pairs_json)
        assert [pair.id for pair in pairs] == [METHOD_ID]

    def test_list(self, key_pair):
        other = KeyPair.generate(DID, "key-2")
        pairs = load_key_pairs(json.dumps([key_pair.to_dict(), other.to_dict()]))
        assert [pair.id for pair in pairs] == [METHOD_ID, f"{DID}#key-2"]

    def test_escaped_quotes(self, key_pairs_json):
        escaped = key_pairs_json.replace('"', '\\"')
        assert load_key_pairs(escaped)[0].id == METHOD_ID

    @pytest.mark.parametrize("raw", ["not json", "[]", "42"])
    def test_invalid(self, raw):
        with pytest.raises(KeyMaterialError):
            load_key_pairs(raw)


class TestSigner:

    def test_sign_fills_in_identity(self, signer, unsigned_credential):
        signed = signer.sign(unsigned_credential)

        assert signed["id"].startswith("urn:uuid:")
        assert signed["issuer"] == DID
        assert signed["validFrom"].endswith("Z")
        assert signed["proof"]["type"] == "DataIntegrityProof"
        assert signed["proof"]["cryptosuite"] == "ecdsa-jcs-2022"
        assert signed["proof"]["verificationMethod"] == METHOD_ID
        assert signed["proof"]["proofPurpose"] == "assertionMethod"

    def test_does_not_modify_input(self, signer, unsigned_credential):
        before = json.dumps(unsigned_credential, sort_keys=True)
        signer.sign(unsigned_credential)
        assert json.dumps(unsigned_credential, sort_keys=True) == before

    def test_keeps_existing_id(self, signer, unsigned_credential):
        unsigned_credential["id"] = "urn:uuid:fixed"
        assert signer.sign(unsigned_credential)["id"] == "urn:uuid:fixed"

    def test_signature_verifies(self, signer, key_pair, unsigned_credential):
        signed = signer.sign(unsigned_credential)
        key_pair.public_key.verify(
            base64url_decode(signed["proof"]["proofValue"]),
            canonical_bytes(without_proof(signed)),
            ec.ECDSA(hashes.SHA256()),
        )

    def test_resigning_replaces_proof(self, signer, unsigned_credential):
        signed = signer.sign(unsigned_credential)
        resigned = signer.sign(signed)
        assert resigned["id"] == signed["id"]
        assert isinstance(resigned["proof"], dict)


class TestDIDDocument:

    def test_build_lists_all_relationships(self, key_pair):
        document = build_did_document([key_pair])

        assert document["id"] == DID
        assert document["verificationMethod"][0]["publicKeyMultibase"].startswith("zDn")
        assert "secretKeyMultibase" not in document["verificationMethod"][0]
        for relationship in ("authentication", "assertionMethod",
                             "capabilityInvocation", "capabilityDelegation"):
            assert document[relationship] == [METHOD_ID]

    def test_build_jwk_adds_context(self, jwk_key_pair):
        document = build_did_document([jwk_key_pair])
        assert "https://w3id.org/security/jwk/v1" in document["@context"]
        assert "privateKeyJwk" not in document["verificationMethod"][0]

    def test_build_rejects_mixed_controllers(self, key_pair):
        with pytest.raises(ValueError):
            build_did_document([key_pair, KeyPair.generate("did:web:other.example.com")])

    def test_build_requires_keys(self):
        with pytest.raises(ValueError):
            build_did_document([])

    @respx.mock
    def test_resolve_multikey_method(self, did_document, key_pair):
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        vm = DIDResolver().resolve_verification_method(METHOD_ID)

        assert same_key(vm.public_key(), key_pair.public_key)

    @respx.mock
    def test_resolve_jwk_method(self, jwk_key_pair):
        respx.get(DID_URL).mock(return_value=Response(200, json=build_did_document([jwk_key_pair])))

        vm = DIDResolver().resolve_verification_method(METHOD_ID)

        assert same_key(vm.public_key(), jwk_key_pair.public_key)

    @respx.mock
    def test_relative_ids_are_made_absolute(self, did_document):
        did_document["verificationMethod"][0]["id"] = "#key-1"
        did_document["assertionMethod"] = ["#key-1"]
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        document = DIDResolver().resolve(DID)

        assert document.is_authorized(METHOD_ID, "assertionMethod")

    @respx.mock
    def test_resolution_is_not_cached(self, did_document):
        route = respx.get(DID_URL).mock(return_value=Response(200, json=did_document))
        resolver = DIDResolver()

        resolver.resolve(DID)
        resolver.resolve(DID)

        assert route.call_count == 2

    @respx.mock
    def test_unknown_method(self, did_document):
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))
        with pytest.raises(DIDResolutionError):
            DIDResolver().resolve_verification_method(f"{DID}#missing")

    @respx.mock
    def test_id_mismatch(self, did_document):
        did_document["id"] = "did:web:evil.example.com"
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))
        with pytest.raises(DIDResolutionError):
            DIDResolver().resolve(DID)

    @respx.mock
    def test_http_error(self):
        respx.get(DID_URL).mock(return_value=Response(500))
        with pytest.raises(DIDResolutionError, match="500"):
            DIDResolver().resolve(DID)

    def test_not_did_web(self):
        with pytest.raises(DIDResolutionError):
            DIDResolver().resolve("did:key:z6Mk")

    @respx.mock
    def test_unknown_relationship(self, did_document):
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))
        document = DIDResolver().resolve(DID)
        with pytest.raises(ValueError):
            document.is_authorized(METHOD_ID, "keyAgreement")
