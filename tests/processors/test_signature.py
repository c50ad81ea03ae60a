"""
Tests for X-Hub-Signature-256 verification.
"""

import json

from wacloud.processors.signature import SignatureVerifier, reserialize_body
from wacloud.schemas.webhook.request import UniversalRequest

SECRET = "test_app_secret"


class TestSignatureVerifier:
    def test_valid_signature(self, sign):
        payload = b'{"object":"whatsapp_business_account"}'
        verifier = SignatureVerifier(SECRET)

        assert verifier.verify(payload, sign(payload))

    def test_compute_matches_header_format(self, sign):
        payload = b"body"
        assert SignatureVerifier(SECRET).compute(payload) == sign(payload)

    def test_tampered_body_rejected(self, sign):
        verifier = SignatureVerifier(SECRET)
        signature = sign(b'{"a":1}')

        assert not verifier.verify(b'{"a":2}', signature)

    def test_wrong_secret_rejected(self, sign):
        payload = b"payload"
        assert not SignatureVerifier("other_secret").verify(payload, sign(payload))

    def test_missing_header_rejected(self):
        assert not SignatureVerifier(SECRET).verify(b"payload", None)

    def test_missing_prefix_rejected(self, sign):
        payload = b"payload"
        bare_digest = sign(payload).removeprefix("sha256=")

        assert not SignatureVerifier(SECRET).verify(payload, bare_digest)

    def test_fails_closed_without_secret(self, sign):
        verifier = SignatureVerifier(None)
        payload = b"payload"

        assert not verifier.is_configured
        assert not verifier.verify(payload, sign(payload, ""))

    def test_str_payload_is_utf8_encoded(self, sign):
        text = '{"text":"olá"}'
        assert SignatureVerifier(SECRET).verify(text, sign(text.encode("utf-8")))


class TestVerifyRequest:
    def test_prefers_raw_bytes(self, sign):
        raw = b'{ "object" : "whatsapp_business_account" }'
        request = UniversalRequest(
            method="POST",
            headers={"x-hub-signature-256": sign(raw)},
            body={"object": "different"},
            raw_body=raw,
        )

        assert SignatureVerifier(SECRET).verify_request(request)

    def test_header_lookup_is_case_insensitive(self, sign):
        raw = b"{}"
        request = UniversalRequest(
            method="POST", headers={"X-HUB-SIGNATURE-256": sign(raw)}, raw_body=raw
        )

        assert SignatureVerifier(SECRET).verify_request(request)

    def test_falls_back_to_compact_reserialization(self, sign):
        body = {"object": "whatsapp_business_account", "entry": []}
        compact = json.dumps(body, separators=(",", ":")).encode()
        request = UniversalRequest(
            method="POST", headers={"x-hub-signature-256": sign(compact)}, body=body
        )

        assert SignatureVerifier(SECRET).verify_request(request)

    def test_reserialization_may_not_match_wire_bytes(self, sign):
        body = {"object": "whatsapp_business_account"}
        pretty = json.dumps(body, indent=2).encode()
        request = UniversalRequest(
            method="POST", headers={"x-hub-signature-256": sign(pretty)}, body=body
        )

        assert not SignatureVerifier(SECRET).verify_request(request)


def test_reserialize_body_passes_bytes_through():
    assert reserialize_body(b"raw") == b"raw"
    assert reserialize_body("text") == b"text"
    assert reserialize_body({"a": "é"}) == '{"a":"é"}'.encode()
