"""
Tests for broker signature verification.
"""
import time

from jose import jwt

from postrelay.worker.signature import SignatureVerifier, body_digest, create_signature

from conftest import CALLBACK_URL, NEXT_SIGNING_KEY, SIGNING_KEY

BODY = b'{"jobId":"job-1","ownerId":"user-8c1d","platform":"twitter"}'


def _verifier(**kwargs):
    return SignatureVerifier(SIGNING_KEY, NEXT_SIGNING_KEY, callback_url=CALLBACK_URL, **kwargs)


class TestSignatureVerifier:

    def test_valid_signature(self):
        signature = create_signature(BODY, SIGNING_KEY, CALLBACK_URL)
        assert _verifier().verify(BODY, signature) is True

    def test_next_key_accepted_during_rotation(self):
        signature = create_signature(BODY, NEXT_SIGNING_KEY, CALLBACK_URL)
        assert _verifier().verify(BODY, signature) is True

    def test_unknown_key_rejected(self):
        signature = create_signature(BODY, "sig_attacker_0000000000000000000000", CALLBACK_URL)
        assert _verifier().verify(BODY, signature) is False

    def test_tampered_body_rejected(self):
        signature = create_signature(BODY, SIGNING_KEY, CALLBACK_URL)
        tampered = BODY.replace(b"job-1", b"job-2")
        assert _verifier().verify(tampered, signature) is False

    def test_missing_signature_rejected(self):
        assert _verifier().verify(BODY, None) is False
        assert _verifier().verify(BODY, "") is False

    def test_garbage_signature_rejected(self):
        assert _verifier().verify(BODY, "not-a-jwt") is False

    def test_expired_signature_rejected(self):
        signature = create_signature(BODY, SIGNING_KEY, CALLBACK_URL, ttl_seconds=-60)
        assert _verifier().verify(BODY, signature) is False

    def test_other_destination_rejected(self):
        signature = create_signature(BODY, SIGNING_KEY, "https://elsewhere.example.com/hook")
        assert _verifier().verify(BODY, signature) is False

    def test_destination_not_checked_without_callback_url(self):
        signature = create_signature(BODY, SIGNING_KEY, "https://elsewhere.example.com/hook")
        assert SignatureVerifier(SIGNING_KEY).verify(BODY, signature) is True

    def test_wrong_issuer_rejected(self):
        now = int(time.time())
        token = jwt.encode(
            {"iss": "Someone", "sub": CALLBACK_URL, "nbf": now, "exp": now + 300, "body": body_digest(BODY)},
            SIGNING_KEY,
            algorithm="HS256",
        )
        assert _verifier().verify(BODY, token) is False

    def test_padded_body_claim_accepted(self):
        now = int(time.time())
        token = jwt.encode(
            {"iss": "Upstash", "sub": CALLBACK_URL, "nbf": now, "exp": now + 300, "body": body_digest(BODY) + "="},
            SIGNING_KEY,
            algorithm="HS256",
        )
        assert _verifier().verify(BODY, token) is True

    def test_no_configured_keys_rejects_everything(self):
        signature = create_signature(BODY, SIGNING_KEY, CALLBACK_URL)
        assert SignatureVerifier("").verify(BODY, signature) is False


def test_body_digest_is_unpadded_base64url():
    digest = body_digest(b"hello")
    assert "=" not in digest
    assert "+" not in digest and "/" not in digest
    assert len(digest) == 43
