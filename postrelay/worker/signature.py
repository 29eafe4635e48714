"""
Broker Signature Verification
=============================
QStash signs every callback it delivers with a short-lived JWT (HS256) sent in
the ``Upstash-Signature`` header. The token binds the request to:

- ``iss``: always "Upstash"
- ``sub``: the destination URL
- ``exp`` / ``nbf``: the window the request is valid in (replay protection)
- ``body``: base64url SHA-256 digest of the raw request body

Two signing keys are active at any time so keys can be rotated without
rejecting in-flight callbacks.
"""
import base64
import hashlib
import hmac
import time
import uuid
from typing import List, Optional

from jose import jwt, JWTError

ISSUER = "Upstash"
ALGORITHM = "HS256"
SIGNATURE_HEADER = "Upstash-Signature"


def body_digest(body: bytes) -> str:
    """base64url SHA-256 of the body, without padding"""
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def create_signature(body: bytes, signing_key: str, url: str, ttl_seconds: int = 300) -> str:
    """Sign a body the way the broker does (local tooling and tests)."""
    now = int(time.time())
    claims = {
        "iss": ISSUER,
        "sub": url,
        "iat": now,
        "nbf": now,
        "exp": now + ttl_seconds,
        "jti": f"jwt_{uuid.uuid4().hex}",
        "body": body_digest(body),
    }
    return jwt.encode(claims, signing_key, algorithm=ALGORITHM)


class SignatureVerifier:
    """Checks that an execution callback was produced by the broker."""

    def __init__(
        self,
        current_key: str,
        next_key: Optional[str] = None,
        callback_url: Optional[str] = None,
        leeway: int = 0,
    ):
        self.keys: List[str] = [key for key in (current_key, next_key) if key]
        self.callback_url = callback_url
        self.leeway = leeway

    def verify(self, body: bytes, signature: Optional[str]) -> bool:
        """True only if some active key validates the token and the body digest matches."""
        if not signature or not self.keys:
            return False
        return any(self._verify_with_key(key, body, signature) for key in self.keys)

    def _verify_with_key(self, key: str, body: bytes, signature: str) -> bool:
        try:
            claims = jwt.decode(
                signature,
                key,
                algorithms=[ALGORITHM],
                issuer=ISSUER,
                subject=self.callback_url,
                options={"verify_aud": False, "leeway": self.leeway},
            )
        except JWTError:
            return False

        claimed = str(claims.get("body", "")).rstrip("=")
        return hmac.compare_digest(claimed, body_digest(body))
