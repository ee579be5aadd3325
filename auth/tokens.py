"""
auth/tokens.py -- Session token codec and password hashing.

Security design decisions:
  Tokens: python-jose JWS compact serialization with HS256 (HMAC-SHA256).
       Layout is header.claims.signature, each part base64url without padding.
       The header is fixed to {"alg": "HS256", "typ": "session"}; claims are
       serialized as canonical JSON (sorted keys, no whitespace) so the same
       claims always produce the same bytes and therefore the same signature.
       Signature comparison inside jose uses hmac.compare_digest (constant
       time). decode_and_verify() returns None on any failure -- the
       Authenticator turns that into AuthenticationError.

  Claims: parsed into the strict SessionClaims model. A token that verifies
       but carries a missing, extra, or mistyped claim is rejected exactly like
       a forged one.

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-force of low-entropy secrets expensive. DUMMY_HASH enables timing
       equalization in Authenticator.login() so response time does not reveal
       whether an email exists.

  Secret: injected into TokenCodec at construction by the composition root.
       This module never reads configuration itself.

Layer rule: no imports from api/ or access/.
"""

from __future__ import annotations

import json
import logging
import secrets

import bcrypt
from jose import jws
from jose.constants import ALGORITHMS
from jose.exceptions import JWSError
from pydantic import ValidationError as PydanticValidationError

from auth.models import SessionClaims

logger = logging.getLogger("accessgate.auth")

TOKEN_TYPE = "session"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length well below that threshold.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash (e.g. imported from another system) makes bcrypt
    raise ValueError; that is a failed match, not a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("accessgate_timing_dummy")


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


def generate_secret() -> str:
    """Return a fresh signing secret: 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


class TokenCodec:
    """Encode and verify signed session tokens with one symmetric secret.

    Pure and stateless apart from the immutable secret, so one instance is
    shared by every request.

    Usage:
        codec = TokenCodec(settings.jwt_secret)
        token = codec.encode(claims)
        claims = codec.decode_and_verify(token)   # SessionClaims or None
    """

    algorithm = ALGORITHMS.HS256

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret")
        self._secret = secret

    def encode(self, claims: SessionClaims) -> str:
        """Serialize and sign claims, returning header.claims.signature."""
        payload = json.dumps(claims.model_dump(), sort_keys=True, separators=(",", ":")).encode("utf-8")
        return jws.sign(payload, self._secret, headers={"typ": TOKEN_TYPE}, algorithm=self.algorithm)

    def decode_and_verify(self, token: str) -> SessionClaims | None:
        """Verify the signature and return the parsed claims, or None on any failure.

        Failure cases, all collapsed to None:
          - not exactly three dot-separated parts, or malformed base64
          - signature mismatch (tampered header/claims, different secret)
          - header algorithm other than HS256, or header type other than "session"
          - claims that are not JSON or do not match SessionClaims exactly
        """
        if not token or token.count(".") != 2:
            return None
        try:
            payload = jws.verify(token, self._secret, algorithms=[self.algorithm])
            header = jws.get_unverified_header(token)
        except JWSError:
            return None
        # The header is covered by the signature, so reading it after verify() is safe.
        if header.get("typ") != TOKEN_TYPE:
            return None
        try:
            return SessionClaims.model_validate_json(payload)
        except PydanticValidationError:
            return None
