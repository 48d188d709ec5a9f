from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import jwt
from jwt.utils import base64url_decode, base64url_encode
from passlib.context import CryptContext

from lens_manager.errors import SignatureSecretMissing


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except ValueError:
        # Unrecognized / corrupt hash string.
        return False


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    role: str

    def as_claims(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "email": self.email, "role": self.role}


def _canonical_b64(segment: str) -> bool:
    """True when `segment` is the one canonical unpadded base64url spelling of its bytes.

    The last character of a 32-byte HMAC carries two unused bits; without this
    check, flipping them would still decode to the same signature.
    """
    try:
        raw = base64url_decode(segment)
    except ValueError:
        return False
    return base64url_encode(raw).decode("ascii") == segment


class TokenService:
    """Issue and validate HS256 access tokens.

    Tokens carry `iss`, `aud`, `iat`, `exp` and a nested `data` object with the
    caller's identity. Validation never raises for a bad token: it returns None.
    """

    def __init__(
        self,
        secret: Optional[str],
        *,
        ttl_seconds: int = 86400,
        issuer: str = "lens-booking-pro",
        audience: str = "lens-booking-users",
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise SignatureSecretMissing("AUTH_JWT_SECRET is not configured")
        self._secret = secret
        self.ttl_seconds = int(ttl_seconds)
        self.issuer = issuer
        self.audience = audience
        self._clock = clock

    @classmethod
    def from_config(cls, cfg: Any) -> "TokenService":
        return cls(
            cfg.AUTH_JWT_SECRET,
            ttl_seconds=cfg.AUTH_TOKEN_TTL_SECONDS,
            issuer=cfg.AUTH_JWT_ISSUER,
            audience=cfg.AUTH_JWT_AUDIENCE,
        )

    def issue(self, identity: Identity) -> str:
        iat = int(self._clock())
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "iat": iat,
            "exp": iat + self.ttl_seconds,
            "data": identity.as_claims(),
        }
        return jwt.encode(payload, self._secret, algorithm=_JWT_ALG)

    def validate(self, token: Any) -> Optional[Identity]:
        if not isinstance(token, str):
            return None
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return None
        if not _canonical_b64(parts[2]):
            return None

        try:
            # Signature (constant-time compare), alg, iss and aud are checked by PyJWT.
            # Time claims are checked below against our own clock.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_JWT_ALG],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["exp", "iat", "iss", "aud"],
                },
            )
        except (jwt.InvalidTokenError, ValueError, TypeError):
            return None

        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if exp <= self._clock():
            return None

        return _identity_from_claims(payload.get("data"))


def _identity_from_claims(data: Any) -> Optional[Identity]:
    if not isinstance(data, dict):
        return None
    user_id = data.get("user_id")
    email = data.get("email")
    role = data.get("role")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        return None
    if not isinstance(email, str) or not isinstance(role, str):
        return None
    return Identity(user_id=user_id, email=email, role=role)
