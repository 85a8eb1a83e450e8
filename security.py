import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict

import bcrypt
import jwt

from config import Settings
from errors import TokenExpired, TokenInvalid, TokenMalformed

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if not password_hash or len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenService:
    """Issues and verifies the access/refresh JWT pair.

    Access and refresh tokens are signed with different secrets and carry a
    ``type`` claim, so one can never be replayed as the other. Verification
    is purely cryptographic; whether a refresh token is still the account's
    current one is the caller's business.
    """

    def __init__(self, settings: Settings):
        self._secrets = {
            TokenKind.ACCESS: settings.jwt_secret,
            TokenKind.REFRESH: settings.jwt_refresh_secret,
        }
        self._algorithm = settings.jwt_algorithm
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)

    def _encode(self, kind: TokenKind, claims: Dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "type": kind.value, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, self._secrets[kind], algorithm=self._algorithm)

    def issue_access_token(self, identity: str, email: str, role: str) -> str:
        return self._encode(TokenKind.ACCESS, {"sub": identity, "email": email, "role": role}, self.access_ttl)

    def issue_refresh_token(self, identity: str) -> str:
        # jti keeps two tokens minted in the same second distinct
        return self._encode(TokenKind.REFRESH, {"sub": identity, "jti": secrets.token_hex(16)}, self.refresh_ttl)

    def issue_pair(self, user: Dict[str, Any]) -> Dict[str, Any]:
        identity = str(user["_id"])
        role = user.get("role")
        role = role.value if isinstance(role, Enum) else role
        return {
            "access_token": self.issue_access_token(identity, user["email"], role),
            "refresh_token": self.issue_refresh_token(identity),
            "token_type": "Bearer",
            "expires_in": int(self.access_ttl.total_seconds()),
        }

    def verify(self, token: str, kind: TokenKind) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidSignatureError:
            raise TokenInvalid()
        except jwt.DecodeError:
            raise TokenMalformed()
        except jwt.InvalidTokenError:
            raise TokenInvalid()
        if claims.get("type") != kind.value:
            raise TokenInvalid()
        return claims
