from datetime import datetime, timedelta, timezone

import jwt
import pytest

from config import Settings
from errors import TokenExpired, TokenInvalid, TokenMalformed
from security import TokenKind, TokenService, hash_password, verify_password


ACCESS_SECRET = "access-secret-0123456789abcdef-one"
REFRESH_SECRET = "refresh-secret-0123456789abcdef-one"


@pytest.fixture
def tokens():
    return TokenService(Settings(jwt_secret=ACCESS_SECRET, jwt_refresh_secret=REFRESH_SECRET))


def test_password_hash_round_trip():
    hashed = hash_password("Secret123", rounds=4)
    assert hashed != "Secret123"
    assert verify_password("Secret123", hashed)
    assert not verify_password("secret123", hashed)


def test_password_hash_is_salted():
    assert hash_password("Secret123", rounds=4) != hash_password("Secret123", rounds=4)


def test_verify_password_rejects_garbage_hash():
    assert not verify_password("Secret123", "not-a-bcrypt-hash")
    assert not verify_password("Secret123", "")


def test_access_token_carries_identity_and_role(tokens):
    token = tokens.issue_access_token("64b7f0c2a1b2c3d4e5f60718", "a@x.com", "admin")
    claims = tokens.verify(token, TokenKind.ACCESS)
    assert claims["sub"] == "64b7f0c2a1b2c3d4e5f60718"
    assert claims["role"] == "admin"
    assert claims["type"] == "access"


def test_refresh_token_carries_identity_only(tokens):
    claims = tokens.verify(tokens.issue_refresh_token("abc"), TokenKind.REFRESH)
    assert claims["sub"] == "abc"
    assert "role" not in claims


def test_refresh_tokens_are_unique(tokens):
    assert tokens.issue_refresh_token("abc") != tokens.issue_refresh_token("abc")


def test_access_token_is_not_a_refresh_token(tokens):
    token = tokens.issue_access_token("abc", "a@x.com", "user")
    with pytest.raises(TokenInvalid):
        tokens.verify(token, TokenKind.REFRESH)


def test_wrong_secret_is_invalid(tokens):
    other = TokenService(Settings(jwt_secret="another-secret-0123456789abcdef-two", jwt_refresh_secret=REFRESH_SECRET))
    with pytest.raises(TokenInvalid):
        tokens.verify(other.issue_access_token("abc", "a@x.com", "user"), TokenKind.ACCESS)


def test_expired_token(tokens):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    token = jwt.encode(
        {"sub": "abc", "type": "access", "iat": past - timedelta(minutes=15), "exp": past},
        ACCESS_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenExpired) as exc:
        tokens.verify(token, TokenKind.ACCESS)
    assert exc.value.status_code == 401


def test_malformed_token(tokens):
    with pytest.raises(TokenMalformed):
        tokens.verify("definitely-not-a-jwt", TokenKind.ACCESS)


def test_issue_pair_shape(tokens):
    pair = tokens.issue_pair({"_id": "abc", "email": "a@x.com", "role": "user"})
    assert pair["token_type"] == "Bearer"
    assert pair["expires_in"] == 15 * 60
    assert tokens.verify(pair["access_token"], TokenKind.ACCESS)["email"] == "a@x.com"
    assert tokens.verify(pair["refresh_token"], TokenKind.REFRESH)["sub"] == "abc"
