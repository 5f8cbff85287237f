from datetime import timedelta

import pytest
from jose import jwt

from account_service.core.errors import (
    ExpiredToken,
    InvalidSignature,
    MalformedToken,
    TokenConfigurationError,
    ValidationError,
)
from account_service.core.security import (
    MAX_PASSWORD_BYTES,
    TokenCodec,
    burn_password_check,
    hash_password,
    verify_password,
)
from account_service.rbac.roles import RoleSet

SECRET = "unit-test-secret"


@pytest.fixture
def token_codec() -> TokenCodec:
    return TokenCodec(secret=SECRET)


# ── Passwords ────────────────────────────────────────────────────────

def test_hash_then_verify_round_trip():
    hashed = hash_password("s3cret!")
    assert hashed != "s3cret!"
    assert verify_password("s3cret!", hashed)
    assert not verify_password("wrong", hashed)


def test_same_password_hashes_differently():
    assert hash_password("same-pass") != hash_password("same-pass")


@pytest.mark.parametrize("stored", [None, "", "not-a-bcrypt-hash"])
def test_verify_against_missing_or_garbage_hash_is_false(stored):
    assert verify_password("anything", stored) is False


def test_password_over_bcrypt_limit_is_a_validation_error():
    with pytest.raises(ValidationError) as exc:
        hash_password("x" * 80)
    assert exc.value.status_code == 400


def test_password_limit_counts_bytes_not_characters():
    # 25 three-byte characters: 75 bytes.
    with pytest.raises(ValidationError):
        hash_password("\u20ac" * 25)
    assert verify_password("x" * MAX_PASSWORD_BYTES, hash_password("x" * MAX_PASSWORD_BYTES))


def test_verify_with_overlong_password_is_false():
    assert verify_password("x" * 80, hash_password("x" * 72)) is False


def test_burn_password_check_returns_nothing():
    assert burn_password_check("whatever") is None


# ── Codec configuration ──────────────────────────────────────────────

def test_empty_secret_is_rejected():
    with pytest.raises(TokenConfigurationError):
        TokenCodec(secret="")


def test_non_hmac_algorithm_is_rejected():
    with pytest.raises(TokenConfigurationError):
        TokenCodec(secret=SECRET, algorithm="RS256")


def test_secret_is_not_in_repr(token_codec):
    assert SECRET not in repr(token_codec)


# ── Issue / verify ───────────────────────────────────────────────────

def test_issue_then_verify_returns_claims(token_codec):
    token = token_codec.issue(42, "alice", RoleSet.of(["ROLE_USER", "ROLE_ADMIN"]))

    claims = token_codec.verify(token)

    assert claims.subject_id == "42"
    assert claims.username == "alice"
    assert list(claims.roles) == ["ROLE_USER", "ROLE_ADMIN"]
    assert claims.expires_at - claims.issued_at == timedelta(hours=24)
    assert claims.token_id


def test_tokens_for_same_subject_are_distinct(token_codec):
    roles = RoleSet.of(["ROLE_USER"])
    assert token_codec.issue(1, "bob", roles) != token_codec.issue(1, "bob", roles)


def test_expired_token(token_codec):
    token = token_codec.issue(1, "bob", RoleSet.of(["ROLE_USER"]), ttl=timedelta(seconds=-5))
    with pytest.raises(ExpiredToken):
        token_codec.verify(token)
    assert token_codec.is_valid(token) is False


def test_token_signed_with_other_secret(token_codec):
    other = TokenCodec(secret="someone-else")
    token = other.issue(1, "bob", RoleSet.of(["ROLE_USER"]))
    with pytest.raises(InvalidSignature):
        token_codec.verify(token)


def test_algorithm_substitution_is_rejected(token_codec):
    # Same secret, different HMAC: must still fail on the header check.
    token = jwt.encode(
        {"sub": "1", "username": "bob", "roles": ["ROLE_USER"], "iat": 0, "exp": 9999999999},
        SECRET,
        algorithm="HS512",
    )
    with pytest.raises(InvalidSignature):
        token_codec.verify(token)


def test_unsigned_token_is_rejected(token_codec):
    token = "eyJhbGciOiJub25lIiwidHlwIjoiSldUIn0.eyJzdWIiOiIxIn0."
    with pytest.raises(InvalidSignature):
        token_codec.verify(token)


@pytest.mark.parametrize("token", ["", "garbage", "a.b", "a.b.c"])
def test_malformed_tokens(token_codec, token):
    with pytest.raises(MalformedToken):
        token_codec.verify(token)


def test_missing_required_claim(token_codec):
    token = jwt.encode({"sub": "1", "iat": 0, "exp": 9999999999}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        token_codec.verify(token)


def test_roles_claim_must_be_a_list(token_codec):
    token = jwt.encode(
        {"sub": "1", "username": "bob", "roles": "ROLE_USER", "iat": 0, "exp": 9999999999},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(MalformedToken):
        token_codec.verify(token)
