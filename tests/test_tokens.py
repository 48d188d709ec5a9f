"""
Unit tests for TokenService issue/validate.
"""
import string

import jwt
import pytest

from lens_manager.auth.security import Identity, TokenService
from lens_manager.errors import SignatureSecretMissing

SECRET = "unit-test-secret-0123456789abcdef0123456789"
T0 = 1_700_000_000.0
B64URL = string.ascii_uppercase + string.ascii_lowercase + string.digits + "-_"


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens(clock):
    return TokenService(SECRET, clock=clock)


IDENTITIES = [
    Identity(user_id=1, email="alice@example.com", role="photographer"),
    Identity(user_id=42, email="admin@example.com", role="admin"),
    Identity(user_id=7, email="ánna.müller@exämple.com", role="photographer"),
    Identity(user_id=9, email="写真家@例え.jp", role="photographer"),
]


@pytest.mark.parametrize("identity", IDENTITIES)
def test_round_trip_returns_same_identity(tokens, identity):
    token = tokens.issue(identity)
    assert tokens.validate(token) == identity


def test_unicode_email_survives_exactly(tokens):
    email = "zoë+studio@fotografía.example"
    out = tokens.validate(tokens.issue(Identity(3, email, "photographer")))
    assert out is not None
    assert out.email == email


def test_token_wire_format(tokens):
    token = tokens.issue(Identity(5, "bob@example.com", "photographer"))
    parts = token.split(".")
    assert len(parts) == 3
    assert all(set(p) <= set(B64URL) for p in parts)

    payload = jwt.decode(token, options={"verify_signature": False})
    assert payload["iss"] == "lens-booking-pro"
    assert payload["aud"] == "lens-booking-users"
    assert payload["exp"] - payload["iat"] == 86400
    assert payload["data"] == {"user_id": 5, "email": "bob@example.com", "role": "photographer"}


def test_mutating_any_signature_character_invalidates(tokens):
    token = tokens.issue(Identity(11, "carol@example.com", "photographer"))
    head, body, sig = token.split(".")
    for i, ch in enumerate(sig):
        # Neighbouring alphabet characters differ only in their low bits, which is
        # exactly the case that matters for the final character.
        for step in (1, 32):
            repl = B64URL[(B64URL.index(ch) + step) % 64]
            mutated = sig[:i] + repl + sig[i + 1 :]
            assert tokens.validate(f"{head}.{body}.{mutated}") is None, (i, ch, repl)


def test_non_alphabet_signature_character_invalidates(tokens):
    token = tokens.issue(Identity(11, "carol@example.com", "photographer"))
    head, body, sig = token.split(".")
    assert tokens.validate(f"{head}.{body}.{sig[:-1]}!") is None
    assert tokens.validate(f"{head}.{body}.{sig}=") is None


def test_tampered_payload_invalidates(tokens):
    token = tokens.issue(Identity(12, "dave@example.com", "photographer"))
    head, _body, sig = token.split(".")
    forged = jwt.encode({"data": {"user_id": 1, "email": "x@example.com", "role": "admin"}}, "other-secret-0123456789abcdef0123")
    forged_body = forged.split(".")[1]
    assert tokens.validate(f"{head}.{forged_body}.{sig}") is None


def test_negative_ttl_token_is_expired_even_with_valid_signature(clock):
    svc = TokenService(SECRET, ttl_seconds=-60, clock=clock)
    token = svc.issue(Identity(1, "alice@example.com", "photographer"))
    assert svc.validate(token) is None


def test_expiry_with_simulated_clock(tokens, clock):
    token = tokens.issue(Identity(1, "alice@example.com", "photographer"))

    clock.advance(86400 - 1)
    assert tokens.validate(token) is not None

    clock.advance(1)  # exactly at exp
    assert tokens.validate(token) is None


def test_expired_after_24h_plus_one_second(tokens, clock):
    token = tokens.issue(Identity(1, "alice@example.com", "photographer"))
    clock.advance(24 * 3600 + 1)
    assert tokens.validate(token) is None


@pytest.mark.parametrize(
    "raw",
    [
        "abc.def",
        "",
        "abc",
        "a.b.c.d",
        "abc.def.ghi",
        "..",
        "not a token at all",
        None,
        12345,
    ],
)
def test_malformed_tokens_return_none_without_raising(tokens, raw):
    assert tokens.validate(raw) is None


def test_other_secret_rejected(tokens, clock):
    other = TokenService("another-secret-0123456789abcdef0123456", clock=clock)
    assert tokens.validate(other.issue(Identity(1, "a@example.com", "admin"))) is None


def test_issuer_and_audience_are_checked(clock):
    a = TokenService(SECRET, clock=clock)
    wrong_aud = TokenService(SECRET, audience="someone-else", clock=clock)
    wrong_iss = TokenService(SECRET, issuer="someone-else", clock=clock)
    token = a.issue(Identity(1, "a@example.com", "admin"))
    assert wrong_aud.validate(token) is None
    assert wrong_iss.validate(token) is None


def test_unsigned_token_rejected(tokens):
    payload = {
        "iss": "lens-booking-pro",
        "aud": "lens-booking-users",
        "iat": int(T0),
        "exp": int(T0) + 3600,
        "data": {"user_id": 1, "email": "a@example.com", "role": "admin"},
    }
    token = jwt.encode(payload, None, algorithm="none")
    assert tokens.validate(token) is None


def test_token_without_identity_rejected(tokens):
    payload = {"iss": "lens-booking-pro", "aud": "lens-booking-users", "iat": int(T0), "exp": int(T0) + 3600}
    token = jwt.encode(payload, SECRET, algorithm="HS256")
    assert tokens.validate(token) is None


@pytest.mark.parametrize("secret", ["", None])
def test_missing_secret_fails_construction(secret):
    with pytest.raises(SignatureSecretMissing):
        TokenService(secret)
