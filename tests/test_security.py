from datetime import timedelta

from jose import jwt

from recapbot.core.config import settings
from recapbot.core.security import create_state_token, decode_id_token_claims, decode_state_token


def test_state_round_trip():
    state = create_state_token("U1", "T1")
    assert decode_state_token(state) == ("U1", "T1")


def test_state_without_team():
    assert decode_state_token(create_state_token("U1", None)) == ("U1", None)


def test_expired_state_is_rejected():
    state = create_state_token("U1", "T1", expires_delta=timedelta(minutes=-1))
    assert decode_state_token(state) is None


def test_state_signed_with_another_key_is_rejected():
    forged = jwt.encode({"sub": "U1", "team": "T1"}, "not-the-secret", algorithm=settings.ALGORITHM)
    assert decode_state_token(forged) is None


def test_unsigned_state_is_rejected():
    assert decode_state_token("UVICTIM|TVICTIM") is None
    assert decode_state_token("") is None


def test_unsigned_state_when_allowed(monkeypatch):
    monkeypatch.setattr(settings, "OAUTH_ALLOW_UNSIGNED_STATE", True)

    assert decode_state_token("U1|T1") == ("U1", "T1")
    assert decode_state_token("U1|") is None


def test_id_token_claims_are_read_without_verification():
    id_token = jwt.encode({"email": "ada@example.com"}, "googles-key", algorithm="HS256")

    assert decode_id_token_claims(id_token) == {"email": "ada@example.com"}
    assert decode_id_token_claims("not.a.jwt") is None
    assert decode_id_token_claims(None) is None
