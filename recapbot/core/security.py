from datetime import datetime, timedelta
from typing import Optional, Tuple

from jose import JWTError, jwt

from recapbot.core.config import settings


def create_state_token(
    slack_user_id: str,
    team_id: Optional[str],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign the OAuth `state` so a callback can only be bound to the user who started it."""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.OAUTH_STATE_EXPIRE_MINUTES)
    to_encode = {"sub": slack_user_id, "team": team_id, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_state_token(state: str) -> Optional[Tuple[str, Optional[str]]]:
    """
    Return (slack_user_id, team_id) from an OAuth state value.

    Links generated before states were signed carry a raw "slack_user_id|team_id"
    string. It proves nothing about who started the flow, so it is only
    accepted when OAUTH_ALLOW_UNSIGNED_STATE is on.
    """
    if not state:
        return None

    if "|" in state and "." not in state:
        if not settings.OAUTH_ALLOW_UNSIGNED_STATE:
            return None
        slack_user_id, _, team_id = state.partition("|")
        if not slack_user_id or not team_id:
            return None
        return slack_user_id, team_id

    try:
        payload = jwt.decode(state, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    slack_user_id = payload.get("sub")
    if not slack_user_id:
        return None
    return slack_user_id, payload.get("team")


def decode_id_token_claims(id_token: Optional[str]) -> Optional[dict]:
    """Read an OpenID id_token's claims without verifying the signature (no network call)."""
    if not id_token:
        return None
    try:
        return jwt.get_unverified_claims(id_token)
    except JWTError:
        return None
