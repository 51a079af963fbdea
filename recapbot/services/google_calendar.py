"""
Google OAuth2 and Calendar v3 client.

Token sets are stored as plain dicts in the same shape Google's token endpoint
returns them, with an added `expiry_date` in epoch milliseconds so a stored
set can be checked for expiry without another round trip.
"""
import time
from datetime import datetime
from typing import Optional, List, Dict, Any
from urllib.parse import urlencode

import httpx

from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError


SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
]

# Refresh a little before the real expiry
EXPIRY_SKEW_MS = 60 * 1000


class GoogleCalendarService:
    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.transport = transport

    def is_available(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=settings.HTTP_TIMEOUT_SECONDS
            ) as client:
                response = await client.request(method, url, headers=headers, params=params, data=data)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError("Google", e.response.text[:200], e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError("Google", str(e)) from e

    def generate_auth_url(self, state: Optional[str] = None) -> str:
        """Consent URL requesting offline access so a refresh token comes back."""
        if not self.is_available():
            raise ValueError("Google OAuth not configured. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.")

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for a token set."""
        tokens = await self._request(
            "POST",
            self.TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        return _with_expiry(tokens)

    async def refresh_tokens(self, tokens: Dict[str, Any]) -> Dict[str, Any]:
        """Get a new access token; the refresh token and id_token are carried over."""
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise UpstreamError("Google", "token set has no refresh_token")

        refreshed = await self._request(
            "POST",
            self.TOKEN_URL,
            data={
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        merged = {**tokens, **refreshed}
        merged.setdefault("refresh_token", refresh_token)
        return _with_expiry(merged)

    async def ensure_fresh_tokens(self, tokens: Dict[str, Any]) -> Dict[str, Any]:
        """Return `tokens` unchanged if still valid, otherwise a refreshed set."""
        if not is_expired(tokens):
            return tokens
        return await self.refresh_tokens(tokens)

    async def get_user_email(self, tokens: Dict[str, Any]) -> Optional[str]:
        """Userinfo lookup; costs a round trip and the userinfo.email scope."""
        info = await self._request("GET", self.USERINFO_URL, access_token=tokens.get("access_token"))
        return info.get("email")

    async def list_events(
        self,
        tokens: Dict[str, Any],
        time_min: datetime,
        time_max: datetime,
        max_results: int = 20,
    ) -> List[Dict[str, Any]]:
        """Events on the primary calendar between two instants, ordered by start time."""
        data = await self._request(
            "GET",
            f"{self.CALENDAR_BASE_URL}/calendars/primary/events",
            access_token=tokens.get("access_token"),
            params={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return data.get("items") or []


def _with_expiry(tokens: Dict[str, Any]) -> Dict[str, Any]:
    expires_in = tokens.pop("expires_in", None)
    if expires_in is not None:
        tokens["expiry_date"] = int(time.time() * 1000) + int(expires_in) * 1000
    return tokens


def is_expired(tokens: Dict[str, Any], now_ms: Optional[int] = None) -> bool:
    expiry_date = tokens.get("expiry_date")
    if not expiry_date:
        return False
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return int(expiry_date) - EXPIRY_SKEW_MS <= now_ms


def get_google_calendar_service(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GoogleCalendarService:
    return GoogleCalendarService(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        transport=transport,
    )
