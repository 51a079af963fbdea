"""
Identity resolution between Slack users, email addresses and Google accounts.

Every lookup here is a soft operation: "not found" and upstream failures both
come back as None so a batch over many users can skip personalization for one
person without stopping. Email matching is case-insensitive and unverified
across services; if a person uses different addresses in Slack and Google
they simply will not be correlated.
"""
import logging
from typing import Optional, Dict, Any

from recapbot.core.exceptions import UpstreamError
from recapbot.core.security import decode_id_token_claims
from recapbot.services.google_calendar import GoogleCalendarService
from recapbot.services.slack import SlackService

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(
        self,
        slack: SlackService,
        calendar: Optional[GoogleCalendarService] = None,
    ):
        self.slack = slack
        self.calendar = calendar

    async def resolve_email_to_slack_user(self, email: Optional[str]) -> Optional[str]:
        """Scan the workspace directory for a profile with this email."""
        if not email:
            return None
        wanted = email.strip().lower()

        try:
            users = await self.slack.list_users()
        except UpstreamError as e:
            logger.warning(f"Could not list Slack users to resolve {email}: {e}")
            return None

        for user in users:
            profile_email = (user.get("profile") or {}).get("email")
            if profile_email and profile_email.strip().lower() == wanted:
                return user.get("id")

        logger.info(f"No Slack user found for email {email}")
        return None

    async def resolve_slack_user_to_email(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None
        try:
            user = await self.slack.get_user_info(user_id)
        except UpstreamError as e:
            logger.warning(f"Could not look up Slack user {user_id}: {e}")
            return None
        return (user.get("profile") or {}).get("email") or None

    async def extract_google_email(self, tokens: Optional[Dict[str, Any]]) -> Optional[str]:
        """
        Email of the Google account a token set belongs to.

        The id_token returned by the code exchange already carries the email
        claim, so it is decoded locally first. Only when that is missing or
        unreadable is the userinfo endpoint called.
        """
        if not tokens:
            return None

        claims = decode_id_token_claims(tokens.get("id_token"))
        if claims and claims.get("email"):
            return claims["email"]

        if self.calendar is None or not tokens.get("access_token"):
            return None

        try:
            return await self.calendar.get_user_email(tokens)
        except UpstreamError as e:
            logger.warning(f"Userinfo lookup failed: {e}")
            return None
