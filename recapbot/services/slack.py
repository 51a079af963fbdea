"""
Slack Web API client.

Thin async wrapper over the handful of Slack methods the recap bot uses:
direct messages, channel membership, user directory lookups and channel
history. Slack answers HTTP 200 with {"ok": false} on most failures, so
every call checks the `ok` flag and raises UpstreamError otherwise.
"""
import logging
from typing import Optional, List, Dict, Any

import httpx

from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class SlackService:
    SLACK_API_BASE = "https://slack.com/api"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.transport = transport

    def is_available(self) -> bool:
        return bool(self.bot_token)

    async def _call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self.bot_token:
            raise UpstreamError("Slack", "SLACK_BOT_TOKEN is not configured")

        headers = {"Authorization": f"Bearer {self.bot_token}"}
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=settings.HTTP_TIMEOUT_SECONDS
            ) as client:
                if payload is not None:
                    response = await client.post(
                        f"{self.SLACK_API_BASE}/{method}",
                        headers={**headers, "Content-Type": "application/json; charset=utf-8"},
                        json=payload,
                    )
                else:
                    response = await client.get(
                        f"{self.SLACK_API_BASE}/{method}",
                        headers=headers,
                        params=params,
                    )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError("Slack", method, e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError("Slack", f"{method}: {e}") from e

        if not data.get("ok"):
            raise UpstreamError("Slack", f"{method}: {data.get('error', 'Unknown Slack API error')}")
        return data

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Send a message; a user ID as `channel` sends a DM."""
        payload: Dict[str, Any] = {
            "channel": channel,
            "text": text,
            "unfurl_links": False,
            "unfurl_media": False,
        }
        if blocks:
            payload["blocks"] = blocks
        return await self._call("chat.postMessage", payload=payload)

    async def auth_test(self) -> Dict[str, Any]:
        """Identify the bot, including the workspace team_id."""
        return await self._call("auth.test")

    async def get_user_info(self, user_id: str) -> Dict[str, Any]:
        data = await self._call("users.info", params={"user": user_id})
        return data.get("user") or {}

    async def list_users(self) -> List[Dict[str, Any]]:
        """Every member of the workspace directory, following pagination cursors."""
        members: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": 200}
            if cursor:
                params["cursor"] = cursor
            data = await self._call("users.list", params=params)
            members.extend(data.get("members") or [])
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
        return members

    async def list_channel_members(self, channel_id: str) -> List[str]:
        member_ids: List[str] = []
        cursor: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"channel": channel_id, "limit": 200}
            if cursor:
                params["cursor"] = cursor
            data = await self._call("conversations.members", params=params)
            member_ids.extend(data.get("members") or [])
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
        return member_ids

    async def get_channel_history(
        self,
        channel_id: str,
        oldest: Optional[float] = None,
        latest: Optional[float] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Raw messages in a channel between two Unix timestamps, newest first."""
        params: Dict[str, Any] = {"channel": channel_id, "limit": limit}
        if oldest is not None:
            params["oldest"] = f"{oldest:.6f}"
        if latest is not None:
            params["latest"] = f"{latest:.6f}"
        data = await self._call("conversations.history", params=params)
        return data.get("messages") or []

    async def list_human_channel_members(self, channel_id: str) -> List[Dict[str, Any]]:
        """
        Channel members that are real people.

        Bots, deactivated accounts and Slackbot are dropped. A member whose profile
        lookup fails is skipped rather than failing the whole listing.
        """
        humans: List[Dict[str, Any]] = []
        for user_id in await self.list_channel_members(channel_id):
            try:
                user = await self.get_user_info(user_id)
            except UpstreamError as e:
                logger.warning(f"Failed to get info for {user_id}: {e}")
                continue

            if user.get("is_bot") or user.get("deleted") or user_id.startswith("USLACKBOT"):
                continue
            humans.append(user)
        return humans


def display_name(user: Dict[str, Any]) -> str:
    """Best human-readable name from a Slack user object."""
    profile = user.get("profile") or {}
    return (
        profile.get("display_name")
        or profile.get("real_name")
        or user.get("real_name")
        or user.get("name")
        or user.get("id", "")
    )


def profile_image(user: Dict[str, Any]) -> Optional[str]:
    """Largest avatar URL on a Slack user's profile, if any."""
    profile = user.get("profile") or {}
    for size in ("image_192", "image_72", "image_48"):
        if profile.get(size):
            return profile[size]
    return None


def get_slack_service(transport: Optional[httpx.AsyncBaseTransport] = None) -> SlackService:
    return SlackService(settings.SLACK_BOT_TOKEN, transport=transport)
