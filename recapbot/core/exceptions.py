"""Custom exceptions for the recap bot."""
from typing import Optional


class RecapBotError(Exception):
    """Base class for recap bot errors."""


class UpstreamError(RecapBotError):
    """Raised when an external API (Slack, GitHub, Google, ElevenLabs) call fails."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        detail = f"{service} request failed: {message}"
        if status_code is not None:
            detail += f" (HTTP {status_code})"
        super().__init__(detail)


class ConnectionNotFoundError(RecapBotError):
    """Raised when a user has no connection record for the team."""

    def __init__(self, slack_user_id: str, team_id: Optional[str] = None):
        self.slack_user_id = slack_user_id
        self.team_id = team_id
        super().__init__(f"No connection found for user {slack_user_id} in team {team_id}")


class SummarizationError(RecapBotError):
    """Raised when the LLM call fails or returns something that is not a JSON object."""


class RecapConflictError(RecapBotError):
    """Raised when a recap write is rejected by the store even after retrying as an update."""
