from datetime import date
from typing import Optional, List

from pydantic import BaseModel


class IntegrationFlags(BaseModel):
    slack: bool = True
    calendar: bool = False
    github: bool = False


class GitHubInfo(BaseModel):
    # Both None for connections that scan every accessible repo
    owner: Optional[str] = None
    repo: Optional[str] = None


class GroupMember(BaseModel):
    slack_user_id: str
    name: str
    has_completed_recap: bool
    integrations: IntegrationFlags
    github_info: Optional[GitHubInfo] = None
    image_url: Optional[str] = None


class GroupMembersResponse(BaseModel):
    team_id: Optional[str] = None
    recap_date: date
    members: List[GroupMember]
    completed_count: int


class SendNotificationRequest(BaseModel):
    slack_user_id: str
    message: str
    team_id: Optional[str] = None


class SendPromptsRequest(BaseModel):
    team_id: Optional[str] = None
    channel_id: Optional[str] = None
    user_id: Optional[str] = None


class NotificationResult(BaseModel):
    user_id: str
    success: bool
    presentation: Optional[str] = None
    error: Optional[str] = None


class NotificationBatchResponse(BaseModel):
    sent: int
    failed: int
    results: List[NotificationResult]


class StandupScriptRequest(BaseModel):
    team_id: str
    recap_date: Optional[date] = None


class ScriptSegment(BaseModel):
    user_id: str
    name: str
    recap_id: str
    script: str
    order: int


class StandupScriptResponse(BaseModel):
    recap_date: date
    recap_count: int
    script: Optional[str] = None
    segments: List[ScriptSegment] = []
    message: Optional[str] = None


class ChatRequest(BaseModel):
    question: str
    team_id: str


class ChatResponse(BaseModel):
    answer: str
    recap_count: int


class AudioRequest(BaseModel):
    script: str
    voice_id: Optional[str] = None
