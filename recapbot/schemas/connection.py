from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class GitHubConnectRequest(BaseModel):
    slack_user_id: str
    team_id: Optional[str] = None
    token: str
    owner: Optional[str] = None
    repo: Optional[str] = None


class GitHubConnectResponse(BaseModel):
    slack_user_id: str
    team_id: Optional[str] = None
    github_login: Optional[str] = None
    message: str


class GoogleAuthUrlResponse(BaseModel):
    auth_url: str


class GoogleCallbackResponse(BaseModel):
    slack_user_id: str
    team_id: Optional[str] = None
    email: Optional[str] = None
    saved: bool


class ConnectionResponse(BaseModel):
    slack_user_id: str
    team_id: Optional[str] = None
    slack_user_name: Optional[str] = None
    has_google: bool
    has_github: bool
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True
