from datetime import datetime
from typing import Optional, List, Dict, Any

import httpx

from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError


class GitHubService:
    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.transport = transport
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
        }
        if access_token:
            self.headers["Authorization"] = f"token {access_token}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=settings.HTTP_TIMEOUT_SECONDS
            ) as client:
                response = await client.request(
                    method,
                    f"{self.BASE_URL}{endpoint}",
                    headers=self.headers,
                    params=params,
                    json=json,
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError("GitHub", e.response.text[:200], e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError("GitHub", str(e)) from e

    async def get_user(self) -> Dict[str, Any]:
        """Get authenticated user info."""
        return await self._request("GET", "/user")

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get repository info."""
        return await self._request("GET", f"/repos/{owner}/{repo}")

    async def list_user_repos(
        self,
        per_page: int = 30,
        page: int = 1,
        sort: str = "pushed"
    ) -> List[Dict[str, Any]]:
        """List repositories the authenticated user can access, most recently pushed first."""
        return await self._request(
            "GET",
            "/user/repos",
            params={
                "per_page": per_page,
                "page": page,
                "sort": sort,
                "affiliation": "owner,collaborator,organization_member",
            }
        )

    async def list_commits(
        self,
        owner: str,
        repo: str,
        author: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        per_page: int = 30,
    ) -> List[Dict[str, Any]]:
        """List commits on a repository's default branch, optionally by author and date range."""
        params: Dict[str, Any] = {"per_page": per_page}
        if author:
            params["author"] = author
        if since:
            params["since"] = since.isoformat()
        if until:
            params["until"] = until.isoformat()

        return await self._request("GET", f"/repos/{owner}/{repo}/commits", params=params)


def get_github_service(
    access_token: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GitHubService:
    return GitHubService(access_token, transport=transport)
