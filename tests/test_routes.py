"""HTTP-level tests for the admin API, with every external client overridden."""
import httpx
import pytest
from jose import jwt

from recapbot.api.deps import get_calendar, get_github_factory, get_slack, get_tts
from recapbot.core.database import get_db
from recapbot.core.security import create_state_token
from recapbot.main import app
from recapbot.schemas.recap import RecapSummary
from recapbot.services.ai import AIService, get_ai_service
from recapbot.services.draft_cache import DraftCache, get_draft_cache
from recapbot.services.github import GitHubService
from recapbot.services.google_calendar import GoogleCalendarService
from recapbot.services.slack import SlackService
from recapbot.services.tts import TextToSpeechService

PREFIX = "/api/v1"


@pytest.fixture
def overrides(session_maker, slack_api, slack_user, stub_llm):
    """Defaults for every client dependency. Tests replace entries before making requests."""
    transport, slack_calls = slack_api({
        "auth.test": {"team_id": "T1"},
        "chat.postMessage": {"ts": "1.0"},
        "users.info": {"user": slack_user("U1", "Ada")},
    })
    state = {
        "slack": SlackService("xoxb-test", transport=transport),
        "slack_calls": slack_calls,
        "calendar": GoogleCalendarService(),
        "ai": AIService(client=stub_llm("Hey everyone!")),
        "cache": DraftCache(),
        "tts": TextToSpeechService(None),
        "github_transport": httpx.MockTransport(lambda request: httpx.Response(200, json={"login": "ada"})),
    }

    async def override_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_slack] = lambda: state["slack"]
    app.dependency_overrides[get_calendar] = lambda: state["calendar"]
    app.dependency_overrides[get_ai_service] = lambda: state["ai"]
    app.dependency_overrides[get_draft_cache] = lambda: state["cache"]
    app.dependency_overrides[get_tts] = lambda: state["tts"]
    app.dependency_overrides[get_github_factory] = lambda: (
        lambda token=None: GitHubService(token, transport=state["github_transport"])
    )
    yield state
    app.dependency_overrides.clear()


@pytest.fixture
async def client(overrides):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestRecapRoutes:
    async def test_submit_then_status(self, client, overrides):
        response = await client.post(f"{PREFIX}/recaps/submit", json={
            "user_id": "U1",
            "team_id": "T1",
            "progress": "• Fixed login",
            "plan": "• Deploy",
            "submitted_at": "2025-03-04T15:00:00Z",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        assert body["recap_date"] == "2025-03-04"
        assert body["is_ai_generated"] is False

        sent = [c for c in overrides["slack_calls"] if c[0] == "chat.postMessage"]
        assert sent and sent[0][2]["channel"] == "U1"

        status = await client.get(
            f"{PREFIX}/recaps/status", params={"user_id": "U1", "team_id": "T1", "recap_date": "2025-03-04"}
        )
        assert status.json()["status"] == "confirmed"
        assert status.json()["has_recap"] is True

    async def test_submit_drops_pending_draft(self, client, overrides):
        overrides["cache"].put("U1", "T1", RecapSummary(progress="• Draft"))

        await client.post(f"{PREFIX}/recaps/submit", json={"user_id": "U1", "team_id": "T1", "progress": "x"})

        assert overrides["cache"].peek("U1", "T1") is None

    async def test_draft_can_be_taken_once(self, client, overrides):
        overrides["cache"].put("U1", "T1", RecapSummary(progress="• Draft"))

        first = await client.get(f"{PREFIX}/recaps/draft/U1", params={"team_id": "T1"})
        second = await client.get(f"{PREFIX}/recaps/draft/U1", params={"team_id": "T1"})

        assert first.status_code == 200
        assert first.json()["draft"]["progress"] == "• Draft"
        assert second.status_code == 404

    async def test_inverted_range_is_rejected(self, client):
        response = await client.get(
            f"{PREFIX}/recaps", params={"team_id": "T1", "start_date": "2025-03-05", "end_date": "2025-03-01"}
        )
        assert response.status_code == 400

    async def test_status_without_recap(self, client):
        response = await client.get(f"{PREFIX}/recaps/status", params={"user_id": "U9"})
        assert response.json()["status"] == "empty"
        assert response.json()["has_recap"] is False


class TestConnectionRoutes:
    async def test_github_connect(self, client):
        response = await client.post(
            f"{PREFIX}/connections/github", json={"slack_user_id": "U1", "team_id": "T1", "token": "ghp_ok"}
        )
        assert response.status_code == 200
        assert response.json()["github_login"] == "ada"

        connection = await client.get(f"{PREFIX}/connections/U1", params={"team_id": "T1"})
        assert connection.status_code == 200
        assert connection.json()["has_github"] is True
        assert connection.json()["slack_user_name"] == "Ada"

    async def test_github_invalid_token(self, client, overrides):
        overrides["github_transport"] = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"message": "Bad credentials"})
        )

        response = await client.post(
            f"{PREFIX}/connections/github", json={"slack_user_id": "U1", "token": "ghp_bad"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid GitHub token"

    async def test_unknown_connection(self, client):
        response = await client.get(f"{PREFIX}/connections/U404")
        assert response.status_code == 404

    async def test_auth_url_needs_google_config(self, client):
        response = await client.get(f"{PREFIX}/connections/google/auth-url", params={"slack_user_id": "U1"})
        assert response.status_code == 503

    async def test_callback_rejects_bad_state(self, client):
        response = await client.get(
            f"{PREFIX}/connections/google/callback", params={"code": "abc", "state": "forged"}
        )
        assert response.status_code == 400

    async def test_callback_rejects_unsigned_state(self, client):
        response = await client.get(
            f"{PREFIX}/connections/google/callback", params={"code": "abc", "state": "UVICTIM|TVICTIM"}
        )
        assert response.status_code == 400

    async def test_callback_reports_denied_consent(self, client):
        response = await client.get(f"{PREFIX}/connections/google/callback", params={"error": "access_denied"})
        assert response.status_code == 400

    async def test_callback_stores_tokens(self, client, overrides):
        id_token = jwt.encode({"email": "ada@example.com"}, "google", algorithm="HS256")
        overrides["calendar"] = GoogleCalendarService(
            "client-id",
            "client-secret",
            "http://test/callback",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={
                "access_token": "ya29",
                "refresh_token": "1//r",
                "expires_in": 3600,
                "id_token": id_token,
            })),
        )

        response = await client.get(
            f"{PREFIX}/connections/google/callback",
            params={"code": "abc", "state": create_state_token("U1", "T1")},
        )

        assert response.status_code == 200
        assert response.json()["email"] == "ada@example.com"
        connection = await client.get(f"{PREFIX}/connections/U1", params={"team_id": "T1"})
        assert connection.json()["has_google"] is True


class TestDashboardRoutes:
    async def test_group_members_needs_scope(self, client):
        response = await client.get(f"{PREFIX}/dashboard/group-members")
        assert response.status_code == 400

    async def test_standup_script_without_ai(self, client, overrides):
        overrides["ai"] = AIService(client=None)
        response = await client.post(f"{PREFIX}/dashboard/standup-script", json={"team_id": "T1"})
        assert response.status_code == 503

    async def test_standup_script_for_empty_day(self, client):
        response = await client.post(
            f"{PREFIX}/dashboard/standup-script", json={"team_id": "T1", "recap_date": "2025-03-04"}
        )
        assert response.status_code == 200
        assert response.json()["recap_count"] == 0

    async def test_audio_needs_script(self, client):
        response = await client.post(f"{PREFIX}/dashboard/audio", json={"script": " "})
        assert response.status_code == 400

    async def test_audio_needs_key(self, client):
        response = await client.post(f"{PREFIX}/dashboard/audio", json={"script": "Hey everyone!"})
        assert response.status_code == 503

    async def test_audio_is_mp3(self, client, overrides):
        overrides["tts"] = TextToSpeechService(
            "el-key", transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"ID3"))
        )
        response = await client.post(f"{PREFIX}/dashboard/audio", json={"script": "Hey everyone!"})
        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == b"ID3"

    async def test_send_notification(self, client):
        response = await client.post(
            f"{PREFIX}/dashboard/send-notification", json={"slack_user_id": "U1", "message": "Standup in 5"}
        )
        assert response.status_code == 200
        assert response.json()["presentation"] == "custom"

    async def test_send_prompt_to_one_user(self, client):
        response = await client.post(f"{PREFIX}/dashboard/send-prompts", json={"user_id": "U1"})
        assert response.status_code == 200
        assert response.json()["sent"] == 1
        assert response.json()["results"][0]["presentation"] == "write"
