"""Tests for the per-source activity collectors and their failure isolation."""
import time
from datetime import date

import httpx
import pytest

from recapbot.services.activity import ActivityCollector, DayWindow
from recapbot.services.connections import ConnectionService
from recapbot.services.github import GitHubService
from recapbot.services.google_calendar import GoogleCalendarService
from recapbot.services.slack import SlackService

WINDOW = DayWindow(date(2025, 3, 3), date(2025, 3, 4))


def _commit(sha, login, when, message="Work"):
    return {
        "sha": sha,
        "html_url": f"https://github.com/x/commit/{sha}",
        "commit": {"message": message, "author": {"name": login, "date": when}},
        "author": {"login": login},
        "committer": {"login": "web-flow"},
    }


@pytest.fixture
def github_api():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        requested.append(path)
        if path == "/user":
            return httpx.Response(200, json={"login": "ada"})
        if path == "/user/repos":
            return httpx.Response(200, json=[
                {"full_name": "acme/api", "pushed_at": "2025-03-04T12:00:00Z"},
                {"full_name": "acme/private", "pushed_at": "2025-03-04T09:00:00Z"},
                {"full_name": "acme/web", "pushed_at": "2025-03-03T18:00:00Z"},
                {"full_name": "acme/old", "pushed_at": "2024-01-01T00:00:00Z"},
            ])
        if path == "/repos/acme/api/commits":
            return httpx.Response(200, json=[
                _commit("a1", "ada", "2025-03-04T11:00:00Z", "Fix login"),
                _commit("a2", "bob", "2025-03-04T10:00:00Z", "Not mine"),
                _commit("a3", "ada", "2025-03-01T10:00:00Z", "Too old"),
            ])
        if path == "/repos/acme/private/commits":
            return httpx.Response(403, json={"message": "Resource not accessible"})
        if path == "/repos/acme/web/commits":
            return httpx.Response(200, json=[
                _commit("w1", "ada", "2025-03-03T17:00:00Z", "Style header"),
                _commit("w2", "ADA", "2025-03-03T08:00:00Z", "Case-insensitive login"),
            ])
        return httpx.Response(404, json={"message": "Not Found"})

    return httpx.MockTransport(handler), requested


def _collector(db, github_transport=None, slack=None, calendar=None, **kwargs) -> ActivityCollector:
    return ActivityCollector(
        ConnectionService(db),
        slack or SlackService(None),
        calendar or GoogleCalendarService(),
        github_factory=lambda token: GitHubService(token, transport=github_transport),
        **kwargs,
    )


class TestCollectCommits:
    async def test_own_commits_across_repos(self, db, github_api):
        transport, requested = github_api
        collector = _collector(db, transport, channel_ids=[])

        commits = await collector.collect_commits("ghp_token", WINDOW)

        assert [c.message for c in commits] == ["Fix login", "Style header", "Case-insensitive login"]
        assert {c.repository for c in commits} == {"acme/api", "acme/web"}

    async def test_forbidden_repo_is_skipped(self, db, github_api):
        transport, requested = github_api
        commits = await _collector(db, transport, channel_ids=[]).collect_commits("ghp_token", WINDOW)

        assert "/repos/acme/private/commits" in requested
        assert all(c.repository != "acme/private" for c in commits)

    async def test_repos_not_pushed_in_window_are_not_fetched(self, db, github_api):
        transport, requested = github_api
        await _collector(db, transport, channel_ids=[]).collect_commits("ghp_token", WINDOW)

        assert "/repos/acme/old/commits" not in requested

    async def test_result_is_capped_to_most_recent(self, db, github_api):
        transport, _ = github_api
        collector = _collector(db, transport, channel_ids=[], max_items=2)

        commits = await collector.collect_commits("ghp_token", WINDOW)

        assert [c.message for c in commits] == ["Fix login", "Style header"]

    async def test_legacy_single_repo(self, db, github_api):
        transport, requested = github_api
        commits = await _collector(db, transport, channel_ids=[]).collect_commits(
            "ghp_token", WINDOW, owner="acme", repo="web"
        )

        assert "/user/repos" not in requested
        assert {c.repository for c in commits} == {"acme/web"}

    async def test_no_token_means_no_calls(self, db, github_api):
        transport, requested = github_api
        assert await _collector(db, transport, channel_ids=[]).collect_commits(None, WINDOW) == []
        assert requested == []

    async def test_bad_token_gives_empty_list(self, db):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "Bad credentials"}))
        assert await _collector(db, transport, channel_ids=[]).collect_commits("bad", WINDOW) == []


class TestCollectSlackMessages:
    async def test_only_the_users_messages_in_window(self, db, slack_api):
        def history(request):
            if request.url.params["channel"] == "C2":
                return {"ok": False, "error": "not_in_channel"}
            return {"messages": [
                {"user": "U1", "text": "shipped the fix", "ts": "1741082400.0"},  # 2025-03-04 10:00
                {"user": "U2", "text": "someone else", "ts": "1741082500.0"},
                {"user": "U1", "subtype": "channel_join", "text": "joined", "ts": "1741082600.0"},
                {"user": "U1", "text": "last week", "ts": "1740477600.0"},  # 2025-02-25
            ]}

        transport, calls = slack_api({"conversations.history": history})
        collector = _collector(db, slack=SlackService("xoxb-test", transport=transport), channel_ids=["C1", "C2"])

        messages = await collector.collect_slack_messages("U1", WINDOW)

        assert [m.text for m in messages] == ["shipped the fix"]
        assert [params["channel"] for _, params, _ in calls] == ["C1", "C2"]

    async def test_without_a_bot_token_nothing_is_fetched(self, db):
        collector = _collector(db, channel_ids=["C1"])
        assert await collector.collect_slack_messages("U1", WINDOW) == []


class TestCollectCalendarEvents:
    @pytest.fixture
    def tokens(self):
        return {"access_token": "ya29", "expiry_date": int(time.time() * 1000) + 3600 * 1000}

    async def test_events_sorted_chronologically(self, db, tokens):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer ya29"
            return httpx.Response(200, json={"items": [
                {"summary": "Retro", "start": {"dateTime": "2025-03-04T15:00:00Z"}},
                {"summary": "Cancelled", "status": "cancelled", "start": {"dateTime": "2025-03-04T12:00:00Z"}},
                {"summary": "Planning", "start": {"dateTime": "2025-03-03T09:00:00Z"}},
                {"summary": "Offsite", "start": {"date": "2025-03-04"}},
            ]})

        calendar = GoogleCalendarService(transport=httpx.MockTransport(handler))
        events = await _collector(db, calendar=calendar, channel_ids=[]).collect_calendar_events(tokens, WINDOW)

        assert [e.title for e in events] == ["Planning", "Offsite", "Retro"]

    async def test_calendar_failure_gives_empty_list(self, db, tokens):
        calendar = GoogleCalendarService(
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        )
        assert await _collector(db, calendar=calendar, channel_ids=[]).collect_calendar_events(tokens, WINDOW) == []

    async def test_no_tokens_no_events(self, db):
        assert await _collector(db, channel_ids=[]).collect_calendar_events(None, WINDOW) == []


class TestCollectActivity:
    async def test_github_only_connection(self, db, github_api):
        transport, _ = github_api
        await ConnectionService(db).save_github_token("U1", "T1", "ghp_token")
        collector = _collector(db, transport, channel_ids=[])

        activity = await collector.collect_activity("U1", "T1", WINDOW)

        assert len(activity.commits) == 3
        assert activity.events == []
        assert activity.messages == []

    async def test_falls_back_to_connection_without_team(self, db, github_api):
        transport, _ = github_api
        await ConnectionService(db).save_github_token("U1", None, "ghp_token")

        activity = await _collector(db, transport, channel_ids=[]).collect_activity("U1", "T1", WINDOW)

        assert len(activity.commits) == 3

    async def test_no_connection_is_empty_not_an_error(self, db):
        activity = await _collector(db, channel_ids=[]).collect_activity("U404", "T1", WINDOW)
        assert activity.is_empty()

    async def test_expired_google_tokens_are_refreshed_and_saved(self, db):
        def handler(request):
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer fresh"
            return httpx.Response(200, json={"items": [
                {"summary": "Standup", "start": {"dateTime": "2025-03-04T09:00:00Z"}},
            ]})

        connections = ConnectionService(db)
        await connections.save_google_tokens(
            "U1", "T1", {"access_token": "stale", "refresh_token": "r1", "expiry_date": 1000}
        )
        calendar = GoogleCalendarService("id", "secret", transport=httpx.MockTransport(handler))

        activity = await _collector(db, calendar=calendar, channel_ids=[]).collect_activity("U1", "T1", WINDOW)

        assert [e.title for e in activity.events] == ["Standup"]
        stored = (await connections.get_connection("U1", "T1")).google_tokens
        assert stored["access_token"] == "fresh"
        assert stored["refresh_token"] == "r1"
