"""
Activity collection and aggregation.

Commits, Slack messages and calendar events are fetched per user, normalized
into one record type per source right at the collector boundary, filtered to
a day window and merged into the text context handed to the summarizer.

Collectors never raise: a failing repository, channel or calendar call is
logged and contributes nothing, because a recap built from partial data is
better than no recap at all.
"""
import asyncio
import logging
from datetime import datetime, date, time, timedelta, timezone, tzinfo
from typing import Optional, List, Dict, Any, Callable, Iterable, Set
from zoneinfo import ZoneInfo

from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError
from recapbot.models.connection import UserConnection
from recapbot.schemas.activity import (
    ActivityContext, CommitRecord, SlackMessageRecord, CalendarEventRecord
)
from recapbot.services.connections import ConnectionService
from recapbot.services.github import GitHubService, get_github_service
from recapbot.services.google_calendar import GoogleCalendarService
from recapbot.services.slack import SlackService

logger = logging.getLogger(__name__)


class DayWindow:
    """
    An inclusive range of calendar days in one timezone.

    Membership compares calendar dates after converting to the window's
    timezone, never elapsed hours: 23:59 yesterday and 00:01 today are both
    inside a yesterday-and-today window, 23:59 two days ago is not.
    """

    def __init__(self, first_day: date, last_day: date, tz: tzinfo = timezone.utc):
        if last_day < first_day:
            raise ValueError("last_day must not be before first_day")
        self.first_day = first_day
        self.last_day = last_day
        self.tz = tz

    @classmethod
    def today_and_yesterday(
        cls,
        now: Optional[datetime] = None,
        tz_name: Optional[str] = None,
    ) -> "DayWindow":
        tz = ZoneInfo(tz_name or settings.ACTIVITY_TIMEZONE)
        if now is None:
            now = datetime.now(tz)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        today = now.astimezone(tz).date()
        return cls(today - timedelta(days=1), today, tz)

    @property
    def start(self) -> datetime:
        """Local midnight at the start of the first day."""
        return datetime.combine(self.first_day, time.min, tzinfo=self.tz)

    @property
    def end(self) -> datetime:
        """Local midnight after the last day (exclusive)."""
        return datetime.combine(self.last_day + timedelta(days=1), time.min, tzinfo=self.tz)

    def contains(self, moment: datetime) -> bool:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return self.first_day <= moment.astimezone(self.tz).date() <= self.last_day

    def __repr__(self) -> str:
        return f"DayWindow({self.first_day.isoformat()}..{self.last_day.isoformat()}, {self.tz})"


# ============== NORMALIZATION ==============

def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO 8601 string (with or without 'Z') or Unix seconds to an aware UTC datetime."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def commit_logins(raw: Dict[str, Any]) -> Set[str]:
    """Lower-cased GitHub logins of a commit's author and committer."""
    logins = set()
    for key in ("author", "committer"):
        account = raw.get(key)
        if isinstance(account, dict) and account.get("login"):
            logins.add(account["login"].lower())
        elif isinstance(account, str) and key == "author" and "commit" not in raw:
            # Legacy flattened records only kept the author's name
            logins.add(account.lower())
    return logins


def normalize_commit(raw: Dict[str, Any], repository: str) -> Optional[CommitRecord]:
    """
    Accepts both the REST API shape ({"sha", "commit": {...}, "author": {"login"}})
    and the older flattened shape ({"sha", "message", "author", "date"}).
    """
    details = raw.get("commit")
    if isinstance(details, dict):
        git_author = details.get("author") or {}
        git_committer = details.get("committer") or {}
        message = details.get("message") or ""
        timestamp = parse_timestamp(git_author.get("date") or git_committer.get("date"))
        account = raw.get("author") if isinstance(raw.get("author"), dict) else {}
        author = account.get("login") or git_author.get("name") or "Unknown"
    else:
        message = raw.get("message") or ""
        timestamp = parse_timestamp(raw.get("date") or raw.get("timestamp"))
        author = raw.get("author") if isinstance(raw.get("author"), str) else "Unknown"

    if timestamp is None:
        return None

    return CommitRecord(
        repository=repository,
        sha=(raw.get("sha") or "")[:7],
        message=message.split("\n")[0][:200],
        author=author,
        timestamp=timestamp,
        url=raw.get("html_url") or raw.get("url"),
    )


def normalize_slack_message(raw: Dict[str, Any], channel_id: Optional[str] = None) -> Optional[SlackMessageRecord]:
    # Joins, leaves, bot posts and other system messages all carry a subtype
    if raw.get("subtype") or not raw.get("user"):
        return None
    try:
        timestamp = datetime.fromtimestamp(float(raw.get("ts")), tz=timezone.utc)
    except (TypeError, ValueError):
        return None
    return SlackMessageRecord(
        text=raw.get("text") or "",
        sender_id=raw["user"],
        channel_id=channel_id,
        timestamp=timestamp,
    )


def normalize_calendar_event(
    raw: Dict[str, Any],
    tz: tzinfo = timezone.utc,
) -> Optional[CalendarEventRecord]:
    if raw.get("status") == "cancelled":
        return None
    start = raw.get("start") or {}
    if start.get("dateTime"):
        start_time = parse_timestamp(start["dateTime"])
        is_all_day = False
    elif start.get("date"):
        try:
            day = date.fromisoformat(start["date"])
        except ValueError:
            return None
        # All-day events are dated in the calendar's own zone
        start_time = datetime.combine(day, time.min, tzinfo=tz)
        is_all_day = True
    else:
        return None

    if start_time is None:
        return None
    return CalendarEventRecord(
        title=raw.get("summary") or "(No title)",
        start_time=start_time,
        is_all_day=is_all_day,
    )


def _most_recent(records: Iterable, key: Callable, limit: int) -> list:
    return sorted(records, key=key, reverse=True)[:limit]


# ============== COLLECTION ==============

class ActivityCollector:
    def __init__(
        self,
        connections: ConnectionService,
        slack: SlackService,
        calendar: GoogleCalendarService,
        github_factory: Callable[[Optional[str]], GitHubService] = get_github_service,
        channel_ids: Optional[List[str]] = None,
        max_items: Optional[int] = None,
    ):
        self.connections = connections
        self.slack = slack
        self.calendar = calendar
        self.github_factory = github_factory
        self.channel_ids = channel_ids if channel_ids is not None else settings.activity_channel_ids()
        self.max_items = max_items or settings.ACTIVITY_MAX_ITEMS

    async def collect_commits(
        self,
        github_token: Optional[str],
        window: DayWindow,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
    ) -> List[CommitRecord]:
        """The token owner's own commits in the window, across every repository they can reach."""
        if not github_token:
            return []

        github = self.github_factory(github_token)
        try:
            login = (await github.get_user()).get("login")
        except UpstreamError as e:
            logger.warning(f"GitHub user lookup failed, skipping commits: {e}")
            return []
        if not login:
            return []

        if owner and repo:
            repositories = [f"{owner}/{repo}"]
        else:
            try:
                repos = await github.list_user_repos(per_page=settings.GITHUB_MAX_REPOS)
            except UpstreamError as e:
                logger.warning(f"Could not list GitHub repositories for {login}: {e}")
                return []
            repositories = []
            for r in repos or []:
                pushed_at = parse_timestamp(r.get("pushed_at"))
                # Nothing pushed since the window opened means no commits in it
                if pushed_at is not None and pushed_at < window.start:
                    continue
                if r.get("full_name"):
                    repositories.append(r["full_name"])

        semaphore = asyncio.Semaphore(max(1, settings.GITHUB_CONCURRENCY))

        async def fetch(full_name: str) -> List[CommitRecord]:
            repo_owner, _, repo_name = full_name.partition("/")
            async with semaphore:
                try:
                    raw_commits = await github.list_commits(
                        repo_owner,
                        repo_name,
                        author=login,
                        since=window.start,
                        until=window.end,
                        per_page=self.max_items,
                    )
                except UpstreamError as e:
                    # 403 / 404 / 409 (empty repo) are expected for some repos
                    logger.warning(f"Skipping {full_name}: {e}")
                    return []

            records = []
            for raw in raw_commits if isinstance(raw_commits, list) else []:
                if login.lower() not in commit_logins(raw):
                    continue
                record = normalize_commit(raw, full_name)
                if record is not None and window.contains(record.timestamp):
                    records.append(record)
            return records

        batches = await asyncio.gather(*(fetch(name) for name in repositories))

        unique: Dict[str, CommitRecord] = {}
        for batch in batches:
            for record in batch:
                unique.setdefault(f"{record.repository}@{record.sha}", record)
        return _most_recent(unique.values(), lambda c: c.timestamp, self.max_items)

    async def collect_calendar_events(
        self,
        google_tokens: Optional[Dict[str, Any]],
        window: DayWindow,
    ) -> List[CalendarEventRecord]:
        if not google_tokens or not google_tokens.get("access_token"):
            return []
        try:
            raw_events = await self.calendar.list_events(
                google_tokens,
                time_min=window.start,
                time_max=window.end,
                max_results=self.max_items,
            )
        except UpstreamError as e:
            logger.warning(f"Calendar fetch failed, skipping events: {e}")
            return []

        events = []
        for raw in raw_events:
            event = normalize_calendar_event(raw, window.tz)
            if event is not None and window.contains(event.start_time):
                events.append(event)
        # Calendar context reads best in chronological order
        events.sort(key=lambda e: e.start_time)
        return events[:self.max_items]

    async def collect_slack_messages(self, user_id: str, window: DayWindow) -> List[SlackMessageRecord]:
        """Messages the user sent in the activity channels during the window."""
        if not self.slack.is_available():
            return []

        messages = []
        for channel_id in self.channel_ids:
            try:
                raw_messages = await self.slack.get_channel_history(
                    channel_id,
                    oldest=window.start.timestamp(),
                    latest=window.end.timestamp(),
                    limit=200,
                )
            except UpstreamError as e:
                logger.warning(f"Skipping Slack channel {channel_id}: {e}")
                continue

            for raw in raw_messages:
                message = normalize_slack_message(raw, channel_id)
                if message is None or message.sender_id != user_id:
                    continue
                if window.contains(message.timestamp):
                    messages.append(message)

        return _most_recent(messages, lambda m: m.timestamp, self.max_items)

    async def _fresh_google_tokens(self, connection: UserConnection) -> Optional[Dict[str, Any]]:
        tokens = connection.google_tokens
        if not tokens:
            return None
        try:
            fresh = await self.calendar.ensure_fresh_tokens(tokens)
        except UpstreamError as e:
            logger.warning(f"Could not refresh Google tokens for {connection.slack_user_id}: {e}")
            return None
        if fresh is not tokens:
            await self.connections.save_google_tokens(connection.slack_user_id, connection.team_id, fresh)
        return fresh

    async def collect_activity(
        self,
        user_id: str,
        team_id: Optional[str],
        window: Optional[DayWindow] = None,
    ) -> ActivityContext:
        """Everything a user did in the window, from every service they have connected."""
        window = window or DayWindow.today_and_yesterday()

        connection = await self.connections.get_connection(user_id, team_id)
        if connection is None and team_id is not None:
            connection = await self.connections.get_connection(user_id, None)

        google_tokens = None
        github_token = owner = repo = None
        if connection is not None:
            google_tokens = await self._fresh_google_tokens(connection)
            github_token = connection.github_token
            owner, repo = connection.github_owner, connection.github_repo
        else:
            logger.info(f"No connection record for {user_id} in team {team_id}; Slack activity only")

        commits, messages, events = await asyncio.gather(
            self.collect_commits(github_token, window, owner=owner, repo=repo),
            self.collect_slack_messages(user_id, window),
            self.collect_calendar_events(google_tokens, window),
        )
        logger.info(
            f"Collected activity for {user_id} {window}: "
            f"{len(commits)} commits, {len(messages)} messages, {len(events)} events"
        )
        return ActivityContext(commits=commits, messages=messages, events=events)


# ============== AGGREGATION ==============

def _one_line(text: str, limit: int = 300) -> str:
    collapsed = " ".join(text.split())
    return collapsed if len(collapsed) <= limit else collapsed[:limit - 3] + "..."


def build_prompt_context(
    commits: List[CommitRecord],
    messages: List[SlackMessageRecord],
    events: List[CalendarEventRecord],
    tz: tzinfo = timezone.utc,
) -> Optional[str]:
    """
    Merge a user's activity into one labeled text block for the summarizer.

    Returns None when there is nothing at all, in which case no summary
    should be requested. Sections always appear in the order commits, Slack,
    calendar, and an empty source has no section.
    """
    if not (commits or messages or events):
        return None

    sections = []
    if commits:
        lines = [
            f"- [{c.repository}] {c.message} ({c.timestamp.astimezone(tz):%a %H:%M})"
            for c in commits
        ]
        sections.append("GitHub commits:\n" + "\n".join(lines))

    if messages:
        lines = [
            f"- ({m.timestamp.astimezone(tz):%a %H:%M}) {_one_line(m.text)}"
            for m in messages
        ]
        sections.append("Slack activity:\n" + "\n".join(lines))

    if events:
        lines = []
        for e in events:
            if e.is_all_day:
                lines.append(f"- {e.start_time:%a} (all day) {e.title}")
            else:
                lines.append(f"- {e.start_time.astimezone(tz):%a %H:%M} {e.title}")
        sections.append("Calendar events:\n" + "\n".join(lines))

    return "\n\n".join(sections)


def build_activity_context(activity: ActivityContext, window: Optional[DayWindow] = None) -> Optional[str]:
    tz = window.tz if window is not None else timezone.utc
    return build_prompt_context(activity.commits, activity.messages, activity.events, tz=tz)
