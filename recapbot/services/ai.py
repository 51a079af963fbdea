import json
from typing import Optional, Any

import httpx
from openai import AsyncOpenAI, OpenAIError

from recapbot.core.config import settings
from recapbot.core.exceptions import SummarizationError
from recapbot.schemas.recap import RecapSummary


RECAP_SYSTEM_PROMPT = """You write daily standup recaps for software engineers from their raw activity.

You will receive some of: GitHub commits, Slack messages the person sent, and their calendar events for yesterday and today.

Respond with a JSON object with exactly these three string fields:
- "progress": what they worked on and got done, as bullet points ("• " prefix, one per line)
- "blockers": challenges or blockers that the activity suggests, as bullet points, or "" if none are evident
- "plan": what they are likely to work on today (use today's calendar and unfinished work), as bullet points

Only use information present in the activity. Do not invent work, people or tickets.
Keep each bullet short and concrete. Respond with the JSON object only."""


SUMMARY_FIELDS = ("progress", "blockers", "plan")


def _coerce_field(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        return "\n".join(v if v.startswith("•") else f"• {v}" for v in value)
    return ""


def parse_summary(content: Optional[str]) -> RecapSummary:
    """
    Turn the model's reply into a RecapSummary.

    A reply that is not a JSON object raises SummarizationError. Inside a valid
    object, missing or wrongly typed fields become empty strings.
    """
    if not content:
        raise SummarizationError("Model returned an empty response")

    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[len("json"):]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SummarizationError(f"Model response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SummarizationError("Model response is not a JSON object")

    return RecapSummary(**{field: _coerce_field(data.get(field)) for field in SUMMARY_FIELDS})


class AIService:
    def __init__(self, client: Optional[Any] = None):
        if client is not None:
            self.client = client
        elif not settings.OPENAI_API_KEY:
            self.client = None
        else:
            self.client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
            )

    def is_available(self) -> bool:
        return self.client is not None

    async def _complete(self, model: str, messages: list, **kwargs) -> Optional[str]:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            **kwargs
        )
        if not response.choices:
            return None
        return response.choices[0].message.content

    async def generate_recap_summary(self, context: str) -> RecapSummary:
        """Draft progress / blockers / plan from an activity context."""
        if not context or not context.strip():
            raise ValueError("Refusing to summarize an empty activity context")
        if not self.client:
            raise SummarizationError("AI service not configured. Set OPENAI_API_KEY.")

        try:
            content = await self._complete(
                settings.AI_MODEL,
                [
                    {"role": "system", "content": RECAP_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Here is my activity:\n\n{context}"},
                ],
                response_format={"type": "json_object"},
                temperature=0.3,
                max_tokens=600,
            )
        except (OpenAIError, httpx.HTTPError) as e:
            raise SummarizationError(f"Summary request failed: {e}") from e

        return parse_summary(content)

    async def generate_standup_script(
        self,
        name: str,
        progress: Optional[str],
        blockers: Optional[str],
        plan: Optional[str],
        notes: Optional[str] = None,
        is_first: bool = False,
        is_last: bool = False,
    ) -> str:
        """First-person script a person's recap can be read aloud from in a standup."""
        if not self.client:
            raise ValueError("AI service not configured. Set OPENAI_API_KEY.")

        greeting_hint = " since they're going first" if is_first else ""
        if is_last:
            closing = "End with something like 'That's all from me!' or 'Back to you!'"
        else:
            closing = "End naturally, ready for the next person"
        notes_line = f"Notes: {notes}" if notes else ""

        system_prompt = f"""You are writing a first-person standup update script for {name}.
They will read this aloud as if they're speaking in a standup meeting.

Guidelines:
- Write in FIRST PERSON ("I worked on...", "My blockers are...", "I'm planning to...")
- Start with a brief greeting like "Hey everyone!" or "Morning team!"{greeting_hint}
- Keep it conversational and natural - this will be read aloud
- Mention what they accomplished, any blockers, and their plan
- Keep it concise - about 30-45 seconds when spoken (~75-100 words)
- Sound enthusiastic but professional
- {closing}
- Don't use bullet points - write in flowing sentences
- Add natural pauses with "..." where appropriate"""

        user_prompt = f"""Write {name}'s standup update based on their recap:

Progress: {progress or 'No progress noted'}
Blockers: {blockers or 'No blockers'}
Plan: {plan or 'No plan specified'}
{notes_line}

Generate their first-person standup script."""

        content = await self._complete(
            settings.SCRIPT_MODEL,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.8,
            max_tokens=300,
        )
        return (content or "").strip()

    async def answer_team_question(self, question: str, recaps_context: str) -> str:
        """Answer a question about a team using its recent recaps as the only source."""
        if not self.client:
            raise ValueError("AI service not configured. Set OPENAI_API_KEY.")

        content = await self._complete(
            settings.CHAT_MODEL,
            [
                {
                    "role": "system",
                    "content": (
                        "You are a helpful assistant that answers questions about daily team recaps.\n"
                        "You have access to recap data including progress, blockers, plans, and notes "
                        "from team members.\n"
                        "Answer questions based on the provided recap data. Be concise, accurate, and helpful.\n"
                        "If the question cannot be answered with the available data, say so clearly."
                    ),
                },
                {
                    "role": "user",
                    "content": (
                        f"{recaps_context}\n\nQuestion: {question}\n\n"
                        "Please provide a helpful answer based on the recap data above."
                    ),
                },
            ],
            temperature=0.7,
            max_tokens=500,
        )
        return (content or "").strip()


# Singleton instance
ai_service = AIService()


def get_ai_service() -> AIService:
    return ai_service
