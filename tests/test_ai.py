"""Tests for summary parsing and the AI service calls."""
import json

import httpx
import pytest
from openai import APIConnectionError

from recapbot.core.exceptions import SummarizationError
from recapbot.schemas.recap import RecapSummary
from recapbot.services.ai import AIService, parse_summary


class TestParseSummary:
    def test_well_formed(self):
        content = json.dumps({"progress": " • Did A ", "blockers": "", "plan": "• Do B"})
        assert parse_summary(content) == RecapSummary(progress="• Did A", blockers="", plan="• Do B")

    def test_list_fields_become_bullets(self):
        content = json.dumps({"progress": ["Did A", "• Did B"], "blockers": [], "plan": "x"})

        summary = parse_summary(content)

        assert summary.progress == "• Did A\n• Did B"
        assert summary.blockers == ""

    def test_missing_and_wrongly_typed_fields_are_empty(self):
        summary = parse_summary(json.dumps({"progress": 42, "plan": {"nested": True}}))
        assert summary == RecapSummary()

    def test_code_fenced_json(self):
        content = '```json\n{"progress": "p", "blockers": "b", "plan": "q"}\n```'
        assert parse_summary(content).blockers == "b"

    @pytest.mark.parametrize("content", [None, "", "I could not do that", "[1, 2]"])
    def test_unusable_reply(self, content):
        with pytest.raises(SummarizationError):
            parse_summary(content)


class TestGenerateRecapSummary:
    async def test_requests_json_object(self, stub_llm, summary_json):
        llm = stub_llm(summary_json(progress="• Fixed login"))

        summary = await AIService(client=llm).generate_recap_summary("GitHub commits:\n- [acme/api] Fix login")

        assert summary.progress == "• Fixed login"
        call = llm.calls[0]
        assert call["response_format"] == {"type": "json_object"}
        assert "Fix login" in call["messages"][-1]["content"]

    async def test_empty_context_never_calls_the_model(self, stub_llm):
        llm = stub_llm("{}")

        with pytest.raises(ValueError):
            await AIService(client=llm).generate_recap_summary("   ")
        assert llm.calls == []

    async def test_transport_failure_is_a_summarization_error(self, stub_llm):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        service = AIService(client=stub_llm(error=error))

        with pytest.raises(SummarizationError):
            await service.generate_recap_summary("Slack activity:\n- hi")

    async def test_unconfigured(self):
        service = AIService()
        service.client = None

        assert service.is_available() is False
        with pytest.raises(SummarizationError):
            await service.generate_recap_summary("Slack activity:\n- hi")


class TestStandupScript:
    async def test_first_speaker_greets_and_last_signs_off(self, stub_llm):
        llm = stub_llm("  Hey everyone! ... That's all from me!  ")

        script = await AIService(client=llm).generate_standup_script(
            "Ada", "• Fixed login", None, "• Deploy", is_first=True, is_last=True
        )

        assert script == "Hey everyone! ... That's all from me!"
        system = llm.calls[0]["messages"][0]["content"]
        assert "since they're going first" in system
        assert "That's all from me!" in system
        assert "No blockers" in llm.calls[0]["messages"][1]["content"]


class TestAnswerTeamQuestion:
    async def test_question_and_context_are_sent(self, stub_llm):
        llm = stub_llm("Ada is blocked on CI.")

        answer = await AIService(client=llm).answer_team_question("Who is blocked?", "Recap 1:\n- User: Ada")

        assert answer == "Ada is blocked on CI."
        user_message = llm.calls[0]["messages"][1]["content"]
        assert "Who is blocked?" in user_message
        assert "User: Ada" in user_message
