import logging
from typing import Optional, List, Dict, Any

import httpx

from recapbot.core.config import settings
from recapbot.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)

MAX_SCRIPT_CHARS = 5000
TRUNCATION_SIGN_OFF = "... That's all for today's standup!"


def prepare_script(script: str) -> str:
    """Cut an over-long script and close it with a sign-off instead of mid-sentence silence."""
    if len(script) <= MAX_SCRIPT_CHARS:
        return script
    logger.info(f"Script too long ({len(script)} chars), truncating to {MAX_SCRIPT_CHARS}")
    return script[:MAX_SCRIPT_CHARS] + TRUNCATION_SIGN_OFF


class TextToSpeechService:
    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.transport = transport

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        if not self.api_key:
            raise UpstreamError("ElevenLabs", "ELEVENLABS_API_KEY is not configured")

        headers = {"xi-api-key": self.api_key, **kwargs.pop("headers", {})}
        try:
            # Long scripts take a while to render
            async with httpx.AsyncClient(transport=self.transport, timeout=60.0) as client:
                response = await client.request(
                    method, f"{self.BASE_URL}{endpoint}", headers=headers, **kwargs
                )
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise UpstreamError("ElevenLabs", _error_message(e.response), e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError("ElevenLabs", str(e)) from e

    async def synthesize(self, script: str, voice_id: Optional[str] = None) -> bytes:
        """Render a script to MP3 audio."""
        if not script or not script.strip():
            raise ValueError("Script text is required")

        text = prepare_script(script)
        response = await self._request(
            "POST",
            f"/text-to-speech/{voice_id or settings.ELEVENLABS_VOICE_ID}",
            headers={"Accept": "audio/mpeg"},
            json={
                "text": text,
                "model_id": settings.ELEVENLABS_MODEL_ID,
                "voice_settings": {
                    "stability": 0.5,
                    "similarity_boost": 0.75,
                },
            },
        )
        logger.info(f"Audio generated ({len(response.content)} bytes) for {len(text)} chars")
        return response.content

    async def list_voices(self) -> List[Dict[str, Any]]:
        response = await self._request("GET", "/voices")
        return [
            {
                "voice_id": v.get("voice_id"),
                "name": v.get("name"),
                "category": v.get("category"),
                "description": v.get("description") or (v.get("labels") or {}).get("description"),
            }
            for v in response.json().get("voices", [])
        ]


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or "Failed to generate audio"
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict) and detail.get("message"):
        return detail["message"]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return response.text[:200]


def get_tts_service(transport: Optional[httpx.AsyncBaseTransport] = None) -> TextToSpeechService:
    return TextToSpeechService(settings.ELEVENLABS_API_KEY, transport=transport)
