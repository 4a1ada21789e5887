from dataclasses import dataclass

import httpx
import structlog

from transcription_pipeline.core.errors import AdapterError

logger = structlog.get_logger(__name__)

ELEVENLABS_URL = 'https://api.elevenlabs.io/v1/text-to-speech'
SECONDS_PER_CHAR = 0.1


@dataclass
class SpeechResult:
    audio: bytes
    duration_seconds: float
    content_type: str = 'audio/mpeg'


class ElevenLabsSpeech:
    """Text-to-speech through the ElevenLabs REST API, one request per chunk."""

    name = 'elevenlabs'

    def __init__(self, api_key: str, model: str = 'eleven_multilingual_v2', timeout: float = 60,
                 client: httpx.AsyncClient | None = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    async def _post(self, url: str, body: dict) -> httpx.Response:
        headers = {'xi-api-key': self.api_key, 'Accept': 'audio/mpeg'}
        if self._client is not None:
            return await self._client.post(url, json=body, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=body, headers=headers)

    async def synthesize(self, text: str, voice: str) -> SpeechResult:
        if not self.api_key:
            raise AdapterError(self.name, 'ELEVENLABS_API_KEY is not configured')
        body = {'text': text, 'model_id': self.model}
        try:
            r = await self._post(f"{ELEVENLABS_URL}/{voice}", body)
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning('tts.request_failed', voice=voice, error=str(e))
            raise AdapterError(self.name, str(e)) from e
        # the API does not report duration; estimate from text length
        return SpeechResult(audio=r.content, duration_seconds=round(len(text) * SECONDS_PER_CHAR, 2),
                            content_type=r.headers.get('content-type', 'audio/mpeg'))
