import json

import httpx
import structlog

from transcription_pipeline.core.errors import AdapterError

logger = structlog.get_logger(__name__)

GEMINI_BASE_URL = 'https://generativelanguage.googleapis.com/v1beta/models'
HEADERS = {"Content-Type": "application/json"}


class GeminiScorer:
    """Free-text completion against Gemini ``generateContent``.

    No structured-output guarantee is made; callers parse the returned text.
    """

    name = 'gemini'

    def __init__(self, api_key: str, model: str = 'gemini-1.5-flash', timeout: float = 60,
                 client: httpx.AsyncClient | None = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def model_id(self) -> str:
        return self.model

    @property
    def url(self) -> str:
        return f"{GEMINI_BASE_URL}/{self.model}:generateContent"

    async def _post(self, body: dict) -> dict:
        params = {'key': self.api_key}
        if self._client is not None:
            r = await self._client.post(self.url, params=params, json=body, headers=HEADERS)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(self.url, params=params, json=body, headers=HEADERS)
        r.raise_for_status()
        return r.json()

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise AdapterError(self.name, 'GEMINI_API_KEY is not configured')
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            data = await self._post(body)
        except (httpx.HTTPError, ValueError) as e:
            # ValueError: a 200 whose body is not JSON
            logger.warning('gemini.request_failed', error=str(e))
            raise AdapterError(self.name, str(e)) from e
        try:
            return data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            # blocked or empty candidates; hand the raw payload to the parser
            return json.dumps(data)
