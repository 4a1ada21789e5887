import httpx

from transcription_pipeline.core.errors import AdapterError

CLOUDFLARE_API = 'https://api.cloudflare.com/client/v4'


class CloudflareAPI:
    """Shared plumbing for account-scoped Cloudflare REST calls."""

    name = 'cloudflare'

    def __init__(self, account_id: str, api_token: str, timeout: float = 60,
                 client: httpx.AsyncClient | None = None):
        self.account_id = account_id
        self.api_token = api_token
        self.timeout = timeout
        self._client = client

    def account_url(self, path: str) -> str:
        return f"{CLOUDFLARE_API}/accounts/{self.account_id}/{path.lstrip('/')}"

    async def request(self, method: str, url: str, *, json: dict | None = None,
                      auth: bool = True) -> httpx.Response:
        if auth and not (self.account_id and self.api_token):
            raise AdapterError(self.name, 'CF_ACCOUNT_ID / CF_API_TOKEN are not configured')
        headers = {'Authorization': f"Bearer {self.api_token}"} if auth else {}
        try:
            if self._client is not None:
                r = await self._client.request(method, url, json=json, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.request(method, url, json=json, headers=headers)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AdapterError(self.name, f"{e.response.status_code} {_error_text(e.response)}") from e
        except httpx.HTTPError as e:
            raise AdapterError(self.name, str(e)) from e
        return r

    def result(self, response: httpx.Response):
        try:
            payload = response.json()
        except ValueError as e:
            raise AdapterError(self.name, f"invalid JSON response: {e}") from e
        if not isinstance(payload, dict):
            raise AdapterError(self.name, "unexpected response payload")
        if not payload.get('success', True):
            raise AdapterError(self.name, _error_text(response))
        return payload.get('result')


def _error_text(response: httpx.Response) -> str:
    try:
        errors = response.json().get('errors') or []
        return '; '.join(str(e.get('message', e)) for e in errors) or response.text
    except ValueError:
        return response.text
