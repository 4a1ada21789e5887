import base64

import structlog

from transcription_pipeline.adapters.cloudflare import CloudflareAPI

logger = structlog.get_logger(__name__)

RENDER_KINDS = ('markdown', 'content', 'links', 'json', 'pdf', 'screenshot')
BINARY_KINDS = {'pdf', 'screenshot'}


class BrowserRenderer(CloudflareAPI):
    """Cloudflare Browser Rendering quick actions (one headless page per call)."""

    name = 'browser-rendering'

    async def render(self, kind: str, payload: dict, options: dict | None = None) -> dict:
        body = dict(options or {})
        body.update({k: v for k, v in payload.items() if v is not None})
        r = await self.request('POST', self.account_url(f"browser-rendering/{kind}"), json=body)
        if kind in BINARY_KINDS:
            return {
                'content_type': r.headers.get('content-type'),
                'encoding': 'base64',
                'data': base64.b64encode(r.content).decode('ascii'),
                'size': len(r.content),
            }
        return {'content': self.result(r)}
