from dataclasses import dataclass

import structlog

from transcription_pipeline.adapters.cloudflare import CloudflareAPI
from transcription_pipeline.core.errors import AdapterError

logger = structlog.get_logger(__name__)


@dataclass
class DirectUpload:
    upload_url: str
    video_id: str


class StreamVideoHost(CloudflareAPI):
    """Cloudflare Stream: direct-upload slots and MP4 download resolution."""

    name = 'stream'

    async def create_direct_upload(self, name: str, max_duration_seconds: int) -> DirectUpload:
        body = {'maxDurationSeconds': max_duration_seconds, 'meta': {'name': name}}
        r = await self.request('POST', self.account_url('stream/direct_upload'), json=body)
        result = self.result(r) or {}
        if not result.get('uploadURL') or not result.get('uid'):
            raise AdapterError(self.name, 'direct upload response missing uploadURL/uid')
        logger.info('stream.direct_upload_created', uid=result['uid'])
        return DirectUpload(upload_url=result['uploadURL'], video_id=result['uid'])

    async def resolve_download_url(self, video_id: str) -> str:
        r = await self.request('POST', self.account_url(f"stream/{video_id}/downloads"))
        default = (self.result(r) or {}).get('default') or {}
        if not default.get('url'):
            raise AdapterError(self.name, f"no download available for {video_id}")
        # MP4 downloads are generated asynchronously after upload
        if default.get('status') != 'ready':
            raise AdapterError(
                self.name, f"download for {video_id} is not ready (status: {default.get('status')})"
            )
        return default['url']

    async def download(self, url: str) -> bytes:
        r = await self.request('GET', url, auth=False)
        return r.content
