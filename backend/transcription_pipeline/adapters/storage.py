import asyncio, json
from pathlib import Path
from typing import Optional

import structlog

from transcription_pipeline.core.errors import AdapterError

logger = structlog.get_logger(__name__)


class LocalContentStore:
    """Blob store keyed by path-like strings, backed by a local directory.

    Each object ``<key>`` gets a ``<key>.meta.json`` sidecar holding its content
    type and any custom metadata supplied on ``put``.
    """

    name = 'content-store'

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise AdapterError(self.name, f"invalid key: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str | None = None,
                  metadata: dict | None = None) -> None:
        path = self._path(key)
        meta = {'content_type': content_type or 'application/octet-stream', 'metadata': metadata or {}}

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.with_name(path.name + '.meta.json').write_text(json.dumps(meta), encoding='utf-8')

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise AdapterError(self.name, f"put {key} failed: {e}") from e
        logger.debug('storage.put', key=key, size=len(data))

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise AdapterError(self.name, f"get {key} failed: {e}") from e
