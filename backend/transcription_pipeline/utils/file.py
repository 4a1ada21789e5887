import os, time
from urllib.parse import urlparse
from transcription_pipeline.utils.text import sanitize_filename

ALLOWED_EXT = {'.mp4', '.mp3', '.wav', '.avi', '.mov', '.mkv', '.m4a', '.webm', '.ogg', '.flac'}

HOST_SOURCE_TYPES = {
    'youtube.com': 'youtube',
    'youtu.be': 'youtube',
    'tiktok.com': 'tiktok',
}


def upload_extension(filename: str | None) -> str:
    ext = os.path.splitext(filename or '')[1].lower()
    if not ext:
        return '.mp4'
    if ext not in ALLOWED_EXT:
        raise ValueError(f"Unsupported file type: {ext}")
    return ext


def build_upload_key(title: str, filename: str | None, now_ms: int | None = None) -> str:
    """Content-store key for a raw upload: <epoch-ms>-<sanitised title><ext>."""
    ext = upload_extension(filename)
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}-{sanitize_filename(title)}{ext}"


def tts_chunk_key(video_id: int, index: int) -> str:
    return f"tts/{video_id}-chunk-{index}.mp3"


def source_type_for_url(url: str) -> str:
    host = (urlparse(url).hostname or '').lower()
    if host.startswith('www.') or host.startswith('m.'):
        host = host.split('.', 1)[1]
    for suffix, kind in HOST_SOURCE_TYPES.items():
        if host == suffix or host.endswith('.' + suffix):
            return kind
    return 'research'
