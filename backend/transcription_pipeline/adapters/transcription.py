import asyncio, math, os, tempfile, threading, warnings
from dataclasses import dataclass, field
from typing import Dict, List

import structlog

from transcription_pipeline.core.errors import AdapterError

logger = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE = 0.95


@dataclass
class TranscriptionResult:
    text: str
    confidence: float = DEFAULT_CONFIDENCE
    language: str | None = None
    segments: List[Dict] = field(default_factory=list)


def segment_confidence(segments: List[Dict]) -> float:
    """Mean per-segment probability derived from Whisper's avg_logprob."""
    probs = [math.exp(s['avg_logprob']) for s in segments if s.get('avg_logprob') is not None]
    if not probs:
        return DEFAULT_CONFIDENCE
    return round(min(1.0, sum(probs) / len(probs)), 4)


class WhisperTranscriber:
    """Runs a local openai-whisper model over raw media bytes.

    The model is loaded on first use and shared by every request; inference runs
    in a worker thread so the event loop keeps serving other requests.
    """

    name = 'whisper'

    def __init__(self, model_size: str = 'base'):
        self.model_size = model_size
        self._model = None
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return f"whisper-{self.model_size}"

    def _get_model(self):
        with self._lock:
            if self._model is None:
                try:
                    import whisper
                except ImportError as e:
                    raise AdapterError(self.name, 'openai-whisper is not installed') from e
                with warnings.catch_warnings():
                    warnings.filterwarnings(
                        "ignore",
                        message=r"You are using `torch.load` with `weights_only=False`.*",
                        category=FutureWarning,
                    )
                    self._model = whisper.load_model(self.model_size)
            return self._model

    def _transcribe_sync(self, data: bytes, suffix: str) -> TranscriptionResult:
        model = self._get_model()
        fd, path = tempfile.mkstemp(suffix=suffix)
        try:
            with os.fdopen(fd, 'wb') as tmp:
                tmp.write(data)
            result = model.transcribe(path, verbose=False)
        finally:
            os.unlink(path)
        segments = [{
            'start': seg.get('start'),
            'end': seg.get('end'),
            'text': seg.get('text'),
            'avg_logprob': seg.get('avg_logprob'),
        } for seg in result.get('segments', [])]
        return TranscriptionResult(
            text=(result.get('text') or '').strip(),
            confidence=segment_confidence(segments),
            language=result.get('language'),
            segments=segments,
        )

    async def transcribe(self, data: bytes, suffix: str = '.mp4') -> TranscriptionResult:
        if not data:
            raise AdapterError(self.name, 'empty audio payload')
        try:
            return await asyncio.to_thread(self._transcribe_sync, data, suffix)
        except AdapterError:
            raise
        except Exception as e:
            logger.warning('whisper.failed', error=str(e))
            raise AdapterError(self.name, str(e)) from e
