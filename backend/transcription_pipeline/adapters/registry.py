from dataclasses import dataclass
from typing import Any

from transcription_pipeline.adapters.render import BrowserRenderer
from transcription_pipeline.adapters.scoring import GeminiScorer
from transcription_pipeline.adapters.speech import ElevenLabsSpeech
from transcription_pipeline.adapters.storage import LocalContentStore
from transcription_pipeline.adapters.transcription import WhisperTranscriber
from transcription_pipeline.adapters.video_host import StreamVideoHost
from transcription_pipeline.core.config import Settings


@dataclass
class Adapters:
    """Handles to every managed service the orchestrator talks to.

    Typed as Any so test doubles can stand in without subclassing.
    """
    content_store: Any
    transcriber: Any
    scorer: Any
    speech: Any
    video_host: Any
    renderer: Any


def build_adapters(settings: Settings) -> Adapters:
    timeout = settings.http_timeout_seconds
    return Adapters(
        content_store=LocalContentStore(settings.storage_dir),
        transcriber=WhisperTranscriber(settings.whisper_model),
        scorer=GeminiScorer(settings.gemini_api_key, settings.gemini_model, timeout=timeout),
        speech=ElevenLabsSpeech(settings.elevenlabs_api_key, settings.elevenlabs_model, timeout=timeout),
        video_host=StreamVideoHost(settings.cf_account_id, settings.cf_api_token, timeout=timeout),
        renderer=BrowserRenderer(settings.cf_account_id, settings.cf_api_token, timeout=timeout),
    )
