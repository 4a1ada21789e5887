"""Pipeline orchestrator: sequences adapter calls and owns the video status.

One orchestrator is built at start-up with explicit adapter handles and shared
by all requests. It keeps no per-request state; every operation receives the
request's ``AsyncSession``. Adapter calls are awaited one after another, TTS
chunks included, and no stage is wrapped in a single transaction: concurrent
calls for the same video may interleave and the last write wins.
"""
import os, time
from datetime import datetime, timezone
from statistics import mean
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from transcription_pipeline.adapters.registry import Adapters
from transcription_pipeline.adapters.render import RENDER_KINDS
from transcription_pipeline.core.config import Settings
from transcription_pipeline.core.errors import (
    AdapterError, NotFoundError, PipelineError, StageError, ValidationError,
)
from transcription_pipeline.models.pipeline import (
    AIAnalysis, ConversionStatus, EXTRACTED_LOCATOR, ResearchCategory, STREAM_PREFIX,
    TTSConversion, Transcript, TranscriptionStatus, Video, VideoCategory,
)
from transcription_pipeline.schemas.pipeline import (
    CategoryAssignRequest, RenderRequest, ScoreDocument, UploadRequest,
)
from transcription_pipeline.services import search_service
from transcription_pipeline.services.analysis import (
    ANALYSIS_KINDS, DEFAULT_KINDS, AnalysisKind, build_prompt, parse_score_document,
)
from transcription_pipeline.services.state import can_transition, transition
from transcription_pipeline.utils.file import build_upload_key, source_type_for_url, tts_chunk_key
from transcription_pipeline.utils.text import chunk_text, preview, word_count

logger = structlog.get_logger(__name__)

SERVICE_NAME = 'Transcription Pipeline'
EXTRACTION_MODEL = 'extraction'
TTS_PREVIEW_CHARS = 100


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class PipelineOrchestrator:

    def __init__(self, adapters: Adapters, settings: Settings):
        self.adapters = adapters
        self.settings = settings

    # ---- lookups ----

    async def get_video(self, db: AsyncSession, video_id: int) -> Video:
        video = await db.get(Video, video_id)
        if video is None:
            raise NotFoundError('Video not found')
        return video

    async def latest_transcript(self, db: AsyncSession, video_id: int) -> Optional[Transcript]:
        q = await db.execute(
            select(Transcript).where(Transcript.video_id == video_id).order_by(Transcript.id.desc()).limit(1)
        )
        return q.scalar_one_or_none()

    async def _require_transcript(self, db: AsyncSession, video_id: int) -> Tuple[Video, Transcript]:
        video = await db.get(Video, video_id)
        transcript = await self.latest_transcript(db, video_id) if video else None
        if video is None or transcript is None:
            raise NotFoundError('Transcript not found')
        return video, transcript

    async def _ensure_url_unused(self, db: AsyncSession, url: str):
        q = await db.execute(select(Video.id).where(Video.url == url))
        if q.scalar_one_or_none() is not None:
            raise ValidationError(f"A video with url {url} already exists")

    # ---- ingest ----

    async def ingest_file(self, db: AsyncSession, data: bytes, filename: str | None,
                          content_type: str | None = None, title: str | None = None,
                          source_type: str | None = None) -> Dict:
        if not data:
            raise ValidationError('No video file provided')
        limit = self.settings.max_upload_size_mb * 1024 * 1024
        if len(data) > limit:
            raise ValidationError(f"File exceeds {self.settings.max_upload_size_mb} MB upload limit")
        title = title or 'Untitled Video'
        source_type = source_type or 'upload'
        try:
            key = build_upload_key(title, filename)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        try:
            await self.adapters.content_store.put(key, data, content_type, {
                'originalName': filename,
                'uploadTime': datetime.now(timezone.utc).isoformat(),
                'title': title,
                'sourceType': source_type,
            })
        except AdapterError as e:
            raise StageError('Upload', e.message) from e

        video = Video(title=title, file_path=key, source_type=source_type, file_size_bytes=len(data),
                      transcription_status=TranscriptionStatus.pending.value,
                      metadata_json={'content_type': content_type, 'original_name': filename})
        db.add(video)
        await db.commit()
        logger.info('ingest.file', video_id=video.id, key=key, size=len(data))
        return {
            'success': True,
            'videoId': video.id,
            'filename': key,
            'status': video.transcription_status,
            'message': 'Video uploaded successfully - ready for transcription',
        }

    async def ingest_json(self, db: AsyncSession, req: UploadRequest) -> Dict:
        """URL content, URL reference, or finalisation of a direct host upload."""
        if req.url:
            await self._ensure_url_unused(db, req.url)
        metadata = dict(req.metadata)
        if req.content_type:
            metadata['content_type'] = req.content_type

        if req.videoUID:
            locator = f"{STREAM_PREFIX}{req.videoUID}"
            source_type = req.source_type or 'upload'
            title = req.title or req.videoUID
            message = 'Hosted upload registered - ready for transcription'
        elif req.extracted_content is not None:
            if not req.extracted_content.strip():
                raise ValidationError('extracted_content is empty')
            locator = EXTRACTED_LOCATOR
            source_type = req.source_type or (source_type_for_url(req.url) if req.url else 'research')
            title = req.title or req.url or 'Untitled Content'
            message = 'Content stored - transcript available'
        elif req.url:
            locator = None
            source_type = req.source_type or source_type_for_url(req.url)
            title = req.title or req.url
            message = 'URL registered'
        else:
            raise ValidationError('Provide a video file, url, extracted_content or videoUID')

        video = Video(title=title, url=req.url, source_type=source_type, file_path=locator,
                      transcription_status=TranscriptionStatus.pending.value,
                      tags=list(req.tags), metadata_json=metadata)
        db.add(video)
        await db.flush()
        transcript_id = None
        if locator == EXTRACTED_LOCATOR:
            transcript = Transcript(
                video_id=video.id,
                transcript_text=req.extracted_content,
                confidence_score=1.0,
                word_count=word_count(req.extracted_content),
                processing_time_ms=0,
                whisper_model=EXTRACTION_MODEL,
            )
            db.add(transcript)
            await db.flush()
            transcript_id = transcript.id
        await db.commit()
        logger.info('ingest.json', video_id=video.id, locator=locator, source_type=source_type)
        return {
            'success': True,
            'videoId': video.id,
            'transcriptId': transcript_id,
            'sourceType': source_type,
            'status': video.transcription_status,
            'message': message,
        }

    async def initiate_upload(self, name: str) -> Dict:
        try:
            slot = await self.adapters.video_host.create_direct_upload(
                name, self.settings.stream_max_duration_seconds
            )
        except AdapterError as e:
            raise StageError('Upload initiation', e.message) from e
        return {'uploadURL': slot.upload_url, 'videoUID': slot.video_id}

    # ---- transcribe ----

    async def _resolve_media(self, video: Video) -> Tuple[bytes, str]:
        locator = video.file_path
        if not locator:
            raise NotFoundError('Video has no stored media')
        if locator.startswith(STREAM_PREFIX):
            host = self.adapters.video_host
            url = await host.resolve_download_url(locator[len(STREAM_PREFIX):])
            return await host.download(url), '.mp4'
        data = await self.adapters.content_store.get(locator)
        if data is None:
            raise NotFoundError('Video file not found in storage')
        return data, os.path.splitext(locator)[1] or '.mp4'

    async def transcribe(self, db: AsyncSession, video_id: int) -> Dict:
        video = await self.get_video(db, video_id)
        log = logger.bind(video_id=video_id)
        transition(video, TranscriptionStatus.processing)
        await db.commit()
        log.info('transcription.started', locator=video.file_path)

        start = time.perf_counter()
        try:
            if video.file_path == EXTRACTED_LOCATOR:
                transcript = await self.latest_transcript(db, video_id)
                if transcript is None:
                    raise NotFoundError('No extracted transcript stored for this video')
            else:
                data, suffix = await self._resolve_media(video)
                result = await self.adapters.transcriber.transcribe(data, suffix=suffix)
                transcript = Transcript(
                    video_id=video.id,
                    transcript_text=result.text,
                    language_detected=result.language or 'en',
                    confidence_score=result.confidence,
                    timestamp_data=result.segments or None,
                    word_count=word_count(result.text),
                    processing_time_ms=_elapsed_ms(start),
                    whisper_model=self.adapters.transcriber.model_id,
                )
                db.add(transcript)
            transition(video, TranscriptionStatus.completed)
            await db.commit()
        except Exception as e:
            cause = e.message if isinstance(e, PipelineError) else str(e)
            await db.rollback()
            await db.refresh(video)
            if can_transition(video.transcription_status, TranscriptionStatus.failed):
                transition(video, TranscriptionStatus.failed)
                await db.commit()
            else:
                # another run already finished this video
                log.warning('transcription.status_not_updated', status=video.transcription_status)
            log.warning('transcription.failed', error=cause)
            raise StageError('Transcription', cause) from e

        log.info('transcription.completed', transcript_id=transcript.id, words=transcript.word_count)
        return {
            'success': True,
            'videoId': video.id,
            'transcriptId': transcript.id,
            'transcript': transcript.transcript_text,
            'processingTimeMs': transcript.processing_time_ms,
            'wordCount': transcript.word_count,
            'message': 'Transcription completed successfully',
        }

    # ---- analyze ----

    def resolve_kinds(self, analysis_types: Optional[List[str]]) -> List[AnalysisKind]:
        names = DEFAULT_KINDS if analysis_types is None else analysis_types
        if not names:
            raise ValidationError('analysisTypes must not be empty')
        unknown = [n for n in names if n not in ANALYSIS_KINDS]
        if unknown:
            raise ValidationError(
                f"Unknown analysis types: {', '.join(unknown)} (expected {', '.join(ANALYSIS_KINDS)})"
            )
        # keep request order, drop repeats
        return [ANALYSIS_KINDS[n] for n in dict.fromkeys(names)]

    async def analyze(self, db: AsyncSession, video_id: int,
                      analysis_types: Optional[List[str]] = None) -> Dict:
        """Score the newest transcript once per requested kind.

        Best effort: a kind whose scoring call fails is reported under ``failed``
        while rows already written for other kinds stay, and the video's score
        columns are projected from the kinds that succeeded. Only when every kind
        fails does the call itself fail.
        """
        kinds = self.resolve_kinds(analysis_types)
        video, transcript = await self._require_transcript(db, video_id)
        log = logger.bind(video_id=video_id)
        scorer = self.adapters.scorer

        results: Dict[str, ScoreDocument] = {}
        failed: Dict[str, str] = {}
        for kind in kinds:
            prompt = build_prompt(kind, video.title, transcript.transcript_text)
            start = time.perf_counter()
            try:
                raw = await scorer.complete(prompt)
            except AdapterError as e:
                log.warning('analysis.kind_failed', kind=kind.name, error=e.message)
                failed[kind.name] = e.message
                continue
            doc = parse_score_document(kind, raw)
            db.add(AIAnalysis(
                video_id=video.id,
                analysis_type=kind.name,
                analysis_result=doc.model_dump(mode='json'),
                confidence_score=doc.confidence,
                processing_model=scorer.model_id,
                processing_time_ms=_elapsed_ms(start),
            ))
            await db.commit()
            results[kind.name] = doc

        if not results:
            raise StageError('Analysis', '; '.join(f"{k}: {v}" for k, v in failed.items()))

        average = mean(doc.score for doc in results.values())
        video.ai_rating_score = average
        for name, doc in results.items():
            setattr(video, ANALYSIS_KINDS[name].score_column, doc.score)
        await db.commit()
        log.info('analysis.completed', kinds=list(results), average=average, failed=list(failed))

        response = {
            'success': True,
            'videoId': video.id,
            'analysis': {name: doc.model_dump(mode='json') for name, doc in results.items()},
            'averageScore': average,
            'message': 'Analysis completed successfully',
        }
        if failed:
            response['failed'] = failed
        return response

    # ---- speak ----

    async def speak(self, db: AsyncSession, video_id: int, voice: str | None = None,
                    chunk_size: int | None = None) -> Dict:
        voice = voice or self.settings.default_voice
        chunk_size = chunk_size or self.settings.tts_chunk_size
        if chunk_size <= 0:
            raise ValidationError('chunkSize must be positive')
        video, transcript = await self._require_transcript(db, video_id)
        chunks = chunk_text(transcript.transcript_text, chunk_size)
        if not chunks:
            raise ValidationError('Transcript has no text to speak')

        conversion = TTSConversion(
            video_id=video.id, transcript_id=transcript.id, voice_model=voice,
            chunk_count=len(chunks), audio_files=[],
            conversion_status=ConversionStatus.processing.value,
        )
        db.add(conversion)
        await db.commit()
        log = logger.bind(video_id=video_id, conversion_id=conversion.id)

        start = time.perf_counter()
        audio_files: List[str] = []
        audio_chunks: List[Dict] = []
        total_duration = 0.0
        try:
            # one round-trip per chunk, in order
            for index, chunk in enumerate(chunks):
                speech = await self.adapters.speech.synthesize(chunk, voice)
                key = tts_chunk_key(video.id, index)
                await self.adapters.content_store.put(
                    key, speech.audio, speech.content_type, {'videoId': video.id, 'chunkIndex': index}
                )
                audio_files.append(key)
                total_duration += speech.duration_seconds
                audio_chunks.append({'chunkIndex': index, 'filename': key,
                                     'text': preview(chunk, TTS_PREVIEW_CHARS)})
        except Exception as e:
            cause = e.message if isinstance(e, PipelineError) else str(e)
            conversion.conversion_status = ConversionStatus.failed.value
            conversion.audio_files = audio_files
            conversion.chunk_count = len(audio_files)
            conversion.processing_time_ms = _elapsed_ms(start)
            await db.commit()
            log.warning('tts.failed', error=cause, chunks_done=len(audio_files))
            raise StageError('TTS conversion', cause) from e

        conversion.conversion_status = ConversionStatus.completed.value
        conversion.audio_files = audio_files
        conversion.total_duration_seconds = round(total_duration, 2)
        conversion.processing_time_ms = _elapsed_ms(start)
        await db.commit()
        log.info('tts.completed', chunks=len(chunks))
        return {
            'success': True,
            'videoId': video.id,
            'conversionId': conversion.id,
            'totalChunks': len(chunks),
            'totalDurationSeconds': conversion.total_duration_seconds,
            'audioChunks': audio_chunks,
            'message': 'Text-to-speech conversion completed',
        }

    # ---- reads ----

    async def search(self, db: AsyncSession, query: str | None = None, min_rating: float = 0.0,
                     category: str | None = None, limit: int | None = None,
                     client_ip: str | None = None) -> Dict:
        limit = limit or self.settings.search_default_limit
        result = await search_service.search(db, query=query, min_rating=min_rating,
                                             category=category, limit=limit, client_ip=client_ip)
        return {'success': True, **result}

    async def status(self, db: AsyncSession) -> Dict:
        return {
            'success': True,
            'status': 'operational',
            'service': SERVICE_NAME,
            'version': self.settings.app_version,
            'statistics': await search_service.pipeline_statistics(db),
            'features': search_service.FEATURES,
        }

    async def video_detail(self, db: AsyncSession, video_id: int) -> Dict:
        video = await self.get_video(db, video_id)
        transcript = await self.latest_transcript(db, video_id)
        analyses = (await db.execute(
            select(AIAnalysis).where(AIAnalysis.video_id == video_id).order_by(AIAnalysis.id)
        )).scalars().all()
        categories = (await db.execute(
            select(ResearchCategory.name, VideoCategory.relevance_score, VideoCategory.auto_assigned)
            .join(VideoCategory, VideoCategory.category_id == ResearchCategory.id)
            .where(VideoCategory.video_id == video_id)
            .order_by(ResearchCategory.name)
        )).all()
        return {
            'video': video.to_dict(),
            'transcriptId': transcript.id if transcript else None,
            'wordCount': transcript.word_count if transcript else None,
            'analyses': [a.to_dict() for a in analyses],
            'categories': [
                {'name': name, 'relevance_score': score, 'auto_assigned': auto}
                for name, score, auto in categories
            ],
        }

    async def list_categories(self, db: AsyncSession) -> Dict:
        rows = (await db.execute(select(ResearchCategory).order_by(ResearchCategory.name))).scalars().all()
        return {'categories': [c.to_dict() for c in rows], 'total': len(rows)}

    async def assign_category(self, db: AsyncSession, video_id: int, req: CategoryAssignRequest) -> Dict:
        video = await self.get_video(db, video_id)
        q = await db.execute(select(ResearchCategory).where(ResearchCategory.name == req.category))
        category = q.scalar_one_or_none()
        if category is None:
            raise NotFoundError(f"Category not found: {req.category}")
        link = await db.get(VideoCategory, (video.id, category.id))
        if link is None:
            link = VideoCategory(video_id=video.id, category_id=category.id)
            db.add(link)
        link.relevance_score = req.relevance_score
        link.auto_assigned = req.auto_assigned
        tags = list(video.tags or [])
        if category.name not in tags:
            video.tags = tags + [category.name]
        await db.commit()
        return {'success': True, 'videoId': video.id, 'category': category.name,
                'relevance_score': link.relevance_score, 'auto_assigned': link.auto_assigned,
                'tags': video.tags}

    # ---- render ----

    async def render(self, req: RenderRequest) -> Dict:
        kind = req.type or 'markdown'
        if kind not in RENDER_KINDS:
            raise ValidationError(f"Unsupported render type: {kind} (expected {', '.join(RENDER_KINDS)})")
        if not (req.url or req.html):
            raise ValidationError('url or html is required')
        payload = {'url': req.url} if req.url else {'html': req.html}
        if kind == 'json':
            payload['prompt'] = req.prompt
            if req.json_schema:
                payload['response_format'] = {'type': 'json_schema', 'json_schema': req.json_schema}
        try:
            result = await self.adapters.renderer.render(kind, payload, req.options)
        except AdapterError as e:
            raise StageError('Render', e.message) from e
        return {'success': True, 'type': kind, 'result': result}
