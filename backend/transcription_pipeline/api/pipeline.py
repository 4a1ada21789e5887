import json

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from transcription_pipeline.api.deps import client_ip, get_db, get_orchestrator
from transcription_pipeline.core.errors import ValidationError
from transcription_pipeline.schemas.pipeline import (
    AnalyzeRequest, CategoryAssignRequest, InitiateUploadRequest, RenderRequest,
    TTSRequest, TranscribeRequest, UploadRequest,
)
from transcription_pipeline.services.orchestrator import PipelineOrchestrator

router = APIRouter(tags=["pipeline"])


def _first_error(e: SchemaError) -> str:
    err = e.errors()[0]
    loc = '.'.join(str(p) for p in err.get('loc', ()))
    return f"{loc}: {err.get('msg')}" if loc else err.get('msg', 'Invalid request body')


@router.post('/upload')
async def upload(request: Request, db: AsyncSession = Depends(get_db),
                 orch: PipelineOrchestrator = Depends(get_orchestrator)):
    """Multipart form with a ``video`` file, or a JSON body describing URL content."""
    content_type = request.headers.get('content-type', '')
    if content_type.startswith('multipart/form-data'):
        form = await request.form()
        video = form.get('video')
        if not isinstance(video, UploadFile):
            raise ValidationError('No video file provided')
        data = await video.read()
        return await orch.ingest_file(
            db, data, video.filename,
            content_type=video.content_type,
            title=form.get('title') or None,
            source_type=form.get('source_type') or None,
        )
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError('Request body must be multipart/form-data or JSON')
    try:
        req = UploadRequest.model_validate(body)
    except SchemaError as e:
        raise ValidationError(_first_error(e))
    return await orch.ingest_json(db, req)


@router.post('/initiate-upload')
async def initiate_upload(payload: InitiateUploadRequest, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.initiate_upload(payload.name)


@router.post('/transcribe')
async def transcribe(payload: TranscribeRequest, db: AsyncSession = Depends(get_db),
                     orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.transcribe(db, payload.videoId)


@router.post('/analyze')
async def analyze(payload: AnalyzeRequest, db: AsyncSession = Depends(get_db),
                  orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.analyze(db, payload.videoId, payload.analysisTypes)


@router.post('/tts')
async def tts(payload: TTSRequest, db: AsyncSession = Depends(get_db),
              orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.speak(db, payload.videoId, voice=payload.voice, chunk_size=payload.chunkSize)


@router.post('/render')
async def render(payload: RenderRequest, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.render(payload)


@router.get('/search')
async def search(request: Request,
                 q: str | None = None,
                 min_rating: float = 0.0,
                 limit: int | None = Query(None, ge=1, le=500),
                 category: str | None = None,
                 db: AsyncSession = Depends(get_db),
                 orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.search(db, query=q or None, min_rating=min_rating, category=category or None,
                             limit=limit, client_ip=client_ip(request))


@router.get('/status')
async def status(db: AsyncSession = Depends(get_db), orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.status(db)


@router.get('/videos/{video_id}')
async def video_detail(video_id: int, db: AsyncSession = Depends(get_db),
                       orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.video_detail(db, video_id)


@router.get('/categories')
async def categories(db: AsyncSession = Depends(get_db), orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.list_categories(db)


@router.post('/videos/{video_id}/categories')
async def assign_category(video_id: int, payload: CategoryAssignRequest, db: AsyncSession = Depends(get_db),
                          orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return await orch.assign_category(db, video_id, payload)
