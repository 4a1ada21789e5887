import hashlib, time
from typing import Dict, List

import structlog
from sqlalchemy import String, case, cast, func, nulls_last, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from transcription_pipeline.models.pipeline import SearchQuery, Transcript, TranscriptionStatus, Video
from transcription_pipeline.utils.text import preview

logger = structlog.get_logger(__name__)

PREVIEW_CHARS = 300
HIGH_RELEVANCE_THRESHOLD = 7

FEATURES = [
    'Video Upload & Transcription',
    'Direct Uploads to Video Hosting',
    'URL Content Ingestion',
    'AI Content Analysis',
    'Research Relevance Scoring',
    'Text-to-Speech Conversion',
    'Searchable Transcript Database',
    'Headless Browser Rendering',
]


def latest_transcript_ids():
    """Subquery: newest transcript id per video."""
    return (
        select(Transcript.video_id, func.max(Transcript.id).label('transcript_id'))
        .group_by(Transcript.video_id)
        .subquery()
    )


def _like(value: str) -> str:
    return f"%{value}%"


async def search_videos(db: AsyncSession, query: str | None = None, min_rating: float = 0.0,
                        category: str | None = None, limit: int = 50) -> List[Dict]:
    latest = latest_transcript_ids()
    stmt = (
        select(Video, Transcript)
        .join(latest, latest.c.video_id == Video.id)
        .join(Transcript, Transcript.id == latest.c.transcript_id)
        .where(Video.transcription_status == TranscriptionStatus.completed.value)
    )
    if min_rating and min_rating > 0:
        stmt = stmt.where(Video.ai_rating_score >= min_rating)
    if query:
        stmt = stmt.where(or_(Video.title.ilike(_like(query)), Transcript.transcript_text.ilike(_like(query))))
    if category:
        # tags is a JSON list; match against its serialised text
        stmt = stmt.where(func.coalesce(cast(Video.tags, String), '').ilike(_like(category)))
    stmt = stmt.order_by(nulls_last(Video.ai_rating_score.desc()), Video.id).limit(limit)

    rows = (await db.execute(stmt)).all()
    results = []
    for video, transcript in rows:
        item = video.to_dict()
        item.update({
            'transcript_id': transcript.id,
            'transcript_text': transcript.transcript_text,
            'word_count': transcript.word_count,
            'language_detected': transcript.language_detected,
            'transcript_preview': preview(transcript.transcript_text, PREVIEW_CHARS),
        })
        results.append(item)
    return results


async def log_search(db: AsyncSession, query: str | None, min_rating: float, category: str | None,
                     results_count: int, response_time_ms: int, client_ip: str | None = None) -> None:
    db.add(SearchQuery(
        query_text=query or '',
        results_count=results_count,
        min_rating_filter=min_rating,
        category_filter=category,
        user_ip=hashlib.sha256(client_ip.encode('utf-8')).hexdigest() if client_ip else None,
        response_time_ms=response_time_ms,
    ))
    await db.commit()


async def search(db: AsyncSession, query: str | None = None, min_rating: float = 0.0,
                 category: str | None = None, limit: int = 50, client_ip: str | None = None) -> Dict:
    start = time.perf_counter()
    results = await search_videos(db, query=query, min_rating=min_rating, category=category, limit=limit)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    await log_search(db, query, min_rating, category, len(results), elapsed_ms, client_ip)
    logger.info('search.completed', query=query, results=len(results), ms=elapsed_ms)
    return {
        'results': results,
        'total': len(results),
        'query': query,
        'minRating': min_rating,
        'category': category,
    }


async def pipeline_statistics(db: AsyncSession) -> Dict:
    def _count(status: TranscriptionStatus):
        return func.coalesce(func.sum(case((Video.transcription_status == status.value, 1), else_=0)), 0)

    stmt = select(
        func.count(Video.id).label('total_videos'),
        _count(TranscriptionStatus.completed).label('completed'),
        _count(TranscriptionStatus.processing).label('processing'),
        _count(TranscriptionStatus.pending).label('pending'),
        _count(TranscriptionStatus.failed).label('failed'),
        func.avg(Video.ai_rating_score).label('avg_rating'),
        func.coalesce(func.sum(case((Video.research_relevance_score >= HIGH_RELEVANCE_THRESHOLD, 1), else_=0)), 0)
        .label('high_relevance_count'),
    )
    row = (await db.execute(stmt)).one()
    return dict(row._mapping)
