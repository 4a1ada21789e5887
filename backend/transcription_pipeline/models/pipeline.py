import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text,
)

from transcription_pipeline.db.database import Base


class TranscriptionStatus(str, enum.Enum):
    pending = 'pending'
    processing = 'processing'
    completed = 'completed'
    failed = 'failed'


# Locator stored in videos.file_path for content that arrived as text.
EXTRACTED_LOCATOR = 'extracted'
STREAM_PREFIX = 'stream:'

# tts_conversions share the status vocabulary
ConversionStatus = TranscriptionStatus


def utcnow():
    return datetime.now(timezone.utc)


class Video(Base):
    __tablename__ = 'videos'
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    url = Column(String, unique=True, nullable=True)
    source_type = Column(String, default='upload', index=True)
    file_path = Column(String, nullable=True)  # content-store key | stream:<uid> | extracted
    duration_seconds = Column(Integer, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    upload_timestamp = Column(DateTime(timezone=True), default=utcnow)
    transcription_status = Column(String, default=TranscriptionStatus.pending.value, index=True)
    ai_rating_score = Column(Float, nullable=True, index=True)
    content_quality_score = Column(Float, nullable=True)
    research_relevance_score = Column(Float, nullable=True)
    factual_accuracy_score = Column(Float, nullable=True)
    tags = Column(JSON, default=list)
    metadata_json = Column('metadata', JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'url': self.url,
            'source_type': self.source_type,
            'file_path': self.file_path,
            'duration_seconds': self.duration_seconds,
            'file_size_bytes': self.file_size_bytes,
            'upload_timestamp': _iso(self.upload_timestamp),
            'transcription_status': self.transcription_status,
            'ai_rating_score': self.ai_rating_score,
            'content_quality_score': self.content_quality_score,
            'research_relevance_score': self.research_relevance_score,
            'factual_accuracy_score': self.factual_accuracy_score,
            'tags': self.tags or [],
            'metadata': self.metadata_json or {},
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Transcript(Base):
    __tablename__ = 'transcripts'
    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(Integer, ForeignKey('videos.id', ondelete='CASCADE'), index=True)
    transcript_text = Column(Text, nullable=False)
    language_detected = Column(String, default='en', index=True)
    confidence_score = Column(Float, default=0.95)
    timestamp_data = Column(JSON, nullable=True)  # [{start, end, text}]
    word_count = Column(Integer, index=True)
    processing_time_ms = Column(Integer)
    whisper_model = Column(String)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow)


class AIAnalysis(Base):
    __tablename__ = 'ai_analysis'
    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(Integer, ForeignKey('videos.id', ondelete='CASCADE'), index=True)
    analysis_type = Column(String, nullable=False, index=True)
    analysis_result = Column(JSON, nullable=False)
    confidence_score = Column(Float, default=0.8)
    processing_model = Column(String)
    processing_time_ms = Column(Integer)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'analysis_type': self.analysis_type,
            'analysis_result': self.analysis_result,
            'confidence_score': self.confidence_score,
            'processing_model': self.processing_model,
            'processing_time_ms': self.processing_time_ms,
            'created_timestamp': _iso(self.created_timestamp),
        }


class TTSConversion(Base):
    __tablename__ = 'tts_conversions'
    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(Integer, ForeignKey('videos.id', ondelete='CASCADE'), index=True)
    transcript_id = Column(Integer, ForeignKey('transcripts.id', ondelete='CASCADE'))
    voice_model = Column(String, default='alloy')
    chunk_count = Column(Integer)
    total_duration_seconds = Column(Float)
    audio_files = Column(JSON, default=list)
    conversion_status = Column(String, default=TranscriptionStatus.pending.value)
    processing_time_ms = Column(Integer)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow)


class ResearchCategory(Base):
    __tablename__ = 'research_categories'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text)
    parent_category_id = Column(Integer, ForeignKey('research_categories.id'), nullable=True)
    color_code = Column(String, nullable=True)
    relevance_keywords = Column(JSON, default=list)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'parent_category_id': self.parent_category_id,
            'color_code': self.color_code,
            'relevance_keywords': self.relevance_keywords or [],
        }


class VideoCategory(Base):
    __tablename__ = 'video_categories'
    video_id = Column(Integer, ForeignKey('videos.id', ondelete='CASCADE'), primary_key=True)
    category_id = Column(Integer, ForeignKey('research_categories.id', ondelete='CASCADE'), primary_key=True)
    relevance_score = Column(Float, default=1.0)
    auto_assigned = Column(Boolean, default=False)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow)


class SearchQuery(Base):
    __tablename__ = 'search_queries'
    id = Column(Integer, primary_key=True, index=True)
    query_text = Column(Text, nullable=False)
    results_count = Column(Integer)
    min_rating_filter = Column(Float)
    category_filter = Column(String, nullable=True)
    user_ip = Column(String, nullable=True)  # sha256 hex
    response_time_ms = Column(Integer)
    created_timestamp = Column(DateTime(timezone=True), default=utcnow)


def _iso(value):
    return value.isoformat() if value is not None else None
