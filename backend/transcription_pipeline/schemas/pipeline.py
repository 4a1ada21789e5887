from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCORE_MIN = 0.0
SCORE_MAX = 10.0
DEFAULT_ANALYSIS_CONFIDENCE = 0.8


# ---- Request bodies ----

class UploadRequest(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    source_type: Optional[str] = None
    content_type: Optional[str] = None
    extracted_content: Optional[str] = None
    videoUID: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class InitiateUploadRequest(BaseModel):
    name: str = Field(..., min_length=1)


class TranscribeRequest(BaseModel):
    videoId: int


class AnalyzeRequest(BaseModel):
    videoId: int
    analysisTypes: Optional[List[str]] = None


class TTSRequest(BaseModel):
    videoId: int
    voice: Optional[str] = None
    chunkSize: Optional[int] = Field(None, gt=0)


class RenderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    html: Optional[str] = None
    type: str = 'markdown'
    prompt: Optional[str] = None
    json_schema: Optional[Dict[str, Any]] = Field(None, alias='schema')
    options: Dict[str, Any] = Field(default_factory=dict)


class CategoryAssignRequest(BaseModel):
    category: str = Field(..., min_length=1)
    relevance_score: float = Field(1.0, ge=0.0)
    auto_assigned: bool = False


# ---- Score documents, one variant per analysis kind ----

class ScoreDocument(BaseModel):
    """Parsed scoring-model output. Unknown keys returned by the model are kept."""
    model_config = ConfigDict(extra='allow')

    kind: str
    score: float
    confidence: float = DEFAULT_ANALYSIS_CONFIDENCE
    reasoning: Optional[str] = None
    parse_error: Optional[str] = None

    @field_validator('score')
    @classmethod
    def _clamp_score(cls, v: float) -> float:
        return max(SCORE_MIN, min(SCORE_MAX, v))

    @field_validator('confidence')
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class QualityResult(ScoreDocument):
    """Clarity, coherence and information density of the transcript."""
    kind: Literal['quality'] = 'quality'
    factors: Dict[str, Any] = Field(default_factory=dict)


class RelevanceResult(ScoreDocument):
    """Relevance to the research taxonomy, with the topics that drove it."""
    kind: Literal['relevance'] = 'relevance'
    topics: List[str] = Field(default_factory=list)
    research_factors: Dict[str, Any] = Field(default_factory=dict)


class FactualResult(ScoreDocument):
    """Verifiability, logical consistency and scientific rigour of claims."""
    kind: Literal['factual'] = 'factual'
    claims_analysis: List[str] = Field(default_factory=list)
    accuracy_factors: Dict[str, Any] = Field(default_factory=dict)
