import json, math, re
from dataclasses import dataclass
from typing import Dict, List, Type

from pydantic import ValidationError as SchemaError

from transcription_pipeline.schemas.pipeline import (
    FactualResult, QualityResult, RelevanceResult, ScoreDocument,
)

DEFAULT_SCORE = 5.0
FALLBACK_CONFIDENCE = 0.6
PARSE_ERROR_CONFIDENCE = 0.3

_SCORE_TOKEN = re.compile(r'score[:\s]*(\d+(?:\.\d+)?)', re.IGNORECASE)


@dataclass(frozen=True)
class AnalysisKind:
    name: str
    score_column: str
    document: Type[ScoreDocument]
    instructions: str
    example: str


ANALYSIS_KINDS: Dict[str, AnalysisKind] = {
    'quality': AnalysisKind(
        name='quality',
        score_column='content_quality_score',
        document=QualityResult,
        instructions=(
            'Analyze the following transcript for content quality. Rate from 0-10 based on clarity, '
            'coherence, information density, and overall value for scientific research. '
            'Return JSON with score and reasoning.'
        ),
        example='{"score": 8.5, "reasoning": "Clear explanations, good structure...", '
                '"factors": {"clarity": 9, "coherence": 8, "density": 8}}',
    ),
    'relevance': AnalysisKind(
        name='relevance',
        score_column='research_relevance_score',
        document=RelevanceResult,
        instructions=(
            'Analyze this transcript for relevance to the research program: quantum physics, '
            'consciousness studies, spirituality, advanced theoretical physics, prophecy, and '
            'interdisciplinary science. Rate 0-10.'
        ),
        example='{"score": 7.2, "topics": ["quantum consciousness", "measurement problem"], '
                '"research_factors": {"quantum_physics": 8, "consciousness": 9, "spirituality": 6, "prophecy": 4}}',
    ),
    'factual': AnalysisKind(
        name='factual',
        score_column='factual_accuracy_score',
        document=FactualResult,
        instructions=(
            'Analyze this transcript for factual accuracy and scientific rigor. Rate 0-10 based on '
            'verifiable claims, logical consistency, and scientific validity.'
        ),
        example='{"score": 6.8, "claims_analysis": ["accurate physics concepts", "unverified spiritual claims"], '
                '"accuracy_factors": {"scientific_rigor": 7, "logical_consistency": 8, "verifiability": 5}}',
    ),
}

DEFAULT_KINDS: List[str] = ['quality', 'relevance', 'factual']


def build_prompt(kind: AnalysisKind, title: str, transcript: str) -> str:
    return (
        f"{kind.instructions}\n\n"
        f"Title: {title}\n"
        f"Transcript: {transcript}\n\n"
        f"Return format: {kind.example}"
    )


def _score_token(text: str) -> float:
    m = _SCORE_TOKEN.search(text or '')
    return float(m.group(1)) if m else DEFAULT_SCORE


def _as_score(value) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    # json.loads accepts NaN and Infinity
    return score if math.isfinite(score) else None


def parse_score_response(text: str) -> dict:
    """Best-effort extraction of a score dict from free model output.

    1. the span from the first '{' to the last '}' parsed as JSON;
    2. otherwise a ``score: N`` token, or 5.0, with lowered confidence.
    Never raises.
    """
    text = text or ''
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            return {'score': _score_token(text), 'reasoning': text,
                    'confidence': PARSE_ERROR_CONFIDENCE, 'parse_error': str(e)}
        if isinstance(data, dict):
            score = _as_score(data.get('score'))
            if score is None:
                data['score'] = _score_token(text)
                data['confidence'] = min(_as_score(data.get('confidence')) or FALLBACK_CONFIDENCE,
                                         FALLBACK_CONFIDENCE)
            else:
                data['score'] = score
            return data
    return {'score': _score_token(text), 'reasoning': text, 'confidence': FALLBACK_CONFIDENCE}


def parse_score_document(kind: AnalysisKind, text: str) -> ScoreDocument:
    """Parse model output and validate it against the kind's document schema.

    Output that parses but does not fit the schema is kept as a generic
    ScoreDocument carrying the raw fields and a low confidence.
    """
    data = parse_score_response(text)
    data['kind'] = kind.name
    if _as_score(data.get('confidence')) is None:
        data.pop('confidence', None)
    try:
        return kind.document.model_validate(data)
    except SchemaError as e:
        return ScoreDocument(kind=kind.name, score=data['score'], confidence=PARSE_ERROR_CONFIDENCE,
                             reasoning=text, parse_error=str(e), raw=data)
