from transcription_pipeline.schemas.pipeline import QualityResult, ScoreDocument
from transcription_pipeline.services.analysis import (
    ANALYSIS_KINDS, build_prompt, parse_score_document, parse_score_response,
)


def test_well_formed_json_score_is_taken():
    data = parse_score_response('{"score": 8.5, "reasoning": "clear"}')
    assert data['score'] == 8.5
    assert data['reasoning'] == 'clear'


def test_json_embedded_in_prose():
    data = parse_score_response('Sure! Here you go:\n{"score": 7, "topics": ["a"]}\nThanks.')
    assert data['score'] == 7.0
    assert data['topics'] == ['a']


def test_score_token_without_json():
    data = parse_score_response('Overall score: 6.5 because it rambles')
    assert data['score'] == 6.5
    assert data['confidence'] == 0.6


def test_defaults_to_five_when_nothing_found():
    data = parse_score_response('I cannot rate this.')
    assert data['score'] == 5.0


def test_malformed_json_falls_back_to_token_with_low_confidence():
    data = parse_score_response('{score: 9, reasoning: great}')
    assert data['score'] == 9.0
    assert data['confidence'] == 0.3
    assert 'parse_error' in data


def test_json_without_numeric_score():
    data = parse_score_response('{"score": "high", "reasoning": "?"}')
    assert data['score'] == 5.0
    assert data['confidence'] == 0.6


def test_numeric_string_score_accepted():
    assert parse_score_response('{"score": "7.5"}')['score'] == 7.5


def test_non_finite_scores_fall_back_to_default():
    for raw in ('{"score": NaN}', '{"score": Infinity}', '{"score": -Infinity}', '{"score": "nan"}'):
        data = parse_score_response(raw)
        assert data['score'] == 5.0, raw
        assert data['confidence'] == 0.6
    doc = parse_score_document(ANALYSIS_KINDS['quality'], '{"score": Infinity, "reasoning": "x"}')
    assert doc.score == 5.0


def test_document_is_tagged_and_clamped():
    doc = parse_score_document(ANALYSIS_KINDS['quality'], '{"score": 12, "factors": {"clarity": 9}}')
    assert isinstance(doc, QualityResult)
    assert doc.kind == 'quality'
    assert doc.score == 10.0
    assert doc.factors == {'clarity': 9}
    assert doc.confidence == 0.8


def test_unknown_fields_are_kept():
    doc = parse_score_document(ANALYSIS_KINDS['factual'], '{"score": 4, "note": "thin sourcing"}')
    assert doc.model_dump()['note'] == 'thin sourcing'


def test_schema_mismatch_degrades_to_generic_document():
    doc = parse_score_document(ANALYSIS_KINDS['relevance'], '{"score": 7, "topics": "not a list"}')
    assert type(doc) is ScoreDocument
    assert doc.kind == 'relevance'
    assert doc.score == 7.0
    assert doc.confidence == 0.3
    assert doc.parse_error


def test_prompt_embeds_title_and_transcript():
    prompt = build_prompt(ANALYSIS_KINDS['relevance'], 'Quantum Talk', 'Hello world')
    assert prompt.startswith(ANALYSIS_KINDS['relevance'].instructions)
    assert 'Title: Quantum Talk' in prompt
    assert 'Transcript: Hello world' in prompt
    assert 'Return format:' in prompt
