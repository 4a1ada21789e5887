import pytest

from transcription_pipeline.models.pipeline import TranscriptionStatus

ORIGIN = {'Origin': 'https://dashboard.example'}


@pytest.mark.anyio
async def test_root_lists_endpoints(client):
    r = await client.get('/')
    assert r.status_code == 200
    body = r.json()
    assert body['service'] == 'Transcription Pipeline'
    assert 'POST /transcribe' in body['endpoints']


@pytest.mark.anyio
async def test_multipart_upload_then_transcribe(client):
    files = {'video': ('talk.mp4', b'fake-mp4-bytes', 'video/mp4')}
    r = await client.post('/upload', files=files, data={'title': 'Quantum Talk'})
    assert r.status_code == 200, r.text
    video_id = r.json()['videoId']

    r2 = await client.post('/transcribe', json={'videoId': video_id})
    assert r2.status_code == 200, r2.text
    assert r2.json()['wordCount'] == 2

    r3 = await client.get(f'/videos/{video_id}')
    assert r3.json()['video']['transcription_status'] == 'completed'
    assert r3.json()['video']['title'] == 'Quantum Talk'


@pytest.mark.anyio
async def test_multipart_without_video_field(client):
    r = await client.post('/upload', files={'attachment': ('a.txt', b'x', 'text/plain')})
    assert r.status_code == 400
    assert r.json() == {'error': 'No video file provided'}


@pytest.mark.anyio
async def test_json_upload_variants(client):
    r = await client.post('/upload', json={'url': 'https://www.youtube.com/watch?v=1',
                                           'extracted_content': 'Light is a wave. Light is a particle.'})
    assert r.status_code == 200, r.text
    assert r.json()['sourceType'] == 'youtube'

    r = await client.post('/upload', json={})
    assert r.status_code == 400
    assert 'error' in r.json()

    r = await client.post('/upload', content=b'not json', headers={'content-type': 'text/plain'})
    assert r.status_code == 400


@pytest.mark.anyio
async def test_full_pipeline_over_http(client):
    r = await client.post('/upload', json={'title': 'Notes', 'extracted_content': 'Quantum fields. Hidden order.'})
    video_id = r.json()['videoId']
    assert (await client.post('/transcribe', json={'videoId': video_id})).status_code == 200

    r = await client.post('/analyze', json={'videoId': video_id, 'analysisTypes': ['quality', 'relevance']})
    assert r.status_code == 200, r.text
    assert set(r.json()['analysis']) == {'quality', 'relevance'}
    assert r.json()['averageScore'] == 8.0

    r = await client.post('/tts', json={'videoId': video_id, 'chunkSize': 100})
    assert r.status_code == 200, r.text
    assert r.json()['totalChunks'] == 1
    assert r.json()['audioChunks'][0] == {'chunkIndex': 0, 'filename': f'tts/{video_id}-chunk-0.mp3',
                                          'text': 'Quantum fields. Hidden order.'}

    r = await client.get('/search', params={'q': 'quantum', 'min_rating': 7})
    assert r.status_code == 200
    assert [v['id'] for v in r.json()['results']] == [video_id]


@pytest.mark.anyio
async def test_validation_errors_are_400(client):
    r = await client.post('/transcribe', json={})
    assert r.status_code == 400
    assert r.json() == {'error': 'videoId: Field required'}

    r = await client.post('/tts', json={'videoId': 1, 'chunkSize': 0})
    assert r.status_code == 400

    r = await client.get('/search', params={'limit': 0})
    assert r.status_code == 400

    r = await client.post('/initiate-upload', json={})
    assert r.status_code == 400

    r = await client.post('/render', json={'type': 'markdown'})
    assert r.status_code == 400
    assert r.json() == {'error': 'url or html is required'}


@pytest.mark.anyio
async def test_not_found_errors_are_404(client, make_video):
    r = await client.post('/transcribe', json={'videoId': 999})
    assert r.status_code == 404
    assert r.json() == {'error': 'Video not found'}

    video = await make_video(status=TranscriptionStatus.pending, with_transcript=False)
    r = await client.post('/analyze', json={'videoId': video.id})
    assert r.status_code == 404
    assert r.json() == {'error': 'Transcript not found'}

    assert (await client.get('/videos/999')).status_code == 404


@pytest.mark.anyio
async def test_adapter_failure_is_500_with_cause(client, adapters):
    files = {'video': ('clip.wav', b'wav-bytes', 'audio/wav')}
    video_id = (await client.post('/upload', files=files)).json()['videoId']
    adapters.transcriber.error = 'CUDA out of memory'
    r = await client.post('/transcribe', json={'videoId': video_id})
    assert r.status_code == 500
    assert r.json() == {'error': 'Transcription failed: whisper: CUDA out of memory'}

    detail = (await client.get(f'/videos/{video_id}')).json()
    assert detail['video']['transcription_status'] == 'failed'


@pytest.mark.anyio
async def test_unexpected_exception_is_500_with_cors(client, adapters):
    adapters.renderer.error = RuntimeError('renderer exploded')
    r = await client.post('/render', json={'url': 'https://example.org'}, headers=ORIGIN)
    assert r.status_code == 500
    assert r.json() == {'error': 'renderer exploded'}
    assert r.headers['access-control-allow-origin'] == '*'


@pytest.mark.anyio
async def test_cors_headers_on_success_and_error(client):
    ok = await client.get('/status', headers=ORIGIN)
    assert ok.headers['access-control-allow-origin'] == '*'
    missing = await client.post('/transcribe', json={'videoId': 42}, headers=ORIGIN)
    assert missing.status_code == 404
    assert missing.headers['access-control-allow-origin'] == '*'

    preflight = await client.options('/analyze', headers={**ORIGIN, 'Access-Control-Request-Method': 'POST'})
    assert preflight.status_code == 200


@pytest.mark.anyio
async def test_status_and_categories(client, make_video):
    await make_video(rating=9, relevance=8)
    r = await client.get('/status')
    assert r.status_code == 200
    body = r.json()
    assert body['status'] == 'operational'
    assert body['statistics']['completed'] == 1
    assert body['statistics']['high_relevance_count'] == 1

    r = await client.get('/categories')
    assert r.json()['total'] == 13


@pytest.mark.anyio
async def test_assign_category_feeds_search_filter(client, make_video):
    video = await make_video(title='Golden ratio', rating=7)
    r = await client.post(f'/videos/{video.id}/categories', json={'category': 'Sacred Geometry'})
    assert r.status_code == 200, r.text
    r = await client.get('/search', params={'category': 'Sacred Geometry'})
    assert [v['title'] for v in r.json()['results']] == ['Golden ratio']

    r = await client.post(f'/videos/{video.id}/categories', json={'category': 'Nope'})
    assert r.status_code == 404


@pytest.mark.anyio
async def test_initiate_upload_and_render(client, adapters):
    r = await client.post('/initiate-upload', json={'name': 'lecture.mp4'})
    assert r.json() == {'uploadURL': 'https://upload.example/slot/abc123', 'videoUID': 'abc123'}

    r = await client.post('/render', json={'html': '<h1>Hi</h1>', 'type': 'pdf', 'options': {'format': 'a4'}})
    assert r.status_code == 200
    assert r.json()['result']['encoding'] == 'base64'
    assert adapters.renderer.calls[-1] == ('pdf', {'html': '<h1>Hi</h1>'}, {'format': 'a4'})


@pytest.mark.anyio
async def test_unknown_route_uses_error_body(client):
    r = await client.get('/nope')
    assert r.status_code == 404
    assert r.json() == {'error': 'Not Found'}


def test_root_with_sync_client(adapters, settings):
    from fastapi.testclient import TestClient
    from transcription_pipeline.main import create_app

    client = TestClient(create_app(adapters=adapters, settings=settings))
    r = client.get('/', headers=ORIGIN)
    assert r.status_code == 200
    assert r.json()['version'] == settings.app_version
    assert r.headers['access-control-allow-origin'] == '*'
