import os, pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///./test.db')
os.environ.setdefault('APP_ENV', 'test')

from transcription_pipeline.adapters.registry import Adapters  # after env setup
from transcription_pipeline.adapters.speech import SpeechResult
from transcription_pipeline.adapters.transcription import TranscriptionResult
from transcription_pipeline.adapters.video_host import DirectUpload
from transcription_pipeline.core.config import Settings
from transcription_pipeline.core.errors import AdapterError
from transcription_pipeline.db.database import get_db, init_db
from transcription_pipeline.main import create_app
from transcription_pipeline.models.pipeline import Transcript, TranscriptionStatus, Video
from transcription_pipeline.services.analysis import ANALYSIS_KINDS
from transcription_pipeline.services.orchestrator import PipelineOrchestrator


# ---- adapter fakes ----

class FakeContentStore:
    name = 'content-store'

    def __init__(self):
        self.objects = {}
        self.meta = {}

    async def put(self, key, data, content_type=None, metadata=None):
        self.objects[key] = data
        self.meta[key] = {'content_type': content_type, 'metadata': metadata or {}}

    async def get(self, key):
        return self.objects.get(key)


class FakeTranscriber:
    model_id = 'whisper-test'

    def __init__(self, text='Hello world'):
        self.text = text
        self.error = None
        self.calls = []

    async def transcribe(self, data, suffix='.mp4'):
        self.calls.append((data, suffix))
        if self.error:
            raise AdapterError('whisper', self.error)
        return TranscriptionResult(text=self.text, confidence=0.9, language='en',
                                   segments=[{'start': 0.0, 'end': 1.0, 'text': self.text}])


class FakeScorer:
    """Answers per analysis kind; a response that is an exception instance is raised."""
    model_id = 'gemini-test'

    def __init__(self):
        self.responses = {}
        self.prompts = []

    async def complete(self, prompt):
        self.prompts.append(prompt)
        for name, kind in ANALYSIS_KINDS.items():
            if prompt.startswith(kind.instructions):
                response = self.responses.get(name, '{"score": 8, "reasoning": "solid"}')
                if isinstance(response, Exception):
                    raise response
                return response
        return 'score: 5'


class FakeSpeech:
    def __init__(self):
        self.calls = []
        self.fail_at = None

    async def synthesize(self, text, voice):
        if self.fail_at is not None and len(self.calls) == self.fail_at:
            raise AdapterError('elevenlabs', '429 quota exceeded')
        self.calls.append((text, voice))
        return SpeechResult(audio=b'ID3' + text.encode(), duration_seconds=round(len(text) * 0.1, 2))


class FakeVideoHost:
    def __init__(self):
        self.downloads = []

    async def create_direct_upload(self, name, max_duration_seconds):
        return DirectUpload(upload_url='https://upload.example/slot/abc123', video_id='abc123')

    async def resolve_download_url(self, video_id):
        return f"https://download.example/{video_id}.mp4"

    async def download(self, url):
        self.downloads.append(url)
        return b'stream-bytes'


class FakeRenderer:
    def __init__(self):
        self.calls = []
        self.error = None

    async def render(self, kind, payload, options=None):
        self.calls.append((kind, payload, options))
        if self.error:
            raise self.error
        if kind in ('pdf', 'screenshot'):
            return {'content_type': 'application/pdf', 'encoding': 'base64', 'data': 'JVBERi0=', 'size': 5}
        return {'content': '# Rendered'}


# ---- fixtures ----

@pytest.fixture(scope='session')
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def settings(tmp_path):
    return Settings(app_env='test', storage_dir=str(tmp_path / 'storage'), max_upload_size_mb=1,
                    tts_chunk_size=40, default_voice='alloy')


@pytest.fixture
def adapters():
    return Adapters(
        content_store=FakeContentStore(),
        transcriber=FakeTranscriber(),
        scorer=FakeScorer(),
        speech=FakeSpeech(),
        video_host=FakeVideoHost(),
        renderer=FakeRenderer(),
    )


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def orchestrator(adapters, settings):
    return PipelineOrchestrator(adapters, settings)


@pytest.fixture
def app(adapters, settings, session_factory):
    application = create_app(adapters=adapters, settings=settings)

    async def _get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _get_db
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


@pytest.fixture
def make_video(db):
    """Insert a video with one transcript directly, bypassing the pipeline."""
    async def _make(title='Talk', text='Hello world.', status=TranscriptionStatus.completed,
                    rating=None, relevance=None, tags=None, with_transcript=True):
        video = Video(title=title, source_type='upload', file_path=f"{title}.mp4",
                      transcription_status=status.value, ai_rating_score=rating,
                      research_relevance_score=relevance, tags=tags or [])
        db.add(video)
        await db.flush()
        if with_transcript:
            db.add(Transcript(video_id=video.id, transcript_text=text, word_count=len(text.split()),
                              whisper_model='whisper-test'))
        await db.commit()
        return video
    return _make
