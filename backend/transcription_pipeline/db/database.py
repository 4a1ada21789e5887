import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from transcription_pipeline.core.config import get_settings

logger = structlog.get_logger(__name__)

settings = get_settings()
engine = create_async_engine(settings.database_url, echo=False, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
Base = declarative_base()

DEFAULT_CATEGORIES = [
    ('Quantum Physics', 'Quantum mechanics, measurement problem, entanglement',
     ['quantum', 'entanglement', 'superposition', 'measurement', 'wave function', 'decoherence']),
    ('Consciousness Studies', 'Studies of consciousness, awareness, and subjective experience',
     ['consciousness', 'awareness', 'subjective', 'experience', 'qualia', 'mind']),
    ('Spirituality', 'Spiritual concepts, religious experiences, mysticism',
     ['spiritual', 'mystical', 'religious', 'transcendent', 'divine', 'sacred']),
    ('Prophecy & Prediction', 'Prophetic literature, predictions, future events',
     ['prophecy', 'prediction', 'future', 'vision', 'revelation', 'forecast']),
    ('Interdisciplinary Science', 'Cross-disciplinary research, novel scientific approaches',
     ['interdisciplinary', 'cross-disciplinary', 'novel', 'innovative', 'paradigm']),
    ('Theoretical Physics', 'Advanced theoretical concepts, mathematical physics',
     ['theoretical', 'mathematical', 'relativity', 'field theory', 'cosmology']),
    ('Information Theory', 'Information, computation, digital physics concepts',
     ['information', 'computation', 'digital', 'bit', 'algorithm', 'complexity']),
    ('Philosophy of Science', 'Philosophy of science, epistemology, methodology',
     ['philosophy', 'epistemology', 'methodology', 'paradigm', 'scientific method', 'knowledge']),
    ('Quantum Consciousness', 'Intersection of quantum physics and consciousness',
     ['quantum consciousness', 'orchestrated', 'penrose', 'hameroff', 'microtubules', 'quantum mind']),
    ('Sacred Geometry', 'Mathematical patterns in nature and spirituality',
     ['sacred geometry', 'fibonacci', 'golden ratio', 'mandala', 'fractal', 'pattern']),
    ('Energy Healing', 'Biofield, energy medicine, healing modalities',
     ['energy healing', 'biofield', 'chakras', 'meridians', 'reiki', 'acupuncture']),
    ('Timeline Studies', 'Temporal mechanics, time travel, causality',
     ['time', 'temporal', 'causality', 'timeline', 'chronology', 'future']),
    ('Biblical Science', 'Scientific analysis of biblical texts and concepts',
     ['biblical', 'scripture', 'genesis', 'creation', 'divine', 'theological']),
]

FTS_DDL = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS transcripts_fts USING fts5("
    "transcript_text, content='transcripts', content_rowid='id')",
    "CREATE TRIGGER IF NOT EXISTS transcripts_fts_insert AFTER INSERT ON transcripts BEGIN "
    "INSERT INTO transcripts_fts(rowid, transcript_text) VALUES (new.id, new.transcript_text); END",
)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None):
    """Create tables, the transcript full-text index (SQLite only) and seed categories."""
    from transcription_pipeline.models import pipeline  # noqa: F401  registers tables

    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if bind.dialect.name == 'sqlite':
        try:
            async with bind.begin() as conn:
                for ddl in FTS_DDL:
                    await conn.execute(text(ddl))
        except OperationalError as e:
            logger.warning('fts.unavailable', error=str(e))
    factory = async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)
    async with factory() as session:
        await seed_categories(session)


async def seed_categories(session: AsyncSession) -> int:
    """Insert any default category that is not present yet. Returns how many were added."""
    from transcription_pipeline.models.pipeline import ResearchCategory

    existing = set((await session.execute(select(ResearchCategory.name))).scalars().all())
    added = 0
    for name, description, keywords in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        session.add(ResearchCategory(name=name, description=description, relevance_keywords=keywords))
        added += 1
    if added:
        await session.commit()
        logger.info('categories.seeded', count=added)
    return added
