from contextlib import asynccontextmanager
from time import perf_counter

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from transcription_pipeline.adapters.registry import Adapters, build_adapters
from transcription_pipeline.api.pipeline import router as pipeline_router
from transcription_pipeline.core.config import Settings, get_settings
from transcription_pipeline.core.errors import PipelineError
from transcription_pipeline.core.logging_config import configure_logging
from transcription_pipeline.db.database import init_db
from transcription_pipeline.services.orchestrator import SERVICE_NAME, PipelineOrchestrator

logger = structlog.get_logger(__name__)

ENDPOINTS = [
    'POST /upload', 'POST /initiate-upload', 'POST /transcribe', 'POST /analyze', 'POST /tts',
    'POST /render', 'GET /search', 'GET /status', 'GET /videos/{id}', 'GET /categories',
    'POST /videos/{id}/categories',
]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message})


def create_app(adapters: Adapters | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        await init_db()
        if getattr(app.state, 'orchestrator', None) is None:
            app.state.orchestrator = PipelineOrchestrator(build_adapters(settings), settings)
        logger.info('app.started', env=settings.app_env, version=settings.app_version)
        yield
        logger.info('app.stopped')

    app = FastAPI(title=SERVICE_NAME, version=settings.app_version, lifespan=lifespan)
    app.state.orchestrator = PipelineOrchestrator(adapters, settings) if adapters else None

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        start = perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception('request.failed', method=request.method, path=request.url.path)
            response = _error(500, str(e) or e.__class__.__name__)
        logger.info('request', method=request.method, path=request.url.path,
                    status=response.status_code, ms=int((perf_counter() - start) * 1000))
        return response

    # added last so it wraps error responses too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PipelineError)
    async def _pipeline_error(request: Request, exc: PipelineError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        err = exc.errors()[0] if exc.errors() else {}
        loc = '.'.join(str(p) for p in err.get('loc', ()) if p != 'body')
        msg = err.get('msg', 'Invalid request')
        return _error(400, f"{loc}: {msg}" if loc else msg)

    app.include_router(pipeline_router)

    @app.get("/")
    def root():
        return {'service': SERVICE_NAME, 'version': settings.app_version, 'endpoints': ENDPOINTS}

    return app


app = create_app()
