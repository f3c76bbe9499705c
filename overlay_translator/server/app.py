"""FastAPI application exposing processing sessions over HTTP.

WHY: Overlay front ends (a browser player, a streaming box, test
harnesses) need to push recognition output, let it be segmented and
translated in the background, and ask "what is on screen at time T?"
while that work is still running. FastAPI provides request validation,
automatic OpenAPI documentation, and background task support.

HOW: POST /sessions validates the chunks, registers a Session and starts
the SessionPipeline in the background. The session's TimelineStore is
queried directly by GET /sessions/{id}/units, so queries see units and
translations as soon as they are stored. Cancellation sets the session's
shared flag; the running pipeline and dispatcher observe it.

RULES:
- All endpoints have OpenAPI descriptions and a consistent ErrorResponse schema
- Background processing uses FastAPI BackgroundTasks
- The session store is a module-level singleton
- Too many sessions → 429; unknown session or format → 404
- Expired sessions are removed by a periodic cleanup task in the lifespan
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.responses import Response

from overlay_translator import __version__
from overlay_translator.config import (
    MAX_PHRASE_DURATION_S,
    TRANSLATION_BACKEND,
    load_translation_base_url,
)
from overlay_translator.core.ir import DisplayUnit, RawFragment
from overlay_translator.formatters import FORMATTERS
from overlay_translator.pipeline import SessionPipeline
from overlay_translator.recognition.source import RecognitionChunk, StaticRecognitionSource
from overlay_translator.server.models import (
    ChunkModel,
    ErrorResponse,
    FormatInfo,
    HealthResponse,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionResponse,
    UnitListResponse,
    UnitModel,
)
from overlay_translator.server.sessions import Session, SessionStatus, SessionStore
from overlay_translator.translation.backend import build_backend
from overlay_translator.translation.dispatcher import TranslationDispatcher

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()


async def _periodic_cleanup() -> None:
    """Run session cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        session_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Overlay Translator API",
    description=(
        "REST API for turning timed recognition output (speech words or "
        "on-screen text detections) into translated, time-indexed overlay "
        "units. Submit chunks, query the timeline by playback time, and "
        "export the result."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _session_to_response(session: Session) -> SessionResponse:
    """Convert an internal Session dataclass to a SessionResponse model."""
    units = session.store.units()
    return SessionResponse(
        id=session.id,
        status=session.status.value,
        created_at=session.created_at,
        config=session.config,
        progress=session.progress,
        chunks_processed=session.chunks_processed,
        unit_count=len(units),
        translated_count=sum(1 for u in units if u.is_translated),
        translation_failures=session.translation_failures,
        error=session.error,
    )


def _unit_to_model(unit: DisplayUnit) -> UnitModel:
    return UnitModel.model_validate(unit.to_dict())


def _get_session_or_404(session_id: str) -> Session:
    session = session_store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return session


def _to_recognition_chunks(chunks: List[ChunkModel]) -> List[RecognitionChunk]:
    """Convert request chunks into RecognitionChunks ordered as submitted."""
    result: List[RecognitionChunk] = []
    for index, chunk in enumerate(chunks):
        fragments = [RawFragment.from_dict(f.model_dump()) for f in chunk.fragments]
        start = chunk.window_start
        if start is None:
            start = fragments[0].start_offset if fragments else 0.0
        end = chunk.window_end
        if end is None:
            end = max((f.end_offset for f in fragments), default=start)
        result.append(RecognitionChunk(
            index=index,
            window_start=start,
            window_end=end,
            fragments=fragments,
            total=len(chunks),
        ))
    return result


async def _run_session_pipeline(
    session_id: str,
    store: SessionStore,
    chunks: List[RecognitionChunk],
) -> None:
    """Run the processing pipeline for one session.

    WHY: This is the background task behind POST /sessions: segment every
    chunk, store the units, translate them, and record the outcome.

    HOW: Builds the configured translation backend and a dispatcher that
    shares the session's cancel flag, runs SessionPipeline over a static
    source, and maps the summary onto the session status.

    RULES:
    - Catches all exceptions and marks the session as failed
    - A cancelled run ends in status 'cancelled', keeping stored units
    - A cancel that lands before or after the last chunk still counts,
      including sessions with no chunks at all
    - Progress and chunk counters are updated after every chunk
    """
    session = store.get_session(session_id)
    if session is None:
        return

    config = session.config
    store.update_session(session_id, status=SessionStatus.RUNNING)

    def _on_progress(fraction: float) -> None:
        store.update_session(session_id, progress=fraction)

    try:
        async with build_backend(config.get("backend")) as backend:
            dispatcher = TranslationDispatcher(
                backend,
                session.store,
                target_language=config["target_language"],
            )
            pipeline = SessionPipeline(
                StaticRecognitionSource(chunks),
                session.store,
                dispatcher=dispatcher,
                mode=config["mode"],
                max_phrase_duration=config["max_phrase_duration"],
                cancel_flag=session.cancel_flag,
                on_progress=_on_progress,
            )
            summary = await pipeline.run()

        cancelled = summary.cancelled or session.cancel_flag.is_cancelled
        store.update_session(
            session_id,
            status=SessionStatus.CANCELLED if cancelled else SessionStatus.COMPLETED,
            chunks_processed=summary.chunks_processed,
            translation_failures=summary.translation_failures,
        )
    except Exception as exc:
        logger.exception("Session pipeline failed for session %s", session_id)
        store.update_session(session_id, status=SessionStatus.FAILED, error=str(exc))


def _run_session_sync(
    session_id: str,
    store: SessionStore,
    chunks: List[RecognitionChunk],
) -> None:
    """Synchronous wrapper for the async session pipeline.

    WHY: FastAPI BackgroundTasks run synchronous callables in a worker
    thread. This wraps the async pipeline with asyncio.run().
    """
    asyncio.run(_run_session_pipeline(session_id, store, chunks))


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.post(
    "/sessions",
    response_model=SessionCreatedResponse,
    status_code=201,
    tags=["sessions"],
    summary="Start a processing session",
    description=(
        "Submit recognition chunks with the session configuration. Returns "
        "a session ID immediately; segmentation and translation run in the "
        "background. Query GET /sessions/{id}/units while it runs."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid configuration"},
        429: {"model": ErrorResponse, "description": "Too many sessions"},
    },
)
async def create_session(
    request: SessionCreateRequest,
    background_tasks: BackgroundTasks,
) -> SessionCreatedResponse:
    backend_name = request.backend.value if request.backend else TRANSLATION_BACKEND
    if backend_name == "http":
        try:
            load_translation_base_url()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    config = {
        "mode": request.mode.value,
        "target_language": request.target_language,
        "max_phrase_duration": request.max_phrase_duration or MAX_PHRASE_DURATION_S,
        "backend": backend_name,
        "chunk_count": len(request.chunks),
    }

    try:
        session = session_store.create_session(config=config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    chunks = _to_recognition_chunks(request.chunks)
    background_tasks.add_task(_run_session_sync, session.id, session_store, chunks)

    return SessionCreatedResponse(id=session.id, status=session.status.value)


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Get session status",
    description="Returns the session's status, counters and configuration.",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(session_id: str) -> SessionResponse:
    return _session_to_response(_get_session_or_404(session_id))


@app.get(
    "/sessions/{session_id}/units",
    response_model=UnitListResponse,
    tags=["sessions"],
    summary="Query display units",
    description=(
        "With `time`, returns the units to display at that playback time "
        "(exact match within 1 ms, otherwise the nearest timestamp, ties to "
        "the earlier one). Without `time`, returns every stored unit."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session_units(
    session_id: str,
    time: Optional[float] = Query(
        default=None,
        description="Playback time in seconds.",
    ),
) -> UnitListResponse:
    session = _get_session_or_404(session_id)
    units = session.store.units() if time is None else session.store.query(time)
    return UnitListResponse(
        session_id=session.id,
        time=time,
        units=[_unit_to_model(u) for u in units],
    )


@app.post(
    "/sessions/{session_id}/cancel",
    response_model=SessionResponse,
    status_code=202,
    tags=["sessions"],
    summary="Cancel a running session",
    description=(
        "Requests cooperative cancellation. The pipeline stops before the "
        "next chunk or translation request; stored units are kept."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def cancel_session(session_id: str) -> SessionResponse:
    session = _get_session_or_404(session_id)
    session_store.cancel_session(session_id)
    return _session_to_response(session)


@app.delete(
    "/sessions/{session_id}",
    status_code=204,
    tags=["sessions"],
    summary="Delete a session",
    description="Cancels the session if it is running and discards its timeline.",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def delete_session(session_id: str) -> Response:
    deleted = session_store.delete_session(session_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return Response(status_code=204)


@app.get(
    "/sessions/{session_id}/export/{format_key}",
    tags=["sessions"],
    summary="Export the session timeline",
    description="Runs the named formatter over the units stored so far.",
    responses={
        404: {"model": ErrorResponse, "description": "Session or format not found"},
    },
)
async def export_session(session_id: str, format_key: str) -> Response:
    session = _get_session_or_404(session_id)
    if format_key not in FORMATTERS:
        available = ", ".join(sorted(FORMATTERS.keys()))
        raise HTTPException(
            status_code=404,
            detail="Unknown format '{}'. Available: {}".format(format_key, available),
        )

    formatter = FORMATTERS[format_key]()
    output = formatter.format(session.store.units(), session.config.get("target_language", ""))[0]
    filename = "{}{}".format(session.id, output.suffix)

    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


# ---------------------------------------------------------------------------
# Endpoints: Formats
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available export formats",
    description="Returns all export formats with their identifiers, names and file suffixes.",
)
async def list_formats() -> List[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        outputs = formatter.format([])
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=outputs[0].suffix if outputs else "",
        ))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, sessions=len(session_store))


def run_api():
    """Entry point for the overlay-translator-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
