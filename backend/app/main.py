from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import asyncio
import logging
import os

from app.api.sessions import router as sessions_router
from app.api.ws_session import router as session_ws_router
from app.interview.evaluator import HeuristicAnswerEvaluator, OpenAIAnswerEvaluator
from app.interview.gateway import InMemoryInterviewGateway
from app.services.deepgram_service import DeepgramRecognitionBackend
from app.session.runtime import InterviewRuntime
from app.system_metrics import get_metrics_snapshot
from core.config import QA_MODE, SESSION_CLEANUP_INTERVAL_SEC, SESSION_CLEANUP_TTL_SEC, SESSION_IDLE_TTL_SEC

app = FastAPI(title="Interview Practice Backend")
logger = logging.getLogger("app.main")


def _get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]


_allowed_origins = _get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


def build_runtime() -> InterviewRuntime:
    evaluator = HeuristicAnswerEvaluator() if QA_MODE else OpenAIAnswerEvaluator()
    return InterviewRuntime(
        gateway=InMemoryInterviewGateway(evaluator),
        backend_factory=DeepgramRecognitionBackend,
    )


app.state.runtime = build_runtime()
_session_cleanup_task: asyncio.Task | None = None


@app.on_event("startup")
async def startup_banner():
    global _session_cleanup_task
    if QA_MODE:
        logger.info("[SYSTEM] QA_MODE ENABLED - heuristic scoring, Deepgram bypass active")
    logger.info("[SYSTEM] CORS allow_origins=%s", _allowed_origins)

    async def _session_cleanup_loop():
        while True:
            await asyncio.sleep(SESSION_CLEANUP_INTERVAL_SEC)
            removed = await app.state.runtime.cleanup(SESSION_CLEANUP_TTL_SEC, SESSION_IDLE_TTL_SEC)
            if removed > 0:
                logger.info("[SYSTEM] cleaned inactive sessions=%s", removed)

    _session_cleanup_task = asyncio.create_task(_session_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_handler():
    global _session_cleanup_task
    if _session_cleanup_task is not None:
        _session_cleanup_task.cancel()
        try:
            await _session_cleanup_task
        except asyncio.CancelledError:
            pass
        finally:
            _session_cleanup_task = None
    logger.info("[SYSTEM] shutdown complete")


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "backend"}


@app.get("/metrics")
def system_metrics_route():
    return get_metrics_snapshot(extra={
        "qa_mode": QA_MODE,
    })


app.include_router(sessions_router)
app.include_router(session_ws_router)
