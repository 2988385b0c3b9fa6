import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routes.media import router as media_router
from routes.sessions import router as sessions_router
from services import store
from services.errors import LoopcamError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    # Close every browser still open so no Chromium process outlives the API.
    for session_id in list(store.sessions):
        async with store.locked_bot(session_id) as bot:
            await bot.terminate()
        store.unregister(session_id)


app = FastAPI(title="Loopcam API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(sessions_router, prefix="/api")
app.include_router(media_router)


@app.exception_handler(LoopcamError)
async def loopcam_error_handler(request: Request, exc: LoopcamError) -> JSONResponse:
    logger.warning("[api] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    logger.info("[api] %s %s -> invalid_request: %s", request.method, request.url.path, problems)
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": problems, "code": "invalid_request"},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("[api] %s %s failed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "code": LoopcamError.code},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
