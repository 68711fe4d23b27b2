import argparse
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from streamchat import __version__
from streamchat.config import CORS_ORIGINS, GEMINI_MODEL, require_api_key
from streamchat.routers import chat, log_error

# ── Logging setup ─────────────────────────────────────────────────────────────
# Always log to stdout. On Cloud Run (K_SERVICE is set), also route to Cloud Logging.

class _ExtraFormatter(logging.Formatter):
    """Formatter that appends extra={} fields to the log line for local visibility."""
    _BASE_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)

    def format(self, record):
        msg = super().format(record)
        extras = {k: v for k, v in record.__dict__.items()
                  if k not in self._BASE_ATTRS and k not in ("message", "asctime")}
        if extras:
            msg += f" | {extras}"
        return msg

_handler = logging.StreamHandler()
_handler.setFormatter(_ExtraFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
logging.root.setLevel(logging.INFO)
logging.root.addHandler(_handler)

if os.environ.get("K_SERVICE"):
    try:
        import google.cloud.logging
        cloud_logging_client = google.cloud.logging.Client()
        cloud_logging_client.setup_logging()
    except Exception as e:
        logging.warning("cloud_logging_setup_failed: %s", e)

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Fail at startup, not on the first chat request
    require_api_key()
    logger.info("streamchat_api_started", extra={"model": GEMINI_MODEL, "cors_origins": CORS_ORIGINS})
    yield


# ── App ────────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="streamchat API",
    description="Streaming chat endpoint backed by Gemini, with a squareRoot tool.",
    version=__version__,
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────────────────────────
app.include_router(chat.router,      prefix="/api/chat",      tags=["chat"])
app.include_router(log_error.router, prefix="/api/log-error", tags=["logging"])

# ── Exception handlers ─────────────────────────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]
    logger.info("request_rejected", extra={"path": request.url.path, "problems": problems})
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": problems},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error": str(exc),
            "type": type(exc).__name__,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred. It has been logged."},
    )

# ── Pages ──────────────────────────────────────────────────────────────────────
@app.get("/", include_in_schema=False)
def index():
    return FileResponse(str(STATIC_DIR / "index.html"))


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


def run():
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    parser = argparse.ArgumentParser(description="streamchat - streaming chat server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to run the server on (default: 8000)")
    args = parser.parse_args()

    logger.info("starting_server", extra={"host": args.host, "port": args.port})
    uvicorn.run(app, host=args.host, port=args.port)
