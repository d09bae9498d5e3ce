import hashlib
import importlib
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from uuid import uuid4

import anyio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.responses import JSONResponse

from . import __version__
from .config import Settings, load_settings
from .errors import ConfigError, OTASignError
from .publisher import base_origin
from .signer import Signer, ZsignSigner
from .sweeper import RetentionSweeper

logger = logging.getLogger("otasign.api")

ENGINES_DIR = Path(__file__).resolve().parent / "engines"
GENERIC_ERROR = "An error occurred while processing your request."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


async def _base_origin(request: Request) -> str:
    """Dependency: scheme://host of the current request (400 without Host)."""
    return base_origin(request.headers)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Start the retention sweep and the signer thread limiter; tear both down on shutdown."""
    ctx = app.state.otasign_context
    ctx["sign_limiter"] = anyio.CapacityLimiter(ctx["settings"].sign_workers)
    sweeper: RetentionSweeper = ctx["sweeper"]
    sweeper.start()
    logger.info("Retention sweep every %.0fs on %s", sweeper.interval, sweeper.directory)
    try:
        yield
    finally:
        await sweeper.stop()
        ctx.pop("sign_limiter", None)


def _register_context(app: FastAPI, settings: Settings, signer: Signer):
    app.state.otasign_context = {
        "settings": settings,
        "signer": signer,
        "base_origin": _base_origin,
        "sweeper": RetentionSweeper(settings.public_path, settings.sweep_interval),
    }


def _load_engines(app: FastAPI):
    """Import every *_engine.py and let it register its routes."""
    registry = {}
    for file in sorted(ENGINES_DIR.glob("*_engine.py")):
        module = importlib.import_module(f"{__package__}.engines.{file.stem}")
        register = getattr(module, "register", None)
        if not callable(register):
            logger.warning("Engine %s has no register(app), skipped", file.name)
            continue
        register(app)
        registry[file.name] = {"sha256": hashlib.sha256(file.read_bytes()).hexdigest(), "loaded_at": time.time()}
    app.state.engine_registry = registry


def _register_error_handlers(app: FastAPI):
    @app.exception_handler(OTASignError)
    async def _otasign_error(request: Request, exc: OTASignError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def create_app(settings: Settings, signer: Optional[Signer] = None) -> FastAPI:
    """Build the service. ``signer`` defaults to zsign at settings.signer_path."""
    if signer is None:
        signer = ZsignSigner(settings.signer_path, timeout=settings.sign_timeout)

    settings.work_path.mkdir(parents=True, exist_ok=True)
    settings.public_path.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="OTASign", version=__version__, lifespan=_lifespan)
    _register_context(app, settings, signer)
    _register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def hardening_headers(request: Request, call_next):
        # last stop for unexpected errors: generic 500 body, headers still applied
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error in %s %s", request.method, request.url.path)
            response = JSONResponse(status_code=500, content={"message": GENERIC_ERROR})
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers["X-Request-ID"] = request.headers.get("X-Request-ID", uuid4().hex)
        return response

    @app.get("/health")
    async def health():
        return {"ok": True}

    _load_engines(app)
    app.mount("/public", StaticFiles(directory=settings.public_path), name="public")
    return app


def run():
    """Console entry point: load settings from the environment and serve."""
    import uvicorn

    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.critical("%s", exc)
        raise SystemExit(1)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger.info("OTASign %s listening on %s:%d (%d authorized devices)",
                __version__, settings.host, settings.port, len(settings.valid_udids))
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
