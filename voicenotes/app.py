from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers.calendar import router as calendar_router
from .routers.extraction_config import router as extraction_config_router
from .routers.process import router as process_router
from .routers.sessions import router as sessions_router
from .routers.transcribe import router as transcribe_router
from .config import Settings, load_settings
from .logging import setup_logging, install_app_logging
from .errors import install_error_handlers
from .services.session import Services
from .state import build_state


def _load_env_file(env_path: Path) -> None:
    """Minimal .env loader: KEY=VALUE lines into os.environ if not set.
    - Ignores comments and blank lines
    - Strips surrounding quotes
    - Supports optional 'export ' prefix
    """
    if not env_path.exists():
        return
    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        key = k.strip()
        val = v.strip().strip('"').strip("'")
        os.environ.setdefault(key, val)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    if settings is None:
        repo_root = Path(__file__).resolve().parent.parent
        for name in (".env", ".env.local"):
            try:
                _load_env_file(repo_root / name)
            except OSError as e:
                logging.getLogger("app").warning(f"could not read {name}: {e}")
        settings = load_settings()
    setup_logging()

    app = FastAPI(title="Voice Notes Worker", version="1.0.0")

    # Attach config/state
    app.state.settings = settings
    app.state.state = build_state(settings, services=services)
    logging.getLogger("app").info(
        f"worker ready: extraction={app.state.state.services.extractor.provider or 'fallback'} "
        f"transcription={app.state.state.services.transcriber.provider} "
        f"storage={app.state.state.services.store.backend()}"
    )

    # CORS
    allow = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_app_logging(app)
    install_error_handlers(app)

    # Versioned API
    app.include_router(process_router, prefix="/v1")
    app.include_router(sessions_router, prefix="/v1")
    app.include_router(transcribe_router, prefix="/v1")
    app.include_router(calendar_router, prefix="/v1")
    app.include_router(extraction_config_router, prefix="/v1")

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return {"status": "ok"}
    return app


# Convenience for `uvicorn voicenotes.app:app`
app = create_app()
