from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from notesync import __version__
from notesync.core.config import load_config
from notesync.web.api import router as api_router, start_engine, stop_engine


def build_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_api: FastAPI):
        await start_engine()
        try:
            yield
        finally:
            await stop_engine()

    api = FastAPI(title="notesync", version=__version__, lifespan=lifespan)
    api.include_router(api_router)
    return api


def main():
    import uvicorn

    cfg = load_config()

    from notesync.core.logging_setup import setup_logging

    setup_logging(cfg.logging.level, cfg.logging.file)

    uvicorn.run(
        build_app(),
        host=cfg.web_bind_host,
        port=cfg.web_port,
        log_level=cfg.logging.level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
