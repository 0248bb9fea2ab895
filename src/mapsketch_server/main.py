"""mapsketch file service — stores saved maps per account.

Main FastAPI application.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from mapsketch.config import Settings, settings as default_settings
from mapsketch_server.routers import files_router
from mapsketch_server.storage import FileStore

VERSION = "0.1.0"


def create_app(config: Optional[Settings] = None, storage_dir: Optional[Path] = None) -> FastAPI:
    """Build the application.

    Args:
        config: Settings to use; defaults to the environment-loaded settings.
        storage_dir: Overrides ``config.storage_dir`` (tests use a temp dir).
    """
    config = config or default_settings
    root = Path(storage_dir or config.storage_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{config.app_name} file service v{VERSION} storing in {root}")
        yield
        logger.info(f"{config.app_name} file service shutting down")

    app = FastAPI(
        title=config.app_name,
        description="Saved map storage",
        version=VERSION,
        lifespan=lifespan,
        debug=config.debug,
    )
    app.state.file_store = FileStore(root)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(files_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(
        "mapsketch_server.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )


if __name__ == "__main__":
    main()
