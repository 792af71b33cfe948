import logging
from typing import Optional

from fastapi import FastAPI

from npm_repository.api.common import route_prefix
from npm_repository.core.dependencies import close_npm_proxy, get_repository_config
from npm_repository.domain.models import RepositoryMode

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(mode: Optional[RepositoryMode] = None) -> FastAPI:
    """
    Build the application for the given mode; defaults to the mode in
    repository.json.
    """
    config = get_repository_config()
    if mode is None:
        mode = config.mode

    app = FastAPI(
        title=config.display_name,
        version="0.1.0",
        description="FastAPI-based npm registry that hosts packages or proxies an upstream registry.",
    )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """
        Release the upstream connection pool.
        """
        await close_npm_proxy()

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok", "mode": mode}

    # The npm routes are catch-alls and must be registered last.
    prefix = route_prefix(config)
    if mode == "proxy":
        from npm_repository.api.proxy import router as proxy_router

        app.include_router(proxy_router, prefix=prefix, tags=["proxy"])
    else:
        from npm_repository.api.npm import router as npm_router

        app.include_router(npm_router, prefix=prefix, tags=["npm"])
    logger.info(f"Serving npm registry in {mode} mode at {prefix or '/'}")

    return app


app = create_app()


if __name__ == "__main__":
    """
    Allow running `python -m npm_repository.main` to start the Uvicorn
    development server.
    """
    import uvicorn

    uvicorn.run(
        "npm_repository.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
