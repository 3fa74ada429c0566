"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from scan_resolver.app_logging import configure_logging
from scan_resolver.containers import AppContainer
from scan_resolver.domain.errors import InvalidIdentifierError
from scan_resolver.domain.outcomes import ResolutionResult


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/products/{code}")
    async def get_product(code: str, request: Request) -> JSONResponse:
        """Resolve a scanned code, serving cached answers when present."""
        state_container: AppContainer = request.app.state.container
        try:
            result = await state_container.engine.resolve(code)
        except InvalidIdentifierError as exc:
            logger.info("Rejected code %r: %s", code, exc.reason)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "invalid_code", "reason": exc.reason},
            ) from exc
        return _result_response(result)

    @app.post("/products/{code}/refresh")
    async def refresh_product(code: str, request: Request) -> JSONResponse:
        """Re-resolve a code against the catalogs, overwriting the cache."""
        state_container: AppContainer = request.app.state.container
        try:
            result = await state_container.engine.refresh(code)
        except InvalidIdentifierError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "invalid_code", "reason": exc.reason},
            ) from exc
        return _result_response(result)

    return app


def _result_response(result: ResolutionResult) -> JSONResponse:
    status_code = status.HTTP_200_OK if result.found else status.HTTP_404_NOT_FOUND
    return JSONResponse(status_code=status_code, content=result.to_payload())
