from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from api.routes import sessions as session_routes
from api.schemas import HealthResponse
from api.services.storage import JsonFileSessionStore, SessionStore


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    app = FastAPI(
        title="Repsense Session API",
        description="Create/list store for completed exercise sessions.",
        version="0.1.0",
    )
    app.state.session_store = store if store is not None else JsonFileSessionStore()
    app.include_router(session_routes.router)

    @app.get("/", include_in_schema=False)
    async def redirect_to_docs() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    return app


app = create_app()
