"""
FastAPI application for the Graph-of-Thoughts research pipeline.

Provides endpoints for:
- Opening research sessions with model provider credentials
- Executing stages 1-9 against a session
- Retrieving the graph document, stage results and research context

Sessions live in memory; each one owns its own engine and scheduler.
"""

import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from got_pipeline import __version__
from got_pipeline.api.registry import SessionRegistry
from got_pipeline.api.routes import sessions
from got_pipeline.config.settings import Settings
from got_pipeline.llm.chains import ModelCallService


def create_app(
    model_service_factory: Optional[Callable[[], ModelCallService]] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the API.

    Args:
        model_service_factory: Builds the model service shared by all
            sessions. Defaults to the LangChain/Ollama service.
        settings: Pipeline settings. Defaults to `get_settings()`.
    """
    registry = SessionRegistry(model_service_factory, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        registry.close_all()

    app = FastAPI(
        title="Graph-of-Thoughts Research API",
        description="Staged hypothesis generation, evidence integration and synthesis over a research graph",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # API routes - mounted under /api prefix
    # =========================================================================

    app.include_router(sessions.router, prefix="/api", tags=["Sessions"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()


# =============================================================================
# Run with: python -m got_pipeline.api.main
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8100))
    uvicorn.run(
        "got_pipeline.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )
