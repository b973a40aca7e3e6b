"""FastAPI application setup for paperchat."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paperchat.api.dependencies import (
    get_app_settings,
    get_chat_service,
    get_context_assembler,
    get_llm_client,
    get_registry,
)
from paperchat.api.routes_admin import router as admin_router
from paperchat.api.routes_chat import router as chat_router
from paperchat.api.routes_documents import router as documents_router
from paperchat.core.config import Settings, get_settings
from paperchat.core.logging import configure_logging

configure_logging()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the API; browser origins come from ``api.cors_origins`` in the config."""
    settings = settings or get_settings()
    application = FastAPI(
        title="Paperchat",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
        )

    application.include_router(documents_router, prefix="", tags=["documents"])
    application.include_router(chat_router, prefix="", tags=["chat"])
    application.include_router(admin_router, prefix="", tags=["admin"])

    @application.on_event("startup")
    async def startup() -> None:
        """Warm up core singletons on startup."""
        get_app_settings()
        get_registry()
        get_llm_client()
        get_context_assembler()
        get_chat_service()

    @application.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return application


app = create_app()
