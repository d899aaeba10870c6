"""
Main FastAPI application for the Workmate chat assistant

This module creates and configures the FastAPI application with:
- CORS middleware for frontend integration
- API routes (chat streaming, conversations, apps, models)
- Health check endpoint
- Auto-generated API documentation
"""

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from src.api.dependencies import AppServices
from src.api.routes import apps, chat, conversations, models
from src.api.schemas.system import HealthResponse
from src.config.settings import settings
from src.llm.client import uses_ollama, validate_ollama_model
from src.utils.logger import setup_logger

API_VERSION = "1.0.0"
SERVICE_NAME = "workmate-chat-api"


def create_app(services_factory: Optional[Callable[[], Awaitable[AppServices]]] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services_factory: Coroutine factory for the long-lived services
            (defaults to AppServices.create with settings). It runs inside
            the lifespan so the database connection lives on the serving loop.
    """
    factory = services_factory or AppServices.create

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan events

        - Startup: configure logging, check the Ollama model (LLM_PROVIDER=ollama),
          open the database, build the action registry
        - Shutdown: close the database connection
        """
        setup_logger()
        logger.info("🚀 FastAPI application starting...")
        logger.info("📚 API docs available at http://localhost:8000/docs")
        logger.info("🔄 Streaming endpoint at http://localhost:8000/api/chat")

        if uses_ollama():
            await validate_ollama_model()

        app.state.services = await factory()
        logger.info(f"✅ Services ready ({len(app.state.services.registry)} actions registered)")

        yield

        logger.info("🛑 FastAPI application shutting down...")
        try:
            await app.state.services.close()
            logger.info("✅ Conversation database closed")
        except Exception as e:
            logger.warning(f"Error closing conversation database: {e}")

    app = FastAPI(
        title=f"{settings.system_name} Chat API",
        description="""
    Streaming chat API for an assistant that can act on Gmail, Google Calendar,
    Google Meet and Google Docs.

    ## Features

    * **Real-time streaming** plain-text responses
    * **Intent classification** with an explicit confirmation step before any action
    * **Multi-agent handoff** narration while actions run
    * **Friendly error messages** for provider and service failures

    ## Example

    ```bash
    curl -N -X POST http://localhost:8000/api/chat \\
         -H "Content-Type: application/json" \\
         -H "X-User-Id: u1" -H "X-User-Email: me@example.com" \\
         -H "X-Model-Api-Key: $GEMINI_API_KEY" \\
         -d '{"messages": [{"role": "user", "content": "What is on my calendar tomorrow?"}], "threadId": "t1"}'
    ```
    """,
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies are a 400 in this API, not FastAPI's default 422
        logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    app.include_router(chat.router)
    app.include_router(conversations.router)
    app.include_router(apps.router)
    app.include_router(models.router)

    @app.get("/", tags=["root"])
    async def root():
        """
        Root endpoint - API information
        """
        return {
            "service": f"{settings.system_name} Chat API",
            "version": API_VERSION,
            "status": "running",
            "docs": "/docs",
            "endpoints": {
                "health": "/health",
                "chat": "/api/chat",
                "conversations": "/api/conversations",
                "apps": "/api/apps",
                "models": "/api/models",
            },
        }

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """
        Health check endpoint

        Use this endpoint to verify the service is running.
        """
        return HealthResponse(status="healthy", service=SERVICE_NAME, version=API_VERSION)

    return app


app = create_app()
