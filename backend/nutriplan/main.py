"""
FastAPI main application.
Entry point for the NutriPlan meal assistant API.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from nutriplan.core.config import get_settings
from nutriplan.core.exceptions import (
    AIUnavailableError,
    NotFoundError,
    ReplacementValidationError,
    UnparseableAIResponseError,
)
from nutriplan.core.llm_client import LLMClient
from nutriplan.db.session import init_db
from nutriplan.api import routes_chat, routes_meals
from nutriplan.core.logging import setup_logging
from nutriplan.services.chat.orchestrator import ConversationOrchestrator
from nutriplan.services.meal_replacement import ReplacementSuggestionEngine
from nutriplan.services.plan_mutation import PlanMutationService
from nutriplan.services.suggestion_cache import build_suggestion_cache

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and services on startup."""
    logger.info("Starting NutriPlan API...")
    settings = get_settings()
    init_db()
    logger.info("Database initialized.")

    llm_client = LLMClient(settings)
    cache = build_suggestion_cache(settings)
    engine = ReplacementSuggestionEngine(llm_client, cache)
    mutations = PlanMutationService()

    app.state.engine = engine
    app.state.mutations = mutations
    app.state.orchestrator = ConversationOrchestrator(engine, mutations, llm_client, settings)
    logger.info(f"LLM models: {', '.join(settings.llm_models)}; redis cache: {'on' if settings.redis_url else 'off'}")
    yield
    logger.info("Shutting down NutriPlan API...")
    await cache.close()


# Create FastAPI app
app = FastAPI(
    title="NutriPlan API",
    description="AI meal assistant for replacing and adjusting meals in weekly nutrition plans",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(routes_chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(routes_meals.router, prefix="/api/meals", tags=["meals"])


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "NutriPlan API is running",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    settings = get_settings()
    return {
        "status": "healthy",
        "database": settings.database_url,
        "llm_provider": settings.llm_provider,
        "suggestion_cache": "redis" if settings.redis_url else "memory"
    }


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info(f"Not found on {request.url.path}: {exc}")
    return JSONResponse(status_code=404, content={"detail": exc.user_message})


@app.exception_handler(ReplacementValidationError)
async def validation_handler(request: Request, exc: ReplacementValidationError):
    logger.info(f"Invalid replacement on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=422,
        content={"detail": exc.user_message, "fields": exc.fields},
    )


@app.exception_handler(AIUnavailableError)
async def ai_unavailable_handler(request: Request, exc: AIUnavailableError):
    logger.error(f"AI unavailable on {request.url.path}: {exc} (last error: {exc.last_error!r})")
    return JSONResponse(status_code=503, content={"detail": exc.user_message})


@app.exception_handler(UnparseableAIResponseError)
async def unparseable_handler(request: Request, exc: UnparseableAIResponseError):
    logger.error(f"Unparseable AI response on {request.url.path}: {exc}; raw: {exc.raw_prefix[:200]!r}")
    return JSONResponse(status_code=503, content={"detail": exc.user_message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "nutriplan.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
