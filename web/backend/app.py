import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from planner.logger import get_logger
from web.backend.routers import planner

logger = get_logger("web")


def create_app() -> FastAPI:
    app = FastAPI(title="Proactive Planner API", version="1.0")

    raw_origins = os.getenv("PLANNER_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Proactive Planner"}

    app.include_router(planner.router, prefix="/api/v1/planner", tags=["planner"])

    @app.get("/")
    async def root():
        return {
            "message": "Proactive Planner API is running",
            "docs": "/docs",
            "health": "/health",
        }

    logger.info("Planner API created (origins: %s)", ", ".join(allow_origins))
    return app


app = create_app()
