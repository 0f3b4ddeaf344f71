"""
Boletim — Academic Evaluation Engine
FastAPI backend entry point.
"""

import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before anything reads it
load_dotenv()

from evaluation.settings import Settings  # noqa: E402
from routes.grades import router as grades_router  # noqa: E402
from routes.gradebook import router as gradebook_router  # noqa: E402
from routes.transfers import router as transfers_router  # noqa: E402

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s%(message)s",
)

app = FastAPI(
    title="Boletim API",
    description=(
        "Academic evaluation engine — period grades, recovery, final grades "
        "and pass/fail status from one calculation path."
    ),
    version="1.0.0",
)

# CORS for the gradebook frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(grades_router, prefix="/api/grades", tags=["Grades"])
app.include_router(gradebook_router, prefix="/api/gradebook", tags=["Gradebook"])
app.include_router(transfers_router, prefix="/api/transfers", tags=["Transfers"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": settings.school_name,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": settings.school_name,
        "default_recovery_strategy": settings.default_recovery_strategy,
    }
