"""
Cohort Scaling — iterative cross-subject scaling rank service.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before the scaling settings are imported
load_dotenv()

from routes.reports import router as reports_router  # noqa: E402
from routes.scale import router as scale_router  # noqa: E402
from routes.upload import router as upload_router  # noqa: E402
from scaling.settings import DEFAULT_ITERATIONS, DEFAULT_SWING, LOG_LEVEL  # noqa: E402

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="Cohort Scaling API",
    description=(
        "Converts per-subject raw results into one comparable rank per student "
        "by iterative logistic re-scaling against polyrank."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(upload_router, prefix="/api/upload", tags=["Upload"])
app.include_router(scale_router, prefix="/api/scaling", tags=["Scaling"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "iterations": DEFAULT_ITERATIONS,
        "swing": DEFAULT_SWING,
    }
