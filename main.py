import logging
import os
import sqlite3
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

import capacity_service
from db import connect_db
from db_migrations import apply_migrations
from errors import StoreUnavailable
from param_router import router as param_router

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
SEED_CAPACITY_PRESETS = os.environ.get("SEED_CAPACITY_PRESETS", "1").strip().lower() in ("1", "true", "yes")
CORS_ALLOW_ORIGINS = [o.strip() for o in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Climate equity parameter service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.include_router(param_router)


@app.on_event("startup")
def _startup():
    conn = connect_db()
    try:
        applied = apply_migrations(conn)
        if applied:
            logger.info("Schema migrated: %s", ", ".join(applied))
        if SEED_CAPACITY_PRESETS:
            created = capacity_service.seed_builtin_presets(conn)
            if created:
                logger.info("Seeded %d capacity presets", len(created))
        conn.commit()
    finally:
        conn.close()


@app.get("/api/health")
def api_health() -> Dict[str, Any]:
    try:
        conn = connect_db()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except (StoreUnavailable, sqlite3.Error) as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return {
        "ok": True,
        "service": "param-cache",
    }
