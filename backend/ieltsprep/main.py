from pathlib import Path
import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .db import Base, engine, SessionLocal, ensure_schema
from .cleanup import purge_stale_sessions
from .settings import settings
from .routers import health, auth, secrets
from .routers import reading, listening, speaking
from .routers import analyze, explain, transcribe, audio

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60

app = FastAPI(title="IELTS Prep API")

app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origins,
	allow_methods=["*"],
	allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(secrets.router)
app.include_router(reading.router)
app.include_router(reading.admin_router)
app.include_router(listening.router)
app.include_router(listening.admin_router)
app.include_router(speaking.router)
app.include_router(speaking.admin_router)
app.include_router(analyze.router)
app.include_router(explain.router)
app.include_router(transcribe.router)
app.include_router(audio.router)

# Uploaded listening audio is served back from here
STORAGE_DIR = Path(settings.storage_dir).resolve()
STORAGE_DIR.mkdir(parents=True, exist_ok=True)
app.mount(settings.storage_public_base, StaticFiles(directory=STORAGE_DIR), name="storage")


def _run_cleanup() -> None:
	db = SessionLocal()
	try:
		purge_stale_sessions(db)
	except Exception:
		logger.exception("Session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Startup already ran one pass; repeat daily
	while True:
		await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
		_run_cleanup()


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	# Lightweight dev migrations for databases created by older builds
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed")
	_run_cleanup()
	asyncio.create_task(_cleanup_watcher())
