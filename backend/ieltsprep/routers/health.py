from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.orm import Session
from fastapi import Depends

from ..db import get_db
from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)):
	try:
		db.execute(text("SELECT 1"))
		database = "ok"
	except Exception as e:
		database = f"error: {e}"
	return {
		"status": "ok" if database == "ok" else "degraded",
		"database": database,
		"gemini_configured": bool(settings.gemini_api_key),
		"gateway_configured": bool(settings.lovable_api_key),
		"encryption_configured": bool(settings.app_encryption_key),
	}
