from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..crypto import encrypt_secret
from ..db import get_db
from ..models import UserSecret
from ..settings import settings
from .auth import User, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/secrets", tags=["secrets"])

GEMINI_SECRET_NAME = "GEMINI_API_KEY"


class SecretRequest(BaseModel):
	value: str


def find_secret(db: Session, username: str, secret_name: str) -> Optional[UserSecret]:
	return (
		db.query(UserSecret)
		.filter(UserSecret.username == username, UserSecret.secret_name == secret_name)
		.first()
	)


@router.get("")
def list_secrets(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = db.query(UserSecret).filter(UserSecret.username == user.username).order_by(UserSecret.secret_name.asc()).all()
	return [{"secret_name": r.secret_name, "updated_at": r.updated_at.isoformat()} for r in rows]


@router.put("/gemini")
def store_gemini_key(req: SecretRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	value = req.value.strip()
	if not value:
		raise HTTPException(status_code=400, detail="API key must not be empty")
	if not settings.app_encryption_key:
		raise HTTPException(status_code=500, detail="Encryption key not configured")
	encrypted = encrypt_secret(value, settings.app_encryption_key)
	row = find_secret(db, user.username, GEMINI_SECRET_NAME)
	if row:
		row.encrypted_value = encrypted
	else:
		db.add(UserSecret(username=user.username, secret_name=GEMINI_SECRET_NAME, encrypted_value=encrypted))
	db.commit()
	logger.info("Stored Gemini key for %s", user.username)
	return {"ok": True}


@router.delete("/gemini", status_code=204)
def delete_gemini_key(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = find_secret(db, user.username, GEMINI_SECRET_NAME)
	if not row:
		raise HTTPException(status_code=404, detail="Secret not found")
	db.delete(row)
	db.commit()
