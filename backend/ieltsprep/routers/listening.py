from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import catalog
from ..content import load_listening_tests, user_scores
from ..db import get_db
from ..models import ListeningQuestionGroup, ListeningSubmission, ListeningTest
from ..storage import AudioStorage, StorageError
from .auth import User, get_current_user, require_admin
from .reading import PublishRequest, SubmissionRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/listening", tags=["listening"])
admin_router = APIRouter(prefix="/admin/listening", tags=["admin"])


def get_storage() -> AudioStorage:
	return AudioStorage()


class ListeningGroupIn(BaseModel):
	part_number: int = Field(ge=1, le=4)
	question_type: str
	start_question: int = Field(ge=1)
	end_question: int = Field(ge=1)


class ListeningTestIn(BaseModel):
	title: str
	book_name: str
	test_number: int = Field(default=1, ge=1)
	time_limit: int = Field(default=30, ge=1)
	total_questions: int = Field(default=40, ge=1)
	transcript: Optional[str] = None
	is_published: bool = False
	question_groups: List[ListeningGroupIn] = Field(default_factory=list)


def _books(tests: List[Dict[str, Any]], selected: List[str], scores: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
	books = []
	for book_name, book_tests in catalog.group_by_book(tests).items():
		section = catalog.book_section(book_name, book_tests, "listening", selected, scores)
		if section is not None:
			books.append(section)
	return books


@router.get("/tests")
def list_tests(types: List[str] = Query(default=[]), db: Session = Depends(get_db)):
	tests = load_listening_tests(db)
	return {
		"question_types": catalog.available_question_types(tests),
		"books": _books(tests, types, {}),
	}


@router.get("/tests/progress")
def list_tests_with_progress(
	types: List[str] = Query(default=[]),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	tests = load_listening_tests(db)
	return {
		"question_types": catalog.available_question_types(tests),
		"books": _books(tests, types, user_scores(db, ListeningSubmission, user.username)),
	}


@router.get("/tests/{test_id}")
def get_test(test_id: str, db: Session = Depends(get_db)):
	tests = load_listening_tests(db, test_id=test_id)
	if not tests:
		raise HTTPException(status_code=404, detail="Test not found")
	test = tests[0]
	# Transcript doubles as the fallback text for the audio player
	test["transcript"] = db.get(ListeningTest, test_id).transcript
	return test


@router.post("/tests/{test_id}/submissions", status_code=201)
def submit(test_id: str, req: SubmissionRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = db.get(ListeningTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	if req.score > req.total_questions:
		raise HTTPException(status_code=400, detail="score cannot exceed total_questions")
	row = ListeningSubmission(
		username=user.username,
		test_id=test_id,
		score=req.score,
		total_questions=req.total_questions,
		band_score=req.band_score,
		answers_json=json.dumps(req.answers),
	)
	db.add(row)
	db.commit()
	return {"id": row.id}


# Admin

@admin_router.get("/tests")
def admin_list_tests(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	return load_listening_tests(db, published_only=False)


@admin_router.post("/tests", status_code=201)
def admin_create_test(req: ListeningTestIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = ListeningTest(
		title=req.title,
		book_name=req.book_name,
		test_number=req.test_number,
		time_limit=req.time_limit,
		total_questions=req.total_questions,
		transcript=req.transcript,
		is_published=req.is_published,
	)
	db.add(test)
	db.flush()
	for g in req.question_groups:
		if g.end_question < g.start_question:
			db.rollback()
			raise HTTPException(status_code=400, detail="end_question must not precede start_question")
		db.add(ListeningQuestionGroup(
			test_id=test.id,
			part_number=g.part_number,
			question_type=g.question_type,
			start_question=g.start_question,
			end_question=g.end_question,
		))
	db.commit()
	return {"id": test.id}


@admin_router.patch("/tests/{test_id}/publish")
def admin_publish(test_id: str, req: PublishRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = db.get(ListeningTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	test.is_published = req.is_published
	db.commit()
	return {"id": test.id, "is_published": test.is_published}


@admin_router.post("/{test_id}/audio")
async def upload_audio(
	test_id: str,
	file: UploadFile = File(...),
	admin: User = Depends(require_admin),
	db: Session = Depends(get_db),
	storage: AudioStorage = Depends(get_storage),
):
	test = db.get(ListeningTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	if not (file.content_type or "").startswith("audio/"):
		raise HTTPException(status_code=400, detail="Please upload an audio file.")
	# Replace the previous upload; a failed removal only warns
	if test.audio_url:
		old_key = storage.key_from_url(test.audio_url)
		if old_key:
			try:
				storage.remove(old_key)
			except (OSError, StorageError) as e:
				logger.warning("Failed to remove old audio file: %s", e)
	content = await file.read()
	try:
		key = storage.upload(test_id, file.filename or "audio", content)
	except (OSError, StorageError) as e:
		raise HTTPException(status_code=500, detail=f"Upload failed: {e}")
	test.audio_url = storage.public_url(key)
	db.commit()
	return {"audio_url": test.audio_url}


@admin_router.delete("/{test_id}/audio")
def remove_audio(
	test_id: str,
	admin: User = Depends(require_admin),
	db: Session = Depends(get_db),
	storage: AudioStorage = Depends(get_storage),
):
	test = db.get(ListeningTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	if not test.audio_url:
		raise HTTPException(status_code=404, detail="Test has no audio")
	key = storage.key_from_url(test.audio_url)
	if key is None:
		raise HTTPException(status_code=400, detail="Invalid audio URL.")
	try:
		storage.remove(key)
	except (OSError, StorageError) as e:
		raise HTTPException(status_code=500, detail=f"Removal failed: {e}")
	test.audio_url = None
	db.commit()
	return {"ok": True}
