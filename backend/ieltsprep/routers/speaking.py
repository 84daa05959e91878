"""
Speaking Test Content
=====================

Public read access to published speaking tests and the admin editors for
their three parts:

- Part 1: short interview questions, each with its own time limit
  (10-60 s); new questions inherit the part's default time limit.
- Part 2: the cue card (topic, bullet content, preparation and speaking time).
- Part 3: discussion questions flagged required or optional, an overall
  part time limit (180-420 s) and a minimum number of required questions.

Questions are addressed by their position in the part; removing or moving a
question renumbers the rest.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import speaking_editor as editor
from ..db import get_db
from ..models import SpeakingQuestion, SpeakingTest
from .auth import User, require_admin

router = APIRouter(prefix="/speaking", tags=["speaking"])
admin_router = APIRouter(prefix="/admin/speaking", tags=["admin"])

QUESTION_PARTS = (1, 3)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class SpeakingTestIn(BaseModel):
	title: str
	book_name: Optional[str] = None
	test_number: int = Field(default=1, ge=1)


class SettingsUpdate(BaseModel):
	"""Partial update of part-level settings; omitted fields are left alone."""
	part1_time_limit_seconds: Optional[int] = None
	part3_time_limit_seconds: Optional[int] = None
	part3_total_time_limit_seconds: Optional[int] = None
	part3_min_required_questions: Optional[int] = None
	cue_card_topic: Optional[str] = None
	cue_card_content: Optional[str] = None
	preparation_time_seconds: Optional[int] = None
	speaking_time_seconds: Optional[int] = None
	is_published: Optional[bool] = None


class AddQuestionRequest(BaseModel):
	question_text: str = ""
	# Part 3 only; Part 1 questions are always required
	is_required: bool = True


class UpdateQuestionRequest(BaseModel):
	question_text: Optional[str] = None
	time_limit_seconds: Optional[int] = None
	is_required: Optional[bool] = None


class MoveQuestionRequest(BaseModel):
	from_index: int
	to_index: int


# ============================================================================
# HELPERS
# ============================================================================

def _get_test(db: Session, test_id: str) -> SpeakingTest:
	test = db.get(SpeakingTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	return test


def _check_part(part: int) -> None:
	if part not in QUESTION_PARTS:
		raise HTTPException(status_code=400, detail="Only parts 1 and 3 have questions")


def _questions(db: Session, test_id: str, part: int) -> List[SpeakingQuestion]:
	return (
		db.query(SpeakingQuestion)
		.filter(SpeakingQuestion.test_id == test_id, SpeakingQuestion.part_number == part)
		.order_by(SpeakingQuestion.order_index.asc())
		.all()
	)


def _question_dict(q: SpeakingQuestion) -> Dict[str, Any]:
	return {
		"id": q.id,
		"question_number": q.question_number,
		"question_text": q.question_text,
		"time_limit_seconds": q.time_limit_seconds,
		"is_required": q.is_required,
		"order_index": q.order_index,
	}


def _question_bounds(part: int) -> tuple[int, int]:
	return editor.PART1_QUESTION_TIME if part == 1 else editor.PART3_QUESTION_TIME


def _test_payload(db: Session, test: SpeakingTest) -> Dict[str, Any]:
	part1 = _questions(db, test.id, 1)
	part3 = _questions(db, test.id, 3)
	return {
		"id": test.id,
		"title": test.title,
		"book_name": test.book_name,
		"test_number": test.test_number,
		"is_published": test.is_published,
		"part1": {
			"time_limit_seconds": test.part1_time_limit_seconds,
			"questions": [_question_dict(q) for q in part1],
			"totals": editor.part_totals(part1),
		},
		"part2": {
			"cue_card_topic": test.cue_card_topic,
			"cue_card_content": test.cue_card_content,
			"preparation_time_seconds": test.preparation_time_seconds,
			"speaking_time_seconds": test.speaking_time_seconds,
		},
		"part3": {
			"time_limit_seconds": test.part3_time_limit_seconds,
			"total_time_limit_seconds": test.part3_total_time_limit_seconds,
			"min_required_questions": test.part3_min_required_questions,
			"questions": [_question_dict(q) for q in part3],
			"totals": editor.part_totals(part3),
		},
	}


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@router.get("/tests")
def list_tests(db: Session = Depends(get_db)):
	tests = (
		db.query(SpeakingTest)
		.filter(SpeakingTest.is_published.is_(True))
		.order_by(SpeakingTest.book_name.asc(), SpeakingTest.test_number.asc())
		.all()
	)
	return [{"id": t.id, "title": t.title, "book_name": t.book_name, "test_number": t.test_number} for t in tests]


@router.get("/tests/{test_id}")
def get_test(test_id: str, db: Session = Depends(get_db)):
	test = _get_test(db, test_id)
	if not test.is_published:
		raise HTTPException(status_code=404, detail="Test not found")
	return _test_payload(db, test)


# ============================================================================
# ADMIN EDITORS
# ============================================================================

@admin_router.post("/tests", status_code=201)
def create_test(req: SpeakingTestIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = SpeakingTest(title=req.title, book_name=req.book_name, test_number=req.test_number)
	db.add(test)
	db.commit()
	return _test_payload(db, test)


@admin_router.get("/tests/{test_id}")
def admin_get_test(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	return _test_payload(db, _get_test(db, test_id))


@admin_router.patch("/tests/{test_id}")
def update_settings(test_id: str, req: SettingsUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = _get_test(db, test_id)
	try:
		if req.part1_time_limit_seconds is not None:
			test.part1_time_limit_seconds = editor.check_range("Part 1 question time", req.part1_time_limit_seconds, editor.PART1_QUESTION_TIME)
		if req.part3_time_limit_seconds is not None:
			test.part3_time_limit_seconds = editor.check_range("Part 3 question time", req.part3_time_limit_seconds, editor.PART3_QUESTION_TIME)
		if req.part3_total_time_limit_seconds is not None:
			test.part3_total_time_limit_seconds = editor.check_range("Part 3 total time", req.part3_total_time_limit_seconds, editor.PART3_TOTAL_TIME)
		if req.part3_min_required_questions is not None:
			test.part3_min_required_questions = editor.check_min_required(
				req.part3_min_required_questions, len(_questions(db, test_id, 3))
			)
		if req.preparation_time_seconds is not None:
			if req.preparation_time_seconds not in editor.PART2_PREPARATION_CHOICES:
				raise editor.EditorError(f"preparation time must be one of {editor.PART2_PREPARATION_CHOICES}")
			test.preparation_time_seconds = req.preparation_time_seconds
		if req.speaking_time_seconds is not None:
			if req.speaking_time_seconds not in editor.PART2_SPEAKING_CHOICES:
				raise editor.EditorError(f"speaking time must be one of {editor.PART2_SPEAKING_CHOICES}")
			test.speaking_time_seconds = req.speaking_time_seconds
	except editor.EditorError as e:
		db.rollback()
		raise HTTPException(status_code=400, detail=str(e))
	if req.cue_card_topic is not None:
		test.cue_card_topic = req.cue_card_topic
	if req.cue_card_content is not None:
		test.cue_card_content = req.cue_card_content
	if req.is_published is not None:
		test.is_published = req.is_published
	db.commit()
	return _test_payload(db, test)


@admin_router.post("/tests/{test_id}/parts/{part}/questions", status_code=201)
def add_question(test_id: str, part: int, req: AddQuestionRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	_check_part(part)
	test = _get_test(db, test_id)
	existing = _questions(db, test_id, part)
	default_time = test.part1_time_limit_seconds if part == 1 else test.part3_time_limit_seconds
	question = SpeakingQuestion(
		test_id=test_id,
		part_number=part,
		question_number=len(existing) + 1,
		question_text=req.question_text,
		time_limit_seconds=default_time,
		is_required=True if part == 1 else req.is_required,
		order_index=len(existing),
	)
	db.add(question)
	db.commit()
	return _test_payload(db, test)


@admin_router.patch("/tests/{test_id}/parts/{part}/questions/{index}")
def update_question(
	test_id: str,
	part: int,
	index: int,
	req: UpdateQuestionRequest,
	admin: User = Depends(require_admin),
	db: Session = Depends(get_db),
):
	_check_part(part)
	test = _get_test(db, test_id)
	questions = _questions(db, test_id, part)
	if not (0 <= index < len(questions)):
		raise HTTPException(status_code=404, detail="Question not found")
	question = questions[index]
	if req.time_limit_seconds is not None:
		try:
			question.time_limit_seconds = editor.check_range("question time", req.time_limit_seconds, _question_bounds(part))
		except editor.EditorError as e:
			raise HTTPException(status_code=400, detail=str(e))
	if req.question_text is not None:
		question.question_text = req.question_text
	if req.is_required is not None and part == 3:
		question.is_required = req.is_required
	db.commit()
	return _test_payload(db, test)


@admin_router.delete("/tests/{test_id}/parts/{part}/questions/{index}")
def remove_question(test_id: str, part: int, index: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	_check_part(part)
	test = _get_test(db, test_id)
	questions = _questions(db, test_id, part)
	if not (0 <= index < len(questions)):
		raise HTTPException(status_code=404, detail="Question not found")
	db.delete(questions[index])
	remaining = editor.remove(questions, index)
	if part == 3 and test.part3_min_required_questions > len(remaining):
		test.part3_min_required_questions = len(remaining)
	db.commit()
	return _test_payload(db, test)


@admin_router.post("/tests/{test_id}/parts/{part}/questions/move")
def move_question(
	test_id: str,
	part: int,
	req: MoveQuestionRequest,
	admin: User = Depends(require_admin),
	db: Session = Depends(get_db),
):
	_check_part(part)
	test = _get_test(db, test_id)
	try:
		editor.move(_questions(db, test_id, part), req.from_index, req.to_index)
	except editor.EditorError as e:
		raise HTTPException(status_code=400, detail=str(e))
	db.commit()
	return _test_payload(db, test)
