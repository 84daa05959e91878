from __future__ import annotations
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import catalog
from ..content import load_reading_tests, user_scores
from ..db import get_db
from ..models import ReadingPassage, ReadingQuestionGroup, ReadingSubmission, ReadingTest
from .auth import User, get_current_user, require_admin

router = APIRouter(prefix="/reading", tags=["reading"])
admin_router = APIRouter(prefix="/admin/reading", tags=["admin"])


class SubmissionRequest(BaseModel):
	score: int = Field(ge=0)
	total_questions: int = Field(gt=0)
	band_score: Optional[float] = Field(default=None, ge=0, le=9)
	answers: Dict[str, Any] = Field(default_factory=dict)


class WordBankRequest(BaseModel):
	# Answers keyed by question number, from every group of the test
	answers: Dict[int, str] = Field(default_factory=dict)


class QuestionGroupIn(BaseModel):
	question_type: str
	start_question: int = Field(ge=1)
	end_question: int = Field(ge=1)
	content: Optional[str] = None
	word_bank: Optional[List[str]] = None


class PassageIn(BaseModel):
	passage_number: int = Field(ge=1)
	title: str = ""
	content: Optional[str] = None
	question_groups: List[QuestionGroupIn] = Field(default_factory=list)


class ReadingTestIn(BaseModel):
	title: str
	book_name: str
	test_number: int = Field(default=1, ge=1)
	time_limit: int = Field(default=60, ge=1)
	total_questions: int = Field(default=40, ge=1)
	is_published: bool = False
	passages: List[PassageIn] = Field(default_factory=list)


class PublishRequest(BaseModel):
	is_published: bool


def _books(tests: List[Dict[str, Any]], selected: List[str], scores: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
	books = []
	for book_name, book_tests in catalog.group_by_book(tests).items():
		section = catalog.book_section(book_name, book_tests, "reading", selected, scores)
		if section is not None:
			books.append(section)
	return books


@router.get("/tests")
def list_tests(types: List[str] = Query(default=[]), db: Session = Depends(get_db)):
	tests = load_reading_tests(db)
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
	tests = load_reading_tests(db)
	scores = user_scores(db, ReadingSubmission, user.username)
	return {
		"question_types": catalog.available_question_types(tests),
		"books": _books(tests, types, scores),
	}


@router.get("/question-types")
def question_types(db: Session = Depends(get_db)):
	return catalog.available_question_types(load_reading_tests(db))


@router.get("/tests/{test_id}")
def get_test(test_id: str, db: Session = Depends(get_db)):
	tests = load_reading_tests(db, test_id=test_id)
	if not tests:
		raise HTTPException(status_code=404, detail="Test not found")
	test = tests[0]
	passages = {p.id: p for p in db.query(ReadingPassage).filter(ReadingPassage.test_id == test_id).all()}
	for passage in test["passages"]:
		passage["content"] = passages[passage["id"]].content
	return test


@router.post("/groups/{group_id}/word-bank")
def word_bank(group_id: str, req: WordBankRequest, db: Session = Depends(get_db)):
	group = db.get(ReadingQuestionGroup, group_id)
	if not group or not group.content:
		raise HTTPException(status_code=404, detail="Word bank group not found")
	bank = json.loads(group.word_bank_json) if group.word_bank_json else []
	return {
		"gaps": catalog.gap_numbers(group.content),
		"words": catalog.word_bank_state(group.content, bank, req.answers),
	}


@router.post("/tests/{test_id}/submissions", status_code=201)
def submit(test_id: str, req: SubmissionRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	test = db.get(ReadingTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	if req.score > req.total_questions:
		raise HTTPException(status_code=400, detail="score cannot exceed total_questions")
	row = ReadingSubmission(
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
	return load_reading_tests(db, published_only=False)


@admin_router.post("/tests", status_code=201)
def admin_create_test(req: ReadingTestIn, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = ReadingTest(
		title=req.title,
		book_name=req.book_name,
		test_number=req.test_number,
		time_limit=req.time_limit,
		total_questions=req.total_questions,
		is_published=req.is_published,
	)
	db.add(test)
	db.flush()
	for p in req.passages:
		passage = ReadingPassage(test_id=test.id, passage_number=p.passage_number, title=p.title, content=p.content)
		db.add(passage)
		db.flush()
		for g in p.question_groups:
			if g.end_question < g.start_question:
				db.rollback()
				raise HTTPException(status_code=400, detail="end_question must not precede start_question")
			db.add(ReadingQuestionGroup(
				passage_id=passage.id,
				question_type=g.question_type,
				start_question=g.start_question,
				end_question=g.end_question,
				content=g.content,
				word_bank_json=json.dumps(g.word_bank) if g.word_bank is not None else None,
			))
	db.commit()
	return {"id": test.id}


@admin_router.patch("/tests/{test_id}/publish")
def admin_publish(test_id: str, req: PublishRequest, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = db.get(ReadingTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	test.is_published = req.is_published
	db.commit()
	return {"id": test.id, "is_published": test.is_published}


@admin_router.delete("/tests/{test_id}", status_code=204)
def admin_delete(test_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	test = db.get(ReadingTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	passage_ids = [p.id for p in db.query(ReadingPassage).filter(ReadingPassage.test_id == test_id).all()]
	if passage_ids:
		db.query(ReadingQuestionGroup).filter(ReadingQuestionGroup.passage_id.in_(passage_ids)).delete(synchronize_session=False)
	db.query(ReadingPassage).filter(ReadingPassage.test_id == test_id).delete(synchronize_session=False)
	db.query(ReadingSubmission).filter(ReadingSubmission.test_id == test_id).delete(synchronize_session=False)
	db.delete(test)
	db.commit()
