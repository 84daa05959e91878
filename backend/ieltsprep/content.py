"""Queries shared by the reading and listening test-list routes."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from .models import (
	ListeningQuestionGroup,
	ListeningSubmission,
	ListeningTest,
	ReadingPassage,
	ReadingQuestionGroup,
	ReadingSubmission,
	ReadingTest,
)


def _test_dict(test) -> Dict[str, Any]:
	return {
		"id": test.id,
		"title": test.title,
		"book_name": test.book_name,
		"test_number": test.test_number,
		"time_limit": test.time_limit,
		"total_questions": test.total_questions,
		"is_published": test.is_published,
		"created_at": test.created_at.isoformat() if test.created_at else None,
	}


def _group_dict(group) -> Dict[str, Any]:
	data = {
		"id": group.id,
		"question_type": group.question_type,
		"start_question": group.start_question,
		"end_question": group.end_question,
	}
	if isinstance(group, ReadingQuestionGroup):
		data["passage_id"] = group.passage_id
	else:
		data["part_number"] = group.part_number
	return data


def load_reading_tests(db: Session, *, published_only: bool = True, test_id: Optional[str] = None) -> List[Dict[str, Any]]:
	"""Tests ordered by book then number, with passages and question groups attached."""
	query = db.query(ReadingTest)
	if published_only:
		query = query.filter(ReadingTest.is_published.is_(True))
	if test_id is not None:
		query = query.filter(ReadingTest.id == test_id)
	tests = query.order_by(ReadingTest.book_name.asc(), ReadingTest.test_number.asc()).all()
	test_ids = [t.id for t in tests]
	passages = db.query(ReadingPassage).filter(ReadingPassage.test_id.in_(test_ids)).all() if test_ids else []
	passage_ids = [p.id for p in passages]
	groups = (
		db.query(ReadingQuestionGroup).filter(ReadingQuestionGroup.passage_id.in_(passage_ids)).all()
		if passage_ids else []
	)

	enriched = []
	for test in tests:
		test_passages = sorted((p for p in passages if p.test_id == test.id), key=lambda p: p.passage_number)
		ids_for_test = {p.id for p in test_passages}
		test_groups = sorted((g for g in groups if g.passage_id in ids_for_test), key=lambda g: g.start_question)
		data = _test_dict(test)
		data["passages"] = [
			{"id": p.id, "passage_number": p.passage_number, "title": p.title} for p in test_passages
		]
		data["question_groups"] = [_group_dict(g) for g in test_groups]
		enriched.append(data)
	return enriched


def load_listening_tests(db: Session, *, published_only: bool = True, test_id: Optional[str] = None) -> List[Dict[str, Any]]:
	query = db.query(ListeningTest)
	if published_only:
		query = query.filter(ListeningTest.is_published.is_(True))
	if test_id is not None:
		query = query.filter(ListeningTest.id == test_id)
	tests = query.order_by(ListeningTest.book_name.asc(), ListeningTest.test_number.asc()).all()
	test_ids = [t.id for t in tests]
	groups = (
		db.query(ListeningQuestionGroup).filter(ListeningQuestionGroup.test_id.in_(test_ids)).all()
		if test_ids else []
	)
	enriched = []
	for test in tests:
		data = _test_dict(test)
		data["audio_url"] = test.audio_url
		data["question_groups"] = [
			_group_dict(g) for g in sorted((g for g in groups if g.test_id == test.id), key=lambda g: g.start_question)
		]
		enriched.append(data)
	return enriched


def user_scores(db: Session, submission_model: Type, username: str) -> Dict[str, Dict[str, Any]]:
	"""Latest submission per test for the user, shaped for the book sections."""
	rows = (
		db.query(submission_model)
		.filter(submission_model.username == username)
		.order_by(submission_model.completed_at.desc())
		.all()
	)
	scores: Dict[str, Dict[str, Any]] = {}
	for row in rows:
		if row.test_id in scores:
			continue
		answers = json.loads(row.answers_json) if row.answers_json else {}
		scores[row.test_id] = {
			"overall": {
				"score": row.score,
				"total_questions": row.total_questions,
				"band_score": row.band_score,
			},
			"parts": answers.get("parts", {}) if isinstance(answers, dict) else {},
		}
	return scores


def recent_submissions(db: Session, submission_model: Type, test_model: Type, username: str, *, limit: int = 5) -> List[Dict[str, Any]]:
	"""Newest submissions joined with their test's title and book name."""
	rows = (
		db.query(submission_model, test_model)
		.join(test_model, submission_model.test_id == test_model.id)
		.filter(submission_model.username == username)
		.order_by(submission_model.completed_at.desc())
		.limit(limit)
		.all()
	)
	results = []
	for submission, test in rows:
		results.append({
			"id": submission.id,
			"test_id": submission.test_id,
			"score": submission.score,
			"total_questions": submission.total_questions,
			"band_score": submission.band_score,
			"answers": json.loads(submission.answers_json) if submission.answers_json else None,
			"completed_at": submission.completed_at.isoformat(),
			"test": {"title": test.title, "book_name": test.book_name},
		})
	return results


def recent_reading(db: Session, username: str, limit: int = 5) -> List[Dict[str, Any]]:
	return recent_submissions(db, ReadingSubmission, ReadingTest, username, limit=limit)


def recent_listening(db: Session, username: str, limit: int = 5) -> List[Dict[str, Any]]:
	return recent_submissions(db, ListeningSubmission, ListeningTest, username, limit=limit)
