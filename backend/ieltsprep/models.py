from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	is_admin = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# jti claim of the issued token
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserSecret(Base):
	__tablename__ = "user_secrets"
	__table_args__ = (UniqueConstraint("username", "secret_name", name="uq_user_secret"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	secret_name = Column(String(64), nullable=False)
	# base64(iv || AES-GCM ciphertext)
	encrypted_value = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ReadingTest(Base):
	__tablename__ = "reading_tests"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	book_name = Column(String(128), nullable=False, index=True)
	test_number = Column(Integer, default=1, nullable=False)
	time_limit = Column(Integer, default=60, nullable=False)  # minutes
	total_questions = Column(Integer, default=40, nullable=False)
	is_published = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ReadingPassage(Base):
	__tablename__ = "reading_passages"
	id = Column(String(32), primary_key=True, default=_new_id)
	test_id = Column(String(32), ForeignKey("reading_tests.id", ondelete="CASCADE"), nullable=False, index=True)
	passage_number = Column(Integer, nullable=False)
	title = Column(String(256), nullable=False, default="")
	content = Column(Text, nullable=True)


class ReadingQuestionGroup(Base):
	__tablename__ = "reading_question_groups"
	id = Column(String(32), primary_key=True, default=_new_id)
	passage_id = Column(String(32), ForeignKey("reading_passages.id", ondelete="CASCADE"), nullable=False, index=True)
	question_type = Column(String(64), nullable=False)
	start_question = Column(Integer, nullable=False)
	end_question = Column(Integer, nullable=False)
	# Summary text with {{N}} gaps and its JSON word bank, for word-bank groups
	content = Column(Text, nullable=True)
	word_bank_json = Column(Text, nullable=True)


class ReadingSubmission(Base):
	__tablename__ = "reading_test_submissions"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	test_id = Column(String(32), ForeignKey("reading_tests.id", ondelete="CASCADE"), nullable=False)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	band_score = Column(Float, nullable=True)
	answers_json = Column(Text, nullable=True)
	completed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class ListeningTest(Base):
	__tablename__ = "listening_tests"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	book_name = Column(String(128), nullable=False, index=True)
	test_number = Column(Integer, default=1, nullable=False)
	time_limit = Column(Integer, default=30, nullable=False)  # minutes
	total_questions = Column(Integer, default=40, nullable=False)
	audio_url = Column(String(512), nullable=True)
	transcript = Column(Text, nullable=True)
	is_published = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ListeningQuestionGroup(Base):
	__tablename__ = "listening_question_groups"
	id = Column(String(32), primary_key=True, default=_new_id)
	test_id = Column(String(32), ForeignKey("listening_tests.id", ondelete="CASCADE"), nullable=False, index=True)
	part_number = Column(Integer, nullable=False)
	question_type = Column(String(64), nullable=False)
	start_question = Column(Integer, nullable=False)
	end_question = Column(Integer, nullable=False)


class ListeningSubmission(Base):
	__tablename__ = "listening_test_submissions"
	id = Column(String(32), primary_key=True, default=_new_id)
	username = Column(String(128), nullable=False, index=True)
	test_id = Column(String(32), ForeignKey("listening_tests.id", ondelete="CASCADE"), nullable=False)
	score = Column(Integer, nullable=False)
	total_questions = Column(Integer, nullable=False)
	band_score = Column(Float, nullable=True)
	answers_json = Column(Text, nullable=True)
	completed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class SpeakingTest(Base):
	__tablename__ = "speaking_tests"
	id = Column(String(32), primary_key=True, default=_new_id)
	title = Column(String(256), nullable=False)
	book_name = Column(String(128), nullable=True)
	test_number = Column(Integer, default=1, nullable=False)
	# Default time limit given to new questions of each part
	part1_time_limit_seconds = Column(Integer, default=30, nullable=False)
	part3_time_limit_seconds = Column(Integer, default=60, nullable=False)
	part3_total_time_limit_seconds = Column(Integer, default=300, nullable=False)
	part3_min_required_questions = Column(Integer, default=0, nullable=False)
	# Part 2 cue card
	cue_card_topic = Column(String(512), default="", nullable=False)
	cue_card_content = Column(Text, default="", nullable=False)
	preparation_time_seconds = Column(Integer, default=60, nullable=False)
	speaking_time_seconds = Column(Integer, default=120, nullable=False)
	is_published = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SpeakingQuestion(Base):
	__tablename__ = "speaking_questions"
	id = Column(String(32), primary_key=True, default=_new_id)
	test_id = Column(String(32), ForeignKey("speaking_tests.id", ondelete="CASCADE"), nullable=False, index=True)
	part_number = Column(Integer, nullable=False)
	question_number = Column(Integer, nullable=False)
	question_text = Column(Text, default="", nullable=False)
	time_limit_seconds = Column(Integer, nullable=False)
	is_required = Column(Boolean, default=True, nullable=False)
	order_index = Column(Integer, nullable=False)
