"""
Answer follow-up tutor.

Lets a test-taker ask a follow-up question about one reviewed answer. The
answer is generated with the caller's own Gemini key, stored encrypted in
``user_secrets``; the shared server key is never used here.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..crypto import decrypt_secret
from ..db import get_db
from ..gemini_client import GeminiClient, GeminiUnavailable
from ..settings import settings
from .auth import User, get_current_user
from .secrets import GEMINI_SECRET_NAME, find_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 2048


class FollowupRequest(BaseModel):
	# Both are optional so the key checks run before the body check
	question: Optional[str] = None
	context: Optional[Dict[str, Any]] = None


def get_gemini_factory() -> Callable[[str], GeminiClient]:
	return lambda api_key: GeminiClient(api_key)


def _error(status_code: int, message: str) -> JSONResponse:
	return JSONResponse(status_code=status_code, content={"error": message})


def build_followup_prompt(question: str, context: Dict[str, Any]) -> str:
	raw_type = context.get("questionType")
	question_type = (raw_type if isinstance(raw_type, str) else "").replace("_", " ") or "Unknown"

	passage_block = ""
	passage = context.get("passage")
	if isinstance(passage, dict) and passage:
		passage_block = (
			"## PASSAGE\n"
			f"Title: {passage.get('title') or 'Untitled'}\n\n"
			f"{passage.get('content') or '(No passage content available)'}\n"
		)

	options = context.get("options")
	options_line = f"**Options:** {json.dumps(options)}" if options else ""
	explanation = context.get("explanation")
	explanation_line = f"**Original Explanation:** {explanation}" if explanation else ""

	return f"""You are an expert IELTS tutor helping a test-taker understand their practice test results.

## TEST CONTEXT

**Module:** {context.get('module') or 'Reading'}
**Question Type:** {question_type}
**Difficulty:** {context.get('difficulty') or 'Medium'}
**Topic:** {context.get('topic') or 'General'}

{passage_block}

## QUESTION BEING DISCUSSED
**Question {context.get('questionNumber') or ''}:** {context.get('questionText') or '(No question text)'}

{options_line}

**Test-taker's Answer:** {context.get('userAnswer') or '(No answer provided)'}
**Correct Answer:** {context.get('correctAnswer') or '(Unknown)'}
**Was Correct:** {'Yes ✓' if context.get('isCorrect') else 'No ✗'}

{explanation_line}

## USER'S FOLLOW-UP QUESTION
{question}

## YOUR TASK
Answer the user's question clearly and helpfully. Use these guidelines:
1. Be specific and reference the passage/question when relevant
2. If they ask why their answer was wrong, explain the specific reasoning
3. If they want more examples, provide IELTS-relevant examples
4. If they want tips, give practical test-taking strategies
5. Be encouraging but honest
6. Keep your answer concise but complete (aim for 2-4 paragraphs unless more detail is needed)
7. Use simple, clear language appropriate for non-native English speakers

Your response:"""


@router.post("/explain-answer-followup")
async def explain_answer_followup(
	req: FollowupRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gemini_factory: Callable[[str], GeminiClient] = Depends(get_gemini_factory),
):
	secret = find_secret(db, user.username, GEMINI_SECRET_NAME)
	if not secret:
		return _error(400, "Gemini API key not found. Please add your API key in Settings.")
	if not settings.app_encryption_key:
		return _error(500, "Encryption key not configured")
	try:
		api_key = decrypt_secret(secret.encrypted_value, settings.app_encryption_key)
	except ValueError as e:
		logger.error("Could not decrypt Gemini key for %s: %s", user.username, e)
		return _error(500, str(e))

	if not req.question or not req.context:
		return _error(400, "Missing question or context")

	logger.info("Processing follow-up question: %s...", req.question[:100])
	prompt = build_followup_prompt(req.question, req.context)

	client = gemini_factory(api_key)
	try:
		text = await client.generate(prompt, temperature=TEMPERATURE, max_output_tokens=MAX_OUTPUT_TOKENS)
	except GeminiUnavailable as e:
		logger.error("%s", e)
		return _error(500, "Failed to generate response")
	finally:
		await client.aclose()
	return {"response": text.strip(), "success": True}
