"""
Performance Analysis
====================

Sends a user's recent reading and listening submissions to the AI gateway and
returns a structured analytics report (overall band, trend, strengths,
per-module weak areas, common mistakes, worked examples and resources).

Two entry points share the same analysis:

- ``POST /functions/analyze-performance`` waits for the gateway and answers
  with ``{"analytics": ...}``.
- ``POST /functions/analyze-performance/jobs`` starts it in the background;
  ``GET /functions/analyze-performance/jobs/{job_id}`` reports loading-screen
  progress and, once finished, the result.
"""

from __future__ import annotations
import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..content import recent_listening, recent_reading
from ..db import get_db
from ..gateway_client import GatewayClient, GatewayError
from ..loading import LoadingProgress
from ..settings import settings
from .auth import User, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/analyze-performance", tags=["functions"])

RECENT_LIMIT = 5
# Finished jobs nobody polls are dropped after this long
JOB_TTL_SECONDS = 10 * 60

SYSTEM_PROMPT = """You are an IELTS expert analyst providing detailed, actionable feedback. Analyze the student's test performance data and provide comprehensive insights.

IMPORTANT: Include specific examples from the student's actual performance when available. For instance:
- "In Cambridge 19 Listening Test 1, you wrote 'cup' instead of 'cups' - pay attention to singular/plural forms"
- "You often confuse 'Not Given' with 'False' in True/False/Not Given questions"
- "Your spelling errors cost you 3 marks in the last test (e.g., 'accomodation' instead of 'accommodation')"

Return a JSON object with this exact structure:
{
  "overallBand": number (0-9 scale, with .5 increments),
  "overallTrend": "up" | "down" | "stable",
  "topStrengths": string[] (3 items, be specific with examples),
  "areasToImprove": string[] (3 items, with specific actionable techniques),
  "modules": [
    {
      "module": "reading" | "listening" | "writing" | "speaking",
      "averageScore": number (0-100),
      "totalTests": number,
      "bandScore": number (0-9),
      "trend": "up" | "down" | "stable",
      "weakAreas": string[] (2-3 specific question types),
      "commonMistakes": string[] (2-3 specific patterns with examples like "wrote 'informations' instead of 'information'"),
      "improvements": string[] (2-3 actionable techniques like "Use the '3-step skimming method': 1. Read first/last sentences 2. Identify keywords 3. Match with answer options"),
      "detailedExamples": [
        {
          "testName": string (e.g., "Cambridge 19 Test 1"),
          "mistake": string (specific error),
          "correction": string (what should have been),
          "technique": string (how to avoid this in future)
        }
      ],
      "resources": [{ "title": string, "url": string, "type": "video" | "article" | "practice" }]
    }
  ]
}

Provide REAL, ACTIONABLE resources from reputable IELTS sources like:
- British Council IELTS (https://takeielts.britishcouncil.org/)
- IELTS.org (https://www.ielts.org/)
- Cambridge IELTS (https://www.cambridgeenglish.org/)

Be specific, practical, and encouraging. Focus on patterns that can be improved with targeted practice."""

USER_PROMPT_TEMPLATE = """Analyze this IELTS test performance data in detail:

{data}

Provide:
1. Comprehensive analysis with specific examples from the test data
2. Identify recurring patterns in mistakes
3. Give actionable techniques with step-by-step instructions
4. Recommend specific resources for improvement
5. Be encouraging but honest about areas needing work"""

PROGRESS_TITLE = "Analyzing Your Performance"
PROGRESS_DESCRIPTION = "Our AI is reviewing your recent tests to find patterns and personalised tips."
PROGRESS_STEPS = (
	"Collecting recent test results",
	"Identifying strengths and weak areas",
	"Finding common mistakes",
	"Preparing recommendations",
)

# Greedy so nested objects stay inside the match
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class AnalysisFailed(Exception):
	def __init__(self, status_code: int, message: str, *, with_analytics: bool = True) -> None:
		self.status_code = status_code
		self.message = message
		self.with_analytics = with_analytics
		super().__init__(message)

	def body(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {"error": self.message}
		if self.with_analytics:
			data["analytics"] = None
		return data


class AnalyzeRequest(BaseModel):
	userId: Optional[str] = None
	testData: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class AnalysisJob:
	id: str
	username: str
	progress: LoadingProgress
	result: Optional[Dict[str, Any]] = None
	error: Optional[AnalysisFailed] = None
	task: Optional[asyncio.Task] = field(default=None, repr=False)

	def status(self) -> Dict[str, Any]:
		data: Dict[str, Any] = {"id": self.id, "progress": self.progress.snapshot()}
		if self.error is not None:
			data.update(status="failed", **self.error.body())
		elif self.progress.finished:
			data.update(status="done", analytics=(self.result or {}).get("analytics"))
		else:
			data["status"] = "running"
		return data


_jobs: Dict[str, AnalysisJob] = {}


def get_gateway_factory() -> Callable[[], GatewayClient]:
	return GatewayClient


def _resolve_user(req: AnalyzeRequest, user: User) -> str:
	target = req.userId or user.username
	if target != user.username and not user.is_admin:
		raise HTTPException(status_code=403, detail="Cannot analyze another user's results")
	return target


def collect_test_data(db: Session, username: str, test_data: Dict[str, Any]) -> Dict[str, Any]:
	"""Recent submissions for the user; keys from ``test_data`` win."""
	data: Dict[str, Any] = {
		"reading": recent_reading(db, username, RECENT_LIMIT),
		"listening": recent_listening(db, username, RECENT_LIMIT),
	}
	data.update(test_data)
	return data


def parse_analytics(content: str) -> Optional[Dict[str, Any]]:
	match = _JSON_BLOCK.search(content or "")
	if not match:
		logger.error("Failed to parse AI response: no JSON found in response")
		return None
	try:
		return json.loads(match.group(0))
	except ValueError as e:
		logger.error("Failed to parse AI response: %s", e)
		return None


async def run_analysis(data: Dict[str, Any], gateway_factory: Callable[[], GatewayClient]) -> Dict[str, Any]:
	"""Returns ``{"analytics": ...}`` or raises ``AnalysisFailed``."""
	try:
		client = gateway_factory()
	except ValueError as e:
		raise AnalysisFailed(500, str(e))
	messages = [
		{"role": "system", "content": SYSTEM_PROMPT},
		{"role": "user", "content": USER_PROMPT_TEMPLATE.format(data=json.dumps(data, indent=2, default=str))},
	]
	try:
		content = await client.chat(messages)
	except GatewayError as e:
		if e.status_code == 429:
			raise AnalysisFailed(429, "Rate limit exceeded. Please try again later.", with_analytics=False)
		if e.status_code == 402:
			raise AnalysisFailed(402, "AI credits exhausted. Please add credits.", with_analytics=False)
		raise AnalysisFailed(500, str(e))
	except Exception as e:
		logger.exception("Error in analyze-performance")
		raise AnalysisFailed(500, str(e) or "Unknown error")
	finally:
		await client.aclose()
	return {"analytics": parse_analytics(content)}


async def _run_job(job: AnalysisJob, data: Dict[str, Any], gateway_factory: Callable[[], GatewayClient]) -> None:
	try:
		job.result = await run_analysis(data, gateway_factory)
	except AnalysisFailed as e:
		job.error = e
	finally:
		job.progress.finish()
		asyncio.get_running_loop().call_later(JOB_TTL_SECONDS, _jobs.pop, job.id, None)


def new_progress() -> LoadingProgress:
	return LoadingProgress(
		PROGRESS_STEPS,
		settings.analysis_expected_seconds,
		title=PROGRESS_TITLE,
		description=PROGRESS_DESCRIPTION,
	)


@router.post("")
async def analyze_performance(
	req: AnalyzeRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gateway_factory: Callable[[], GatewayClient] = Depends(get_gateway_factory),
):
	username = _resolve_user(req, user)
	data = collect_test_data(db, username, req.testData)
	try:
		return await run_analysis(data, gateway_factory)
	except AnalysisFailed as e:
		return JSONResponse(status_code=e.status_code, content=e.body())


@router.post("/jobs", status_code=202)
async def start_analysis_job(
	req: AnalyzeRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gateway_factory: Callable[[], GatewayClient] = Depends(get_gateway_factory),
):
	username = _resolve_user(req, user)
	# Submissions are read now; the request's session is closed once we return
	data = collect_test_data(db, username, req.testData)
	job = AnalysisJob(id=uuid.uuid4().hex, username=user.username, progress=new_progress())
	_jobs[job.id] = job
	job.task = asyncio.create_task(_run_job(job, data, gateway_factory))
	return job.status()


@router.get("/jobs/{job_id}")
async def analysis_job_status(job_id: str, user: User = Depends(get_current_user)):
	job = _jobs.get(job_id)
	if job is None or job.username != user.username:
		raise HTTPException(status_code=404, detail="Job not found")
	status = job.status()
	if status["status"] != "running":
		# Finished jobs are handed out once
		_jobs.pop(job_id, None)
	return status
