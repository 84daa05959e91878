from __future__ import annotations
import base64
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from ..gemini_client import GeminiClient, GeminiUnavailable
from ..settings import settings
from .auth import User, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])

TRANSCRIBE_PROMPT = """Transcribe this IELTS listening test recording.

Return only a JSON object with this exact structure:
{
  "full_transcript": string,
  "segments": [{"text": string, "start_time": number (seconds), "end_time": number (seconds)}],
  "parts": [
    {
      "part_number": number (1-4),
      "start_time": number (seconds),
      "end_time": number (seconds),
      "question_groups": [{"start_question": number, "end_question": number, "start_time": number, "end_time": number}]
    }
  ],
  "total_duration": number (seconds)
}

Split segments at sentence boundaries. Detect the start of each part from the announcer ("Part 1", "Part 2", ...) and the question ranges read out before each section."""


def get_gemini_factory() -> Callable[[], GeminiClient]:
	return GeminiClient


def get_http_client() -> httpx.AsyncClient:
	return httpx.AsyncClient(timeout=60.0, follow_redirects=True)


def _error(status_code: int, message: str) -> JSONResponse:
	return JSONResponse(status_code=status_code, content={"error": message})


def _seconds(value: Any) -> float:
	try:
		return max(0.0, float(value))
	except (TypeError, ValueError):
		return 0.0


def normalize_transcription(raw: Dict[str, Any]) -> Dict[str, Any]:
	"""Coerce model output into the transcript shape; segments by time, parts by number."""
	segments: List[Dict[str, Any]] = []
	for seg in raw.get("segments") or []:
		if not isinstance(seg, dict) or not str(seg.get("text") or "").strip():
			continue
		start = _seconds(seg.get("start_time"))
		segments.append({
			"text": str(seg["text"]).strip(),
			"start_time": start,
			"end_time": max(start, _seconds(seg.get("end_time"))),
		})
	segments.sort(key=lambda s: s["start_time"])

	parts: List[Dict[str, Any]] = []
	for part in raw.get("parts") or []:
		if not isinstance(part, dict):
			continue
		try:
			number = int(part.get("part_number"))
		except (TypeError, ValueError):
			continue
		groups = [g for g in (part.get("question_groups") or []) if isinstance(g, dict)]
		groups.sort(key=lambda g: _seconds(g.get("start_time")))
		parts.append({
			"part_number": number,
			"start_time": _seconds(part.get("start_time")),
			"end_time": _seconds(part.get("end_time")),
			"question_groups": groups,
		})
	parts.sort(key=lambda p: p["part_number"])

	full = raw.get("full_transcript")
	if not isinstance(full, str) or not full.strip():
		full = " ".join(s["text"] for s in segments)
	total = _seconds(raw.get("total_duration"))
	if not total and segments:
		total = segments[-1]["end_time"]
	return {"full_transcript": full.strip(), "segments": segments, "parts": parts, "total_duration": total}


READ_CHUNK_BYTES = 1024 * 1024


class AudioTooLarge(Exception):
	pass


async def _read_upload(file: UploadFile, max_bytes: int) -> bytes:
	if file.size is not None and file.size > max_bytes:
		raise AudioTooLarge()
	audio = bytearray()
	while True:
		chunk = await file.read(READ_CHUNK_BYTES)
		if not chunk:
			return bytes(audio)
		audio.extend(chunk)
		if len(audio) > max_bytes:
			raise AudioTooLarge()


async def _fetch_audio(url: str, client: httpx.AsyncClient, max_bytes: int) -> tuple[bytes, str]:
	"""Stream the asset, giving up as soon as it passes ``max_bytes``.

	The body of a non-audio response is not read.
	"""
	async with client.stream("GET", url) as r:
		r.raise_for_status()
		mime = r.headers.get("content-type", "audio/mpeg").split(";")[0].strip()
		if not mime.startswith("audio/"):
			return b"", mime
		length = r.headers.get("content-length")
		if length and length.isdigit() and int(length) > max_bytes:
			raise AudioTooLarge()
		audio = bytearray()
		async for chunk in r.aiter_bytes():
			audio.extend(chunk)
			if len(audio) > max_bytes:
				raise AudioTooLarge()
	return bytes(audio), mime


@router.post("/transcribe-listening-audio")
async def transcribe_listening_audio(
	audioUrl: Optional[str] = Form(default=None),
	file: Optional[UploadFile] = File(default=None),
	admin: User = Depends(require_admin),
	gemini_factory: Callable[[], GeminiClient] = Depends(get_gemini_factory),
	http_client: httpx.AsyncClient = Depends(get_http_client),
):
	max_bytes = settings.max_transcription_mb * 1024 * 1024
	try:
		if file is not None:
			mime = file.content_type or ""
			if not mime.startswith("audio/"):
				return _error(400, "Please upload an audio file.")
			audio = await _read_upload(file, max_bytes)
		elif audioUrl:
			try:
				audio, mime = await _fetch_audio(audioUrl, http_client, max_bytes)
			except httpx.HTTPError as e:
				logger.error("Could not fetch audio from %s: %s", audioUrl, e)
				return _error(400, "Could not fetch audio from URL")
			if not mime.startswith("audio/"):
				return _error(400, "URL does not point to an audio file")
		else:
			return _error(400, "Provide audioUrl or an audio file")
	except AudioTooLarge:
		return _error(413, f"Audio file too large (max {settings.max_transcription_mb}MB)")
	finally:
		await http_client.aclose()

	try:
		client = gemini_factory()
	except ValueError as e:
		return _error(500, str(e))
	parts = [
		{"inline_data": {"mime_type": mime, "data": base64.b64encode(audio).decode("ascii")}},
		{"text": TRANSCRIBE_PROMPT},
	]
	try:
		text = await client.generate_multimodal(parts, temperature=0.1, response_mime_type="application/json")
	except GeminiUnavailable as e:
		logger.error("%s", e)
		return _error(500, "Failed to transcribe audio")
	finally:
		await client.aclose()

	try:
		raw = json.loads(text)
	except ValueError:
		logger.error("Transcription response was not JSON")
		return _error(500, "Failed to parse transcription")
	if not isinstance(raw, dict):
		return _error(500, "Failed to parse transcription")
	return normalize_transcription(raw)
