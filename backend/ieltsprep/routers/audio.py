from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..audio.pcm import DEFAULT_SAMPLE_RATE, AudioDecodeError, pcm16_base64_to_wav
from ..audio.safe_player import FALLBACK_PITCH, FALLBACK_RATE, Utterance, Voice, check_reachable, select_voice
from ..audio.speech import Pyttsx3Speech
from ..db import get_db
from ..models import ListeningTest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audio", tags=["audio"])

_speech: Optional[Pyttsx3Speech] = None


def get_speech() -> Pyttsx3Speech:
	global _speech
	if _speech is None:
		_speech = Pyttsx3Speech()
	return _speech


def get_http_client() -> httpx.AsyncClient:
	return httpx.AsyncClient(timeout=10.0)


class PcmRequest(BaseModel):
	audio_base64: str
	sample_rate: Optional[int] = Field(default=None, gt=0)
	channels: int = Field(default=1, ge=1, le=2)


class SpeakRequest(BaseModel):
	text: str
	accent: Optional[str] = None
	rate: float = Field(default=FALLBACK_RATE, gt=0)
	pitch: float = Field(default=FALLBACK_PITCH, gt=0)


def _voice_dict(voice: Optional[Voice]) -> Optional[Dict[str, Any]]:
	if voice is None:
		return None
	return {"name": voice.name, "lang": voice.lang, "id": voice.id}


def _absolute(url: str, request: Request) -> str:
	if url.startswith(("http://", "https://")):
		return url
	return str(request.base_url).rstrip("/") + "/" + url.lstrip("/")


@router.post("/pcm")
def pcm_to_wav(req: PcmRequest):
	try:
		wav = pcm16_base64_to_wav(req.audio_base64, req.sample_rate or DEFAULT_SAMPLE_RATE, req.channels)
	except AudioDecodeError as e:
		raise HTTPException(status_code=400, detail=str(e))
	return Response(content=wav, media_type="audio/wav")


@router.get("/listening/{test_id}/source")
async def listening_audio_source(
	test_id: str,
	request: Request,
	accent: Optional[str] = Query(default=None),
	db: Session = Depends(get_db),
	speech: Pyttsx3Speech = Depends(get_speech),
	http_client: httpx.AsyncClient = Depends(get_http_client),
):
	"""Decide how the client should play a listening test.

	``audio`` when the uploaded file answers a HEAD request, otherwise
	``fallback`` with the transcript and the voice to read it with, or
	``error`` when there is nothing to play.
	"""
	test = db.get(ListeningTest, test_id)
	if not test:
		raise HTTPException(status_code=404, detail="Test not found")
	text = (test.transcript or "").strip()
	try:
		if test.audio_url and await check_reachable(_absolute(test.audio_url, request), http_client):
			return {"mode": "audio", "audio_url": test.audio_url}
	finally:
		await http_client.aclose()
	if not text:
		message = "Audio failed to load" if test.audio_url else "No audio or text available"
		return {"mode": "error", "error": message}
	voice = select_voice(speech.voices(), accent)
	return {
		"mode": "fallback",
		"text": text,
		"voice": _voice_dict(voice),
		"rate": FALLBACK_RATE,
		"pitch": FALLBACK_PITCH,
	}


@router.post("/speak")
async def speak(req: SpeakRequest, speech: Pyttsx3Speech = Depends(get_speech)):
	if not req.text.strip():
		raise HTTPException(status_code=400, detail="text is required")
	voice = select_voice(speech.voices(), req.accent)
	utterance = Utterance(text=req.text, voice=voice, rate=req.rate, pitch=req.pitch)
	try:
		audio = await speech.synthesize(utterance)
	except RuntimeError as e:
		logger.error("Speech synthesis failed: %s", e)
		raise HTTPException(status_code=500, detail="Speech synthesis failed")
	return Response(content=audio, media_type="audio/wav")
