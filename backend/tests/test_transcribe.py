import base64
import io
import json

import httpx
import pytest
from fastapi import UploadFile

from ieltsprep.gemini_client import GeminiClient
from ieltsprep.main import app
from ieltsprep.routers import transcribe

MODEL_OUTPUT = {
	"full_transcript": "Part 1. Good morning.",
	"segments": [
		{"text": "Good morning.", "start_time": 4.0, "end_time": 6.5},
		{"text": "Part 1.", "start_time": 0.5, "end_time": 1.5},
		{"text": "  ", "start_time": 2, "end_time": 3},
	],
	"parts": [
		{"part_number": 2, "start_time": 300, "end_time": 600, "question_groups": []},
		{"part_number": 1, "start_time": 0, "end_time": 300, "question_groups": [{"start_question": 1, "end_question": 10}]},
	],
	"total_duration": 600,
}


@pytest.fixture
def gemini_calls():
	calls = []

	def handler(request):
		calls.append(json.loads(request.content))
		return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": json.dumps(MODEL_OUTPUT)}]}}]})

	app.dependency_overrides[transcribe.get_gemini_factory] = lambda: (
		lambda: GeminiClient("server-key", models=["gemini-2.5-flash"], transport=httpx.MockTransport(handler))
	)
	return calls


def use_audio_host(handler):
	app.dependency_overrides[transcribe.get_http_client] = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_transcribes_uploaded_file(client, admin_headers, gemini_calls):
	res = client.post(
		"/functions/transcribe-listening-audio",
		files={"file": ("test1.mp3", b"ID3audio", "audio/mpeg")},
		headers=admin_headers,
	)
	assert res.status_code == 200
	body = res.json()
	assert [s["text"] for s in body["segments"]] == ["Part 1.", "Good morning."]
	assert [p["part_number"] for p in body["parts"]] == [1, 2]
	assert body["total_duration"] == 600

	inline = gemini_calls[0]["contents"][0]["parts"][0]["inline_data"]
	assert inline["mime_type"] == "audio/mpeg"
	assert base64.b64decode(inline["data"]) == b"ID3audio"
	assert gemini_calls[0]["generationConfig"]["responseMimeType"] == "application/json"


def test_transcribes_audio_url(client, admin_headers, gemini_calls):
	use_audio_host(lambda request: httpx.Response(200, content=b"RIFF....", headers={"content-type": "audio/wav"}))
	res = client.post("/functions/transcribe-listening-audio", data={"audioUrl": "https://cdn.example.com/t1.wav"}, headers=admin_headers)
	assert res.status_code == 200
	assert gemini_calls[0]["contents"][0]["parts"][0]["inline_data"]["mime_type"] == "audio/wav"


def test_rejects_non_audio(client, admin_headers, gemini_calls):
	res = client.post(
		"/functions/transcribe-listening-audio",
		files={"file": ("a.txt", b"hello", "text/plain")},
		headers=admin_headers,
	)
	assert res.status_code == 400
	assert gemini_calls == []


def test_unreachable_url(client, admin_headers, gemini_calls):
	use_audio_host(lambda request: httpx.Response(404))
	res = client.post("/functions/transcribe-listening-audio", data={"audioUrl": "https://cdn.example.com/x.mp3"}, headers=admin_headers)
	assert res.status_code == 400


def test_size_limit(client, admin_headers, gemini_calls, monkeypatch):
	from ieltsprep.settings import settings

	monkeypatch.setattr(settings, "max_transcription_mb", 0)
	res = client.post(
		"/functions/transcribe-listening-audio",
		files={"file": ("a.mp3", b"ID3", "audio/mpeg")},
		headers=admin_headers,
	)
	assert res.status_code == 413


@pytest.mark.parametrize(
	"response",
	[
		lambda request: httpx.Response(200, content=b"ID3" * 100, headers={"content-type": "audio/mpeg"}),
		lambda request: httpx.Response(200, headers={"content-type": "audio/mpeg"}, stream=httpx.ByteStream(b"ID3" * 100)),
	],
	ids=["content-length", "streamed"],
)
def test_size_limit_for_url(client, admin_headers, gemini_calls, monkeypatch, response):
	from ieltsprep.settings import settings

	monkeypatch.setattr(settings, "max_transcription_mb", 0)
	use_audio_host(response)
	res = client.post("/functions/transcribe-listening-audio", data={"audioUrl": "https://cdn.example.com/big.mp3"}, headers=admin_headers)
	assert res.status_code == 413
	assert gemini_calls == []


async def test_upload_without_declared_size_is_read_in_bounds(monkeypatch):
	monkeypatch.setattr(transcribe, "READ_CHUNK_BYTES", 4)
	assert await transcribe._read_upload(UploadFile(io.BytesIO(b"ID3audio")), 100) == b"ID3audio"
	with pytest.raises(transcribe.AudioTooLarge):
		await transcribe._read_upload(UploadFile(io.BytesIO(b"ID3audio" * 10)), 10)


def test_needs_a_source(client, admin_headers):
	assert client.post("/functions/transcribe-listening-audio", data={}, headers=admin_headers).status_code == 400


def test_normalize_fills_gaps():
	result = transcribe.normalize_transcription({"segments": [{"text": "Hi", "start_time": 1, "end_time": "bad"}]})
	assert result == {
		"full_transcript": "Hi",
		"segments": [{"text": "Hi", "start_time": 1.0, "end_time": 1.0}],
		"parts": [],
		"total_duration": 1.0,
	}
