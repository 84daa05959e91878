import asyncio
import base64
import io
import sys
import threading
import time
import wave
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from ieltsprep.audio.media import SoundDeviceMedia
from ieltsprep.audio.pcm import AudioDecodeError, pcm16_base64_to_wav
from ieltsprep.audio.safe_player import Utterance, Voice
from ieltsprep.audio.speech import Pyttsx3Speech
from ieltsprep.main import app
from ieltsprep.models import ListeningTest
from ieltsprep.routers import audio


class FakeEngine:
	def __init__(self):
		self.props = {}
		self.saved = []

	def getProperty(self, name):
		if name == "voices":
			return [
				type("V", (), {"id": "us", "name": "Alex", "languages": [b"\x05en-us"]})(),
				type("V", (), {"id": "gb", "name": "Microsoft Hazel", "languages": ["en-GB"]})(),
			]
		return self.props.get(name)

	def setProperty(self, name, value):
		self.props[name] = value

	def save_to_file(self, text, path):
		self.saved.append((text, path))
		self._path = path

	def runAndWait(self):
		with open(self._path, "wb") as fh:
			fh.write(b"RIFFfake")

	def stop(self):
		pass


@pytest.fixture
def engine():
	eng = FakeEngine()
	app.dependency_overrides[audio.get_speech] = lambda: Pyttsx3Speech(engine=eng)
	return eng


def host(status):
	app.dependency_overrides[audio.get_http_client] = lambda: httpx.AsyncClient(
		transport=httpx.MockTransport(lambda request: httpx.Response(status))
	)


def add_test(db, audio_url=None, transcript=None):
	test = ListeningTest(title="T1", book_name="Cambridge 18", audio_url=audio_url, transcript=transcript)
	db.add(test)
	db.commit()
	return test.id


def test_pyttsx3_voice_languages():
	voices = Pyttsx3Speech(engine=FakeEngine()).voices()
	assert voices == [Voice("Alex", "en-us", "us"), Voice("Microsoft Hazel", "en-GB", "gb")]


def test_reachable_audio_is_used(client, db_session, engine):
	host(200)
	test_id = add_test(db_session, audio_url="/storage/listening-audios/x/a.mp3", transcript="Hello")
	assert client.get(f"/audio/listening/{test_id}/source").json() == {
		"mode": "audio",
		"audio_url": "/storage/listening-audios/x/a.mp3",
	}


def test_broken_audio_falls_back_to_transcript(client, db_session, engine):
	host(404)
	test_id = add_test(db_session, audio_url="https://cdn.example.com/missing.mp3", transcript="Part one.")
	body = client.get(f"/audio/listening/{test_id}/source", params={"accent": "GB"}).json()
	assert body["mode"] == "fallback"
	assert body["text"] == "Part one."
	assert body["voice"] == {"name": "Microsoft Hazel", "lang": "en-GB", "id": "gb"}
	assert body["rate"] == 0.9


def test_nothing_to_play(client, db_session, engine):
	host(404)
	no_audio = add_test(db_session)
	broken = add_test(db_session, audio_url="https://cdn.example.com/missing.mp3")
	assert client.get(f"/audio/listening/{no_audio}/source").json()["error"] == "No audio or text available"
	assert client.get(f"/audio/listening/{broken}/source").json()["error"] == "Audio failed to load"


def test_speak_returns_synthesized_audio(client, engine):
	res = client.post("/audio/speak", json={"text": "Good morning", "accent": "US"})
	assert res.status_code == 200
	assert res.headers["content-type"] == "audio/wav"
	assert res.content == b"RIFFfake"
	assert engine.props["voice"] == "us"
	assert engine.props["rate"] == pytest.approx(180)


def test_pcm_endpoint(client):
	res = client.post("/audio/pcm", json={"audio_base64": base64.b64encode(b"\x00\x00" * 8).decode(), "sample_rate": 8000})
	assert res.status_code == 200
	with wave.open(io.BytesIO(res.content), "rb") as f:
		assert (f.getframerate(), f.getnframes()) == (8000, 8)
	assert client.post("/audio/pcm", json={"audio_base64": "%%%"}).status_code == 400


async def test_sounddevice_media_loads_wav():
	wav = pcm16_base64_to_wav(base64.b64encode(b"\x00\x00" * 24000).decode())
	client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=wav)))
	media = SoundDeviceMedia(client)
	duration = await media.load("https://cdn.example.com/a.wav", listener=None)
	await client.aclose()
	assert duration == pytest.approx(1.0)
	assert media.current_time == 0.0
	media.seek(0.5)
	assert media.current_time == pytest.approx(0.5)


async def test_sounddevice_media_rejects_non_wav():
	client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"ID3mp3")))
	with pytest.raises(AudioDecodeError):
		await SoundDeviceMedia(client).load("https://cdn.example.com/a.mp3", listener=None)
	await client.aclose()


class BlockingEngine(FakeEngine):
	"""runAndWait holds until stop(), like a long utterance."""

	def __init__(self):
		super().__init__()
		self._stopped = threading.Event()

	def say(self, text):
		self._stopped.clear()

	def runAndWait(self):
		self._stopped.wait(timeout=5)

	def stop(self):
		self._stopped.set()


class RecordingListener:
	def __init__(self):
		self.events = []

	def on_speech_start(self):
		self.events.append("start")

	def on_speech_end(self):
		self.events.append("end")

	def on_speech_error(self, error):
		self.events.append("error")

	def on_media_ended(self):
		self.events.append("media_end")

	def on_media_error(self, error):
		self.events.append(("media_error", str(error)))


def test_resumed_speech_is_not_ended_by_paused_thread():
	speech = Pyttsx3Speech(engine=BlockingEngine())
	listener = RecordingListener()
	speech.speak(Utterance(text="Section one."), listener)
	speech.pause()
	speech.resume()
	time.sleep(0.3)
	try:
		assert "end" not in listener.events
		assert listener.events[-1] == "start"
	finally:
		speech.cancel()


def test_cancelled_speech_reports_nothing_more():
	speech = Pyttsx3Speech(engine=BlockingEngine())
	listener = RecordingListener()
	speech.speak(Utterance(text="Section one."), listener)
	time.sleep(0.05)
	speech.cancel()
	speech._thread.join(timeout=1)
	assert listener.events == ["start"]


async def test_seek_reports_playback_failure(monkeypatch):
	fake_sd = SimpleNamespace(play=MagicMock(), stop=MagicMock())
	monkeypatch.setitem(sys.modules, "sounddevice", fake_sd)
	wav = pcm16_base64_to_wav(base64.b64encode(b"\x00\x00" * 24000).decode())
	client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=wav)))
	listener = RecordingListener()
	media = SoundDeviceMedia(client)
	await media.load("https://cdn.example.com/a.wav", listener=listener)
	await client.aclose()
	await media.play()

	fake_sd.play.side_effect = RuntimeError("device busy")
	media.seek(0.5)
	for _ in range(3):
		await asyncio.sleep(0)
	media.close()

	assert listener.events == [("media_error", "device busy")]
