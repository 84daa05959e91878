"""
On-device speech synthesis through pyttsx3 (SAPI5, NSSpeechSynthesizer or
eSpeak, depending on the platform).

Requires the `pyttsx3` package: pip install pyttsx3
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
from typing import Any, List, Optional

from .safe_player import PlaybackListener, Utterance, Voice

logger = logging.getLogger(__name__)

# pyttsx3 speaks in words per minute; utterance rates are multipliers of this
BASE_WORDS_PER_MINUTE = 200


def _voice_lang(raw: Any) -> str:
	languages = getattr(raw, "languages", None) or []
	for lang in languages:
		if isinstance(lang, bytes):
			# NSSpeech/eSpeak report b"\x05en-us" style entries
			lang = lang.decode("utf-8", errors="ignore").lstrip("\x00\x01\x02\x03\x04\x05")
		if lang:
			return str(lang)
	return ""


class Pyttsx3Speech:
	"""SpeechBackend on top of a single pyttsx3 engine.

	pyttsx3 cannot pause mid-utterance, so ``pause`` stops the engine and
	``resume`` speaks the utterance again from the start.
	"""

	def __init__(self, engine: Any = None) -> None:
		self._engine = engine
		self._lock = threading.Lock()
		self._current: Optional[Utterance] = None
		self._listener: Optional[PlaybackListener] = None
		self._thread: Optional[threading.Thread] = None
		# Bumped by speak/pause/cancel; a thread only reports while its token is current
		self._generation = 0

	@property
	def engine(self) -> Any:
		if self._engine is None:
			import pyttsx3

			self._engine = pyttsx3.init()
		return self._engine

	def voices(self) -> List[Voice]:
		try:
			raw_voices = self.engine.getProperty("voices") or []
		except Exception as err:
			logger.warning("Could not list system voices: %s", err)
			return []
		return [Voice(name=str(v.name), lang=_voice_lang(v), id=str(v.id)) for v in raw_voices]

	def _configure(self, utterance: Utterance) -> None:
		engine = self.engine
		if utterance.voice is not None and utterance.voice.id:
			engine.setProperty("voice", utterance.voice.id)
		engine.setProperty("rate", int(BASE_WORDS_PER_MINUTE * utterance.rate))
		engine.setProperty("volume", max(0.0, min(1.0, utterance.volume)))

	def speak(self, utterance: Utterance, listener: PlaybackListener) -> None:
		self.cancel()
		self._current = utterance
		self._listener = listener
		token = self._generation
		try:
			loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
		except RuntimeError:
			loop = None
		self._thread = threading.Thread(target=self._run, args=(utterance, listener, loop, token), daemon=True)
		self._thread.start()

	def _run(
		self,
		utterance: Utterance,
		listener: PlaybackListener,
		loop: Optional[asyncio.AbstractEventLoop],
		token: int,
	) -> None:
		def emit(callback, *args) -> None:
			if loop is not None and not loop.is_closed():
				loop.call_soon_threadsafe(callback, *args)
			else:
				callback(*args)

		with self._lock:
			if token != self._generation:
				return
			try:
				self._configure(utterance)
				emit(listener.on_speech_start)
				self.engine.say(utterance.text)
				self.engine.runAndWait()
			except Exception as err:
				if token == self._generation:
					emit(listener.on_speech_error, err)
				return
		if token == self._generation:
			emit(listener.on_speech_end)

	def pause(self) -> None:
		self._generation += 1
		self._stop_engine()

	def resume(self) -> None:
		if self._current is not None and self._listener is not None:
			self.speak(self._current, self._listener)

	def cancel(self) -> None:
		self._generation += 1
		self._stop_engine()

	def _stop_engine(self) -> None:
		if self._engine is None:
			return
		try:
			self._engine.stop()
		except Exception as err:
			logger.debug("pyttsx3 stop failed: %s", err)

	def synthesize_to_file(self, utterance: Utterance, path: str) -> None:
		with self._lock:
			self._configure(utterance)
			self.engine.save_to_file(utterance.text, path)
			self.engine.runAndWait()

	async def synthesize(self, utterance: Utterance) -> bytes:
		"""Render the utterance to audio bytes (WAV on most platforms)."""
		fd, path = tempfile.mkstemp(suffix=".wav")
		os.close(fd)
		try:
			await asyncio.to_thread(self.synthesize_to_file, utterance, path)
			with open(path, "rb") as fh:
				data = fh.read()
		finally:
			try:
				os.remove(path)
			except OSError:
				pass
		if not data:
			raise RuntimeError("Speech synthesis produced no audio")
		return data
