"""
Safe Audio Player
=================

Plays a pre-recorded listening asset and falls back to on-device speech
synthesis when the asset is missing or broken.

States::

	loading -> ready -> playing <-> paused
	loading -> fallback -> playing <-> paused
	any -> error

A failed reachability check (HEAD not 2xx or a network error) or a media
load/playback error switches to synthesized speech when fallback text is
available, and to ``error`` otherwise. Seeking is refused while the
synthesized voice is in use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)


class AudioState(str, Enum):
	LOADING = "loading"
	READY = "ready"
	PLAYING = "playing"
	PAUSED = "paused"
	FALLBACK = "fallback"
	ERROR = "error"


@dataclass
class Voice:
	name: str
	lang: str
	id: Optional[str] = None


@dataclass
class Utterance:
	text: str
	voice: Optional[Voice] = None
	rate: float = 1.0
	pitch: float = 1.0
	volume: float = 1.0


# Accent hint -> locale codes accepted for that accent
ACCENT_LANGS: Dict[str, List[str]] = {
	"US": ["en-US", "en_US"],
	"GB": ["en-GB", "en_GB", "en-UK"],
	"AU": ["en-AU", "en_AU"],
	"IN": ["en-IN", "en_IN"],
}
HIGH_QUALITY_MARKERS = ("Google", "Microsoft", "Natural")

FALLBACK_RATE = 0.9
FALLBACK_PITCH = 1.0


def _is_high_quality(voice: Voice) -> bool:
	return any(marker in voice.name for marker in HIGH_QUALITY_MARKERS)


def _normalise_lang(lang: str) -> str:
	return (lang or "").replace("_", "-").lower()


def select_voice(voices: Sequence[Voice], accent_hint: Optional[str] = None) -> Optional[Voice]:
	"""Pick the fallback voice by a fixed priority list.

	accent match + high quality, accent match, high quality English,
	any English, then the first voice.
	"""
	if not voices:
		return None
	preferred = ACCENT_LANGS.get(accent_hint, ["en-US"]) if accent_hint else ["en-US"]
	preferred = [_normalise_lang(code) for code in preferred]

	def accent_match(v: Voice) -> bool:
		lang = _normalise_lang(v.lang)
		return any(code in lang for code in preferred)

	def english(v: Voice) -> bool:
		return _normalise_lang(v.lang).startswith("en")

	priorities: List[Callable[[Voice], bool]] = [
		lambda v: accent_match(v) and _is_high_quality(v),
		accent_match,
		lambda v: english(v) and _is_high_quality(v),
		english,
	]
	for rule in priorities:
		for voice in voices:
			if rule(voice):
				return voice
	return voices[0]


async def check_reachable(url: str, client: httpx.AsyncClient) -> bool:
	try:
		r = await client.head(url, follow_redirects=True)
	except httpx.HTTPError as err:
		logger.warning("Audio asset %s unreachable: %s", url, err)
		return False
	if not r.is_success:
		logger.warning("Audio asset %s answered HTTP %s", url, r.status_code)
		return False
	return True


class PlaybackListener(Protocol):
	def on_media_ended(self) -> None: ...
	def on_media_error(self, error: Exception) -> None: ...
	def on_speech_start(self) -> None: ...
	def on_speech_end(self) -> None: ...
	def on_speech_error(self, error: Exception) -> None: ...


class MediaBackend(Protocol):
	current_time: float

	async def load(self, url: str, listener: PlaybackListener) -> float:
		"""Load the asset and return its duration in seconds; raise on failure."""
		...

	async def play(self) -> None: ...
	def pause(self) -> None: ...
	def seek(self, seconds: float) -> None: ...
	def set_volume(self, volume: float) -> None: ...
	def close(self) -> None: ...


class SpeechBackend(Protocol):
	def voices(self) -> List[Voice]: ...
	def speak(self, utterance: Utterance, listener: PlaybackListener) -> None: ...
	def pause(self) -> None: ...
	def resume(self) -> None: ...
	def cancel(self) -> None: ...


class SafeAudioPlayer:
	def __init__(
		self,
		audio_url: Optional[str],
		*,
		media: MediaBackend,
		speech: SpeechBackend,
		http_client: httpx.AsyncClient,
		fallback_text: Optional[str] = None,
		accent_hint: Optional[str] = None,
		auto_play: bool = False,
		on_ended: Optional[Callable[[], None]] = None,
		on_error: Optional[Callable[[str], None]] = None,
		on_fallback: Optional[Callable[[], None]] = None,
	) -> None:
		self.audio_url = audio_url
		self.fallback_text = fallback_text
		self.accent_hint = accent_hint
		self.auto_play = auto_play
		self.media = media
		self.speech = speech
		self.http_client = http_client
		self.on_ended = on_ended
		self.on_error = on_error
		self.on_fallback = on_fallback

		self.state = AudioState.LOADING
		self.progress = 0.0
		self.duration = 0.0
		self.volume = 1.0
		self.muted = False
		self.using_fallback = False
		self.utterance: Optional[Utterance] = None
		self.error: Optional[str] = None

	@property
	def effective_volume(self) -> float:
		return 0.0 if self.muted else self.volume

	async def load(self) -> None:
		if not self.audio_url:
			if self.fallback_text:
				self.start_fallback()
			else:
				self._fail("No audio or text available")
			return

		self.state = AudioState.LOADING
		reachable = await check_reachable(self.audio_url, self.http_client)
		if not reachable and self.fallback_text:
			self.start_fallback()
			return

		try:
			self.duration = await self.media.load(self.audio_url, self)
		except Exception as err:
			logger.error("Audio load error for %s: %s", self.audio_url, err)
			self.on_media_error(err)
			return
		if self.using_fallback or self.state == AudioState.ERROR:
			return
		self.media.set_volume(self.effective_volume)
		self.state = AudioState.READY
		if self.auto_play:
			try:
				await self.media.play()
			except Exception as err:
				logger.error("Autoplay failed: %s", err)
				return
			self.state = AudioState.PLAYING

	def start_fallback(self) -> None:
		if not self.fallback_text:
			self._fail("No audio or text available")
			return
		self.using_fallback = True
		logger.warning("Audio file missing. Using system voice for %s", self.audio_url or "<no url>")
		if self.on_fallback:
			self.on_fallback()
		self.media.close()
		self.speech.cancel()

		utterance = Utterance(text=self.fallback_text)
		voice = select_voice(self.speech.voices(), self.accent_hint)
		if voice is not None:
			utterance.voice = voice
			utterance.rate = FALLBACK_RATE
			utterance.pitch = FALLBACK_PITCH
			utterance.volume = self.effective_volume
		self.utterance = utterance
		self.state = AudioState.FALLBACK
		self.speech.speak(utterance, self)

	async def toggle_play(self) -> None:
		if self.state == AudioState.ERROR:
			return
		if self.using_fallback:
			if self.state == AudioState.PLAYING:
				self.speech.pause()
				self.state = AudioState.PAUSED
			else:
				self.speech.resume()
				self.state = AudioState.PLAYING
			return
		if self.state == AudioState.LOADING:
			return
		if self.state == AudioState.PLAYING:
			self.media.pause()
			self.state = AudioState.PAUSED
		else:
			try:
				await self.media.play()
			except Exception as err:
				logger.error("Playback failed: %s", err)
				self.on_media_error(err)
				return
			self.state = AudioState.PLAYING

	def seek(self, percent: float) -> bool:
		# Synthesized speech has no timeline
		if self.using_fallback or not self.duration:
			return False
		percent = max(0.0, min(100.0, percent))
		self.media.seek(percent / 100.0 * self.duration)
		self.progress = percent
		return True

	def set_muted(self, muted: bool) -> None:
		self.muted = muted
		self.media.set_volume(self.effective_volume)
		if self.utterance is not None:
			self.utterance.volume = self.effective_volume

	def refresh_progress(self) -> float:
		if self.state == AudioState.PLAYING and not self.using_fallback and self.duration:
			self.progress = self.media.current_time / self.duration * 100.0
		return self.progress

	def close(self) -> None:
		self.media.pause()
		self.media.close()
		self.speech.cancel()

	# Backend events

	def on_media_ended(self) -> None:
		self.state = AudioState.PAUSED
		self.progress = 0.0
		if self.on_ended:
			self.on_ended()

	def on_media_error(self, error: Exception) -> None:
		if self.using_fallback:
			return
		if self.fallback_text:
			self.start_fallback()
		else:
			self._fail("Audio failed to load")

	def on_speech_start(self) -> None:
		self.state = AudioState.PLAYING

	def on_speech_end(self) -> None:
		self.state = AudioState.PAUSED
		self.progress = 100.0
		if self.on_ended:
			self.on_ended()

	def on_speech_error(self, error: Exception) -> None:
		logger.error("TTS error: %s", error)
		self._fail("Speech synthesis failed")

	def _fail(self, message: str) -> None:
		self.state = AudioState.ERROR
		self.error = message
		if self.on_error:
			self.on_error(message)
