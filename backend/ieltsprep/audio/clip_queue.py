"""
Sequential playback of PCM clips (examiner voice, tutor replies).

Each ``play_clips`` call opens a playback session identified by a
monotonically increasing counter. A newer call, or ``stop()``, supersedes
the running session: it stops advancing at the next clip boundary. The clip
already handed to the player is left to finish; only its decoded buffer is
released.
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from typing import Protocol, Sequence

from .pcm import DEFAULT_SAMPLE_RATE, PcmClip, pcm16_base64_to_wav

logger = logging.getLogger(__name__)


class ClipPlayer(Protocol):
	async def play(self, wav_bytes: bytes, volume: float) -> None:
		"""Play one WAV clip and return once it has ended.

		Raises on playback failure.
		"""
		...


class AudioClipQueue:
	def __init__(self, player: ClipPlayer, *, muted: bool = False) -> None:
		self.player = player
		self.muted = muted
		self.is_speaking = False
		self._session = 0

	@property
	def session(self) -> int:
		return self._session

	def stop(self) -> None:
		self._session += 1
		self.is_speaking = False

	async def play_clips(self, clips: Sequence[PcmClip]) -> None:
		if not clips:
			return

		self._session += 1
		session_id = self._session
		self.is_speaking = True

		try:
			for clip in clips:
				if self._session != session_id:
					logger.debug("Playback session %d superseded by %d", session_id, self._session)
					break

				wav = pcm16_base64_to_wav(clip.audio_base64, clip.sample_rate or DEFAULT_SAMPLE_RATE)
				try:
					await self.player.play(wav, 0.0 if self.muted else 1.0)
				finally:
					del wav
		finally:
			# Errors abort the sequence; only the active one resets the indicator
			if self._session == session_id:
				self.is_speaking = False


class SoundDevicePlayer:
	"""Plays clips on the default output device through ``sounddevice``."""

	def __init__(self, device: int | str | None = None) -> None:
		self.device = device

	async def play(self, wav_bytes: bytes, volume: float) -> None:
		await asyncio.to_thread(self._play_blocking, wav_bytes, volume)

	def _play_blocking(self, wav_bytes: bytes, volume: float) -> None:
		import numpy as np
		import sounddevice as sd

		with wave.open(io.BytesIO(wav_bytes), "rb") as wav_file:
			rate = wav_file.getframerate()
			channels = wav_file.getnchannels()
			frames = wav_file.readframes(wav_file.getnframes())
		data = np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32768.0
		if channels > 1:
			data = data.reshape(-1, channels)
		sd.play(data * volume, samplerate=rate, device=self.device, blocking=True)
