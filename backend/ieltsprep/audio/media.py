from __future__ import annotations

import asyncio
import io
import logging
import time
import wave
from typing import Optional

import httpx

from .pcm import AudioDecodeError, wav_duration_seconds
from .safe_player import PlaybackListener

logger = logging.getLogger(__name__)


class SoundDeviceMedia:
	"""MediaBackend that downloads a WAV asset and plays it with ``sounddevice``.

	Position is tracked with a monotonic clock; ending is reported to the
	listener once the remaining duration has elapsed.
	"""

	def __init__(self, client: httpx.AsyncClient, *, device: int | str | None = None) -> None:
		self.client = client
		self.device = device
		self._position = 0.0
		self.duration = 0.0
		self.volume = 1.0
		self._samples = None
		self._rate = 0
		self._channels = 1
		self._started_at: Optional[float] = None
		self._listener: Optional[PlaybackListener] = None
		self._end_task: Optional[asyncio.Task] = None
		self._seek_task: Optional[asyncio.Task] = None

	async def load(self, url: str, listener: PlaybackListener) -> float:
		import numpy as np

		self._listener = listener
		r = await self.client.get(url, follow_redirects=True)
		r.raise_for_status()
		data = r.content
		self.duration = wav_duration_seconds(data)
		try:
			with wave.open(io.BytesIO(data), "rb") as wav_file:
				if wav_file.getsampwidth() != 2:
					raise AudioDecodeError("Only 16-bit WAV assets are supported")
				self._rate = wav_file.getframerate()
				self._channels = wav_file.getnchannels()
				frames = wav_file.readframes(wav_file.getnframes())
		except wave.Error as err:
			raise AudioDecodeError(str(err)) from err
		samples = np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32768.0
		self._samples = samples.reshape(-1, self._channels) if self._channels > 1 else samples
		self._position = 0.0
		return self.duration

	async def play(self) -> None:
		import sounddevice as sd

		if self._samples is None:
			raise RuntimeError("No audio loaded")
		start = self.current_time
		offset = int(start * self._rate)
		sd.play(self._samples[offset:] * self.volume, samplerate=self._rate, device=self.device)
		self._started_at = time.monotonic() - start
		self._cancel_end_task()
		self._end_task = asyncio.create_task(self._wait_for_end(self.duration - start))

	async def _wait_for_end(self, remaining: float) -> None:
		await asyncio.sleep(max(0.0, remaining))
		self._started_at = None
		self._position = 0.0
		if self._listener is not None:
			self._listener.on_media_ended()

	def _cancel_end_task(self) -> None:
		if self._end_task is not None and not self._end_task.done():
			self._end_task.cancel()
		self._end_task = None

	@property
	def current_time(self) -> float:
		if self._started_at is not None:
			return min(self.duration, time.monotonic() - self._started_at)
		return self._position

	def _sync_position(self) -> None:
		self._position = self.current_time

	def pause(self) -> None:
		self._sync_position()
		self._started_at = None
		self._cancel_end_task()
		if self._samples is not None:
			import sounddevice as sd

			sd.stop()

	def seek(self, seconds: float) -> None:
		playing = self._started_at is not None
		if playing:
			self.pause()
		self._position = max(0.0, min(self.duration, seconds))
		if playing:
			self._seek_task = asyncio.ensure_future(self.play())
			self._seek_task.add_done_callback(self._on_seek_done)

	def _on_seek_done(self, task: asyncio.Task) -> None:
		if task.cancelled():
			return
		err = task.exception()
		if err is None:
			return
		logger.error("Playback failed after seek: %s", err)
		if self._listener is not None:
			self._listener.on_media_error(err)

	def set_volume(self, volume: float) -> None:
		# Applied from the next play() call
		self.volume = volume

	def close(self) -> None:
		self.pause()
		self._samples = None
