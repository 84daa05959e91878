from __future__ import annotations

import base64
import binascii
import io
import wave
from dataclasses import dataclass
from typing import Optional

DEFAULT_SAMPLE_RATE = 24000


class AudioDecodeError(ValueError):
	"""Raised when a clip cannot be turned into playable audio."""


@dataclass
class PcmClip:
	"""One base64 encoded 16-bit little-endian mono PCM clip."""

	key: str
	audio_base64: str
	text: Optional[str] = None
	sample_rate: Optional[int] = None


def pcm16_base64_to_wav(audio_base64: str, sample_rate: int = DEFAULT_SAMPLE_RATE, channels: int = 1) -> bytes:
	try:
		pcm = base64.b64decode(audio_base64, validate=True)
	except (binascii.Error, ValueError) as err:
		raise AudioDecodeError("Clip audio is not valid base64") from err
	if len(pcm) % 2:
		# Odd trailing byte cannot form a 16-bit sample
		pcm = pcm[:-1]
	buffer = io.BytesIO()
	with wave.open(buffer, "wb") as wav_file:
		wav_file.setnchannels(max(1, channels))
		wav_file.setsampwidth(2)
		wav_file.setframerate(max(1, sample_rate))
		wav_file.writeframes(pcm)
	return buffer.getvalue()


def wav_duration_seconds(wav_bytes: bytes) -> float:
	try:
		with wave.open(io.BytesIO(wav_bytes), "rb") as wav_file:
			rate = wav_file.getframerate()
			return wav_file.getnframes() / float(rate) if rate else 0.0
	except (wave.Error, EOFError) as err:
		raise AudioDecodeError(f"Not a WAV file: {err}") from err
