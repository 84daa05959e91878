import base64
import io
import struct
import wave

import pytest

from ieltsprep.audio.pcm import AudioDecodeError, pcm16_base64_to_wav, wav_duration_seconds


def _pcm(samples):
	return base64.b64encode(struct.pack(f"<{len(samples)}h", *samples)).decode()


def test_wraps_pcm_in_wav_header():
	wav = pcm16_base64_to_wav(_pcm([0, 1000, -1000, 32767]))
	assert wav[:4] == b"RIFF" and wav[8:12] == b"WAVE"
	with wave.open(io.BytesIO(wav), "rb") as f:
		assert f.getframerate() == 24000
		assert f.getnchannels() == 1
		assert f.getsampwidth() == 2
		frames = f.readframes(f.getnframes())
	assert struct.unpack("<4h", frames) == (0, 1000, -1000, 32767)


def test_duration_follows_sample_rate():
	wav = pcm16_base64_to_wav(_pcm([0] * 16000), sample_rate=16000)
	assert wav_duration_seconds(wav) == pytest.approx(1.0)


def test_odd_trailing_byte_is_dropped():
	data = base64.b64encode(b"\x01\x00\x02").decode()
	wav = pcm16_base64_to_wav(data, sample_rate=8000)
	with wave.open(io.BytesIO(wav), "rb") as f:
		assert f.getnframes() == 1


def test_invalid_base64():
	with pytest.raises(AudioDecodeError):
		pcm16_base64_to_wav("@@not-base64@@")


def test_duration_of_non_wav():
	with pytest.raises(AudioDecodeError):
		wav_duration_seconds(b"definitely not a wav file")
