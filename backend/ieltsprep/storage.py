from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .settings import settings

logger = logging.getLogger(__name__)

LISTENING_BUCKET = "listening-audios"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(RuntimeError):
	pass


def _safe_name(name: str) -> str:
	cleaned = _UNSAFE.sub("_", Path(name or "").name).strip("._")
	if not cleaned:
		raise StorageError("Invalid file name")
	return cleaned


class AudioStorage:
	"""Filesystem bucket for uploaded audio, served as static files."""

	def __init__(self, root: Optional[str] = None, public_base: Optional[str] = None, bucket: str = LISTENING_BUCKET) -> None:
		self.root = Path(root or settings.storage_dir) / bucket
		self.public_base = (public_base or settings.storage_public_base).rstrip("/") + f"/{bucket}"

	def object_path(self, test_id: str, filename: str) -> str:
		return f"{_safe_name(test_id)}/{_safe_name(filename)}"

	def upload(self, test_id: str, filename: str, content: bytes) -> str:
		key = self.object_path(test_id, filename)
		target = self.root / key
		target.parent.mkdir(parents=True, exist_ok=True)
		# upsert
		target.write_bytes(content)
		logger.info("Stored %d bytes at %s", len(content), key)
		return key

	def public_url(self, key: str) -> str:
		return f"{self.public_base}/{key}"

	def key_from_url(self, url: str) -> Optional[str]:
		prefix = self.public_base + "/"
		if url and url.startswith(prefix):
			return url[len(prefix):]
		return None

	def remove(self, key: str) -> bool:
		target = (self.root / key).resolve()
		if self.root.resolve() not in target.parents:
			raise StorageError("Path escapes the storage bucket")
		if not target.exists():
			return False
		target.unlink()
		return True
