"""AES-GCM helpers for per-user secrets.

Stored values are ``base64(iv || ciphertext)`` with a 12 byte IV; the
ciphertext carries the 16 byte GCM tag at its end. The AES-256 key is the
first 32 bytes of the UTF-8 encoded application encryption key.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12
KEY_LENGTH = 32


class SecretDecryptError(ValueError):
	pass


def _derive_key(encryption_key: str) -> bytes:
	key = encryption_key.encode("utf-8")[:KEY_LENGTH]
	# Shorter keys are only usable at the other AES sizes
	if len(key) not in (16, 24, KEY_LENGTH):
		raise ValueError(f"Encryption key must be 16, 24 or at least {KEY_LENGTH} bytes")
	return key


def encrypt_secret(plaintext: str, encryption_key: str) -> str:
	iv = os.urandom(IV_LENGTH)
	ciphertext = AESGCM(_derive_key(encryption_key)).encrypt(iv, plaintext.encode("utf-8"), None)
	return base64.b64encode(iv + ciphertext).decode("ascii")


def decrypt_secret(encrypted_value: str, encryption_key: str) -> str:
	try:
		combined = base64.b64decode(encrypted_value, validate=True)
	except (binascii.Error, ValueError) as err:
		raise SecretDecryptError("Encrypted value is not valid base64") from err
	if len(combined) <= IV_LENGTH:
		raise SecretDecryptError("Encrypted value is too short")
	iv, data = combined[:IV_LENGTH], combined[IV_LENGTH:]
	try:
		plain = AESGCM(_derive_key(encryption_key)).decrypt(iv, data, None)
	except InvalidTag as err:
		raise SecretDecryptError("Secret could not be decrypted with the configured key") from err
	return plain.decode("utf-8")
