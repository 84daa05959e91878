import base64
import os

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ieltsprep.crypto import IV_LENGTH, SecretDecryptError, decrypt_secret, encrypt_secret

KEY = "0123456789abcdef0123456789abcdef-tail"


def test_decrypts_value_produced_by_webcrypto_layout():
	# iv || ciphertext+tag, keyed with the first 32 bytes of the app key
	iv = os.urandom(IV_LENGTH)
	ciphertext = AESGCM(KEY.encode()[:32]).encrypt(iv, b"AIza-test-key", None)
	stored = base64.b64encode(iv + ciphertext).decode()
	assert decrypt_secret(stored, KEY) == "AIza-test-key"


def test_encrypt_uses_fresh_iv():
	a = encrypt_secret("same", KEY)
	b = encrypt_secret("same", KEY)
	assert a != b
	assert decrypt_secret(a, KEY) == decrypt_secret(b, KEY) == "same"


def test_wrong_key_is_rejected():
	stored = encrypt_secret("secret", KEY)
	with pytest.raises(SecretDecryptError):
		decrypt_secret(stored, "fedcba9876543210fedcba9876543210")


def test_tampered_ciphertext_is_rejected():
	raw = bytearray(base64.b64decode(encrypt_secret("secret", KEY)))
	raw[-1] ^= 0x01
	with pytest.raises(SecretDecryptError):
		decrypt_secret(base64.b64encode(bytes(raw)).decode(), KEY)


@pytest.mark.parametrize("value", ["not base64!!", base64.b64encode(b"short").decode()])
def test_malformed_values(value):
	with pytest.raises(SecretDecryptError):
		decrypt_secret(value, KEY)


def test_unusable_key_length():
	with pytest.raises(ValueError):
		encrypt_secret("x", "too-short")
