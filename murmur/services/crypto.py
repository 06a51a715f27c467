from __future__ import annotations
import base64
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox
from nacl.utils import random as nacl_random

class ContentCrypto:
    """Encrypts post bodies at rest so a database dump does not expose them."""

    def __init__(self, key_b64: str | None) -> None:
        if not key_b64:
            raise ValueError("CONTENT_ENC_KEY_B64 is required when DATABASE_URL is set")
        key = base64.b64decode(key_b64)
        if len(key) != SecretBox.KEY_SIZE:
            raise ValueError("CONTENT_ENC_KEY_B64 must decode to 32 bytes")
        self.box = SecretBox(key)

    def encrypt_text(self, text: str) -> tuple[bytes, bytes]:
        nonce = nacl_random(SecretBox.NONCE_SIZE)
        ct = self.box.encrypt(text.encode("utf-8"), nonce).ciphertext
        return ct, nonce

    def decrypt_text(self, ciphertext: bytes, nonce: bytes) -> str:
        try:
            pt = self.box.decrypt(ciphertext, nonce)
        except CryptoError as e:
            raise ValueError("stored content failed authentication") from e
        return pt.decode("utf-8")
