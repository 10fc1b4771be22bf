"""Pass-through cipher for local development."""

from __future__ import annotations

from keygate.core.secret_cipher import SecretCipher


class PlaintextCipher(SecretCipher):
    """Stores secrets as-is. Never use with a shared registry."""

    def encrypt(self, plaintext: str) -> str:
        return plaintext

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext
