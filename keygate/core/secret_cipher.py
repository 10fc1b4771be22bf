"""Abstract interface for field-level encryption of stored secrets."""

from __future__ import annotations

from abc import ABC, abstractmethod


class SecretCipher(ABC):
    """Encrypts tenant secrets at rest.

    Implementations:
        - KmsSecretCipher: AWS KMS
        - PlaintextCipher: No encryption, for local development
    """

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret for storage.

        Raises:
            SecretCipherError: If encryption fails
        """

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored secret.

        Raises:
            SecretCipherError: If decryption fails
        """
