"""Secret cipher implementations for tenant client secrets."""

from keygate.ciphers.kms import KmsSecretCipher
from keygate.ciphers.plaintext import PlaintextCipher

__all__ = [
    "KmsSecretCipher",
    "PlaintextCipher",
]
