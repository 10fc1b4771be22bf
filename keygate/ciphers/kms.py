"""AWS KMS implementation of SecretCipher."""

from __future__ import annotations

import base64
import binascii
from typing import Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from keygate.core.secret_cipher import SecretCipher
from keygate.exceptions import SecretCipherError

log = structlog.get_logger()


class KmsSecretCipher(SecretCipher):
    """Encrypts tenant secrets with a KMS key.

    Ciphertext is stored as base64 text so it fits a string attribute.

    Args:
        key_id: KMS key id, ARN or alias
        region: AWS region of the key
        endpoint_url: Optional endpoint URL for LocalStack/testing
    """

    def __init__(
        self,
        key_id: str,
        region: str,
        endpoint_url: Optional[str] = None,
    ):
        self._key_id = key_id
        self._kms = boto3.client("kms", region_name=region, endpoint_url=endpoint_url)

    def encrypt(self, plaintext: str) -> str:
        try:
            resp = self._kms.encrypt(KeyId=self._key_id, Plaintext=plaintext.encode("utf-8"))
        except (ClientError, BotoCoreError) as e:
            log.error("secret_encrypt_failed", key_id=self._key_id, error=str(e))
            raise SecretCipherError(f"Failed to encrypt secret: {e}") from e
        return base64.b64encode(resp["CiphertextBlob"]).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            blob = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SecretCipherError("Stored secret is not valid ciphertext") from e

        try:
            resp = self._kms.decrypt(CiphertextBlob=blob, KeyId=self._key_id)
        except (ClientError, BotoCoreError) as e:
            log.error("secret_decrypt_failed", key_id=self._key_id, error=str(e))
            raise SecretCipherError(f"Failed to decrypt secret: {e}") from e
        return resp["Plaintext"].decode("utf-8")
