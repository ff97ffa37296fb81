"""
Credential providers for the monitoring account.

A provider returns the raw secret bytes for a secret id. The stored value
is base64 text; decode_credential turns it into the password string. The
decoded password is never logged or placed into an exception message.
"""

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from table_monitor.config import MonitorConfig
from table_monitor.errors import SecretUnavailable

logger = logging.getLogger(__name__)


class EnvSecretProvider:
    """Reads secrets from environment variables named by the secret id."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def fetch(self, secret_id: str) -> bytes:
        value = self.environ.get(secret_id)
        if not value:
            raise SecretUnavailable(
                "Secret is not set in the environment",
                {"secret_id": secret_id}
            )
        logger.debug(f"Fetched secret {secret_id} from environment")
        return value.encode('utf-8')


class FileSecretProvider:
    """Reads secrets from files in a mounted secrets directory."""

    def __init__(self, secret_dir: Path):
        self.secret_dir = Path(secret_dir)

    def fetch(self, secret_id: str) -> bytes:
        secret_path = self.secret_dir / secret_id
        try:
            value = secret_path.read_bytes()
        except OSError as e:
            raise SecretUnavailable(
                f"Failed to read secret file: {e.strerror}",
                {"secret_id": secret_id}
            ) from e
        if not value.strip():
            raise SecretUnavailable("Secret file is empty", {"secret_id": secret_id})
        logger.debug(f"Fetched secret {secret_id} from {self.secret_dir}")
        return value


def decode_credential(raw: bytes, secret_id: str) -> str:
    """
    Decode a base64 secret into the credential string.

    Args:
        raw: Bytes returned by a provider
        secret_id: Secret identifier, used only for error context

    Returns:
        Decoded credential

    Raises:
        SecretUnavailable: If the value is empty, not base64 or not UTF-8
    """
    try:
        credential = base64.b64decode(raw.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        # Decoder errors can echo secret bytes; not chained.
        raise SecretUnavailable(
            "Secret is not valid base64-encoded UTF-8",
            {"secret_id": secret_id}
        ) from None
    if not credential:
        raise SecretUnavailable("Secret decoded to an empty value", {"secret_id": secret_id})
    return credential


def create_provider(config: MonitorConfig):
    """Return the credential provider selected by the configuration."""
    if config.secret_provider == 'file':
        return FileSecretProvider(config.secret_dir)
    return EnvSecretProvider()
