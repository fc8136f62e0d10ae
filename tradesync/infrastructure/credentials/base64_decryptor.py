import base64
import binascii
import json
import logging
from pydantic import ValidationError
from typing import List, Optional

from tradesync.core.entities.exchange import ExchangeCredentials
from tradesync.core.interfaces.credentials import ICredentialDecryptor

logger = logging.getLogger(__name__)


class Base64JsonDecryptor(ICredentialDecryptor):
    """Decodes a base64 JSON list of credential objects (camelCase keys)."""

    def decrypt(self, blob: str) -> Optional[List[ExchangeCredentials]]:
        if not blob:
            return None
        try:
            payload = json.loads(base64.b64decode(blob, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to decode credentials: {e}")
            return None

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            logger.warning("Decoded credentials are not a list")
            return None

        try:
            return [ExchangeCredentials.model_validate(item) for item in payload]
        except ValidationError as e:
            logger.warning(f"Invalid credential entry: {e}")
            return None

    @staticmethod
    def encode(credentials: List[ExchangeCredentials]) -> str:
        data = [c.model_dump(by_alias=True, exclude_none=True) for c in credentials]
        return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")
