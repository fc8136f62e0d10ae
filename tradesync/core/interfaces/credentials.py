from abc import ABC, abstractmethod
from typing import List, Optional
from tradesync.core.entities.exchange import ExchangeCredentials


class ICredentialDecryptor(ABC):
    @abstractmethod
    def decrypt(self, blob: str) -> Optional[List[ExchangeCredentials]]:
        """Returns None when the blob cannot be decrypted."""
        pass
