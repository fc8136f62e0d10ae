from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ITradingClient(ABC):
    """
    Minimal surface of a ccxt-style exchange client.
    Trades, orders and positions are returned in ccxt's unified dict shape.
    """

    id: str

    @property
    @abstractmethod
    def symbols(self) -> List[str]:
        pass

    @property
    @abstractmethod
    def rate_limit_ms(self) -> int:
        pass

    @abstractmethod
    async def load_markets(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def fetch_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def fetch_positions(self, symbols: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def fetch_balance(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
