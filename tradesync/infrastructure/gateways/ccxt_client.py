import logging
from typing import Any, Dict, List, Optional

import ccxt.async_support as ccxt_async

from tradesync.core.entities.exchange import ExchangeCredentials
from tradesync.core.errors import ExchangeInitError
from tradesync.core.interfaces.trading_client import ITradingClient

logger = logging.getLogger(__name__)


class CcxtTradingClient(ITradingClient):
    """
    ITradingClient over a ccxt async exchange instance.

    `fetch_config` holds the exchange-specific params from the exchange table:
    `defaultType` is applied as a ccxt option, the whole dict is forwarded as
    params to balance and position calls.
    """

    def __init__(
        self,
        exchange_id: str,
        credentials: ExchangeCredentials,
        ccxt_id: Optional[str] = None,
        fetch_config: Optional[Dict[str, Any]] = None,
        api: Any = None
    ):
        self.id = exchange_id
        self.fetch_config = dict(fetch_config or {})

        if api is None:
            ccxt_id = ccxt_id or exchange_id
            exchange_class = getattr(ccxt_async, ccxt_id, None)
            if exchange_class is None:
                raise ExchangeInitError(f"Exchange {ccxt_id} is not supported by ccxt", exchange=exchange_id)

            options: Dict[str, Any] = {
                "apiKey": credentials.api_key,
                "secret": credentials.api_secret,
                "enableRateLimit": True,
            }
            if credentials.wallet_address:
                options["walletAddress"] = credentials.wallet_address
            if credentials.password:
                options["password"] = credentials.password
            if "defaultType" in self.fetch_config:
                options["options"] = {"defaultType": self.fetch_config["defaultType"]}

            try:
                api = exchange_class(options)
            except Exception as e:
                raise ExchangeInitError(f"Failed to create ccxt client for {exchange_id}: {e}", exchange=exchange_id) from e

        self.api = api
        logger.info(f"CcxtTradingClient initialized for {exchange_id}")

    @property
    def symbols(self) -> List[str]:
        return list(self.api.symbols or [])

    @property
    def rate_limit_ms(self) -> int:
        return int(self.api.rateLimit or 0)

    async def load_markets(self) -> Dict[str, Any]:
        return await self.api.load_markets()

    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self.api.fetch_my_trades(symbol, since, limit)

    async def fetch_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        return await self.api.fetch_orders(symbol, since, limit)

    async def fetch_positions(self, symbols: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        return await self.api.fetch_positions(symbols, self.fetch_config)

    async def fetch_balance(self) -> Dict[str, Any]:
        return await self.api.fetch_balance(self.fetch_config)

    async def close(self) -> None:
        await self.api.close()
