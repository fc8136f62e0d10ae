import asyncio
import logging
from typing import Any, Dict, List, Optional

from hyperliquid.info import Info
from hyperliquid.utils import constants

from tradesync.core.interfaces.trading_client import ITradingClient

logger = logging.getLogger(__name__)

# userFillsByTime caps each response at this many fills
FILLS_PAGE_SIZE = 2000


class HyperliquidInfoClient(ITradingClient):
    """
    ITradingClient backed by the official Hyperliquid SDK's public Info API.
    The SDK is synchronous, so every request runs in a worker thread.

    Output mirrors ccxt's unified shapes so the rest of the pipeline does not
    care which backend produced it.
    """

    id = "hyperliquid"

    def __init__(self, wallet_address: str, use_testnet: bool = False, info: Any = None):
        self.user = wallet_address
        if info is None:
            api_url = constants.TESTNET_API_URL if use_testnet else constants.MAINNET_API_URL
            # REST only; no websocket threads
            info = Info(base_url=api_url, skip_ws=True)
            logger.info(f"HyperliquidInfoClient initialized. URL: {api_url}")
        self.info = info
        self._coin_symbols: Dict[str, str] = {}

    async def _post(self, payload: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self.info.post, "/info", payload)

    @property
    def symbols(self) -> List[str]:
        return sorted(set(self._coin_symbols.values()))

    @property
    def rate_limit_ms(self) -> int:
        return 100

    async def load_markets(self) -> Dict[str, Any]:
        meta = await self._post({"type": "meta"})
        markets: Dict[str, Any] = {}
        for asset in meta.get("universe", []):
            coin = asset.get("name")
            if not coin:
                continue
            symbol = f"{coin}/USDC:USDC"
            self._coin_symbols[coin] = symbol
            markets[symbol] = {"id": coin, "symbol": symbol, "type": "swap", "info": asset}

        spot_meta = await self._post({"type": "spotMeta"})
        tokens = {t.get("index"): t.get("name") for t in spot_meta.get("tokens", [])}
        for pair in spot_meta.get("universe", []):
            base_idx, quote_idx = (pair.get("tokens") or [None, None])[:2]
            if base_idx not in tokens or quote_idx not in tokens:
                continue
            symbol = f"{tokens[base_idx]}/{tokens[quote_idx]}"
            self._coin_symbols[pair.get("name")] = symbol
            markets[symbol] = {"id": pair.get("name"), "symbol": symbol, "type": "spot", "info": pair}

        return markets

    def _symbol_for(self, coin: str) -> str:
        if coin in self._coin_symbols:
            return self._coin_symbols[coin]
        if "/" in coin or coin.startswith("@"):
            return coin  # spot pair not in the loaded meta
        return f"{coin}/USDC:USDC"

    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetches the account's fills with 'userFillsByTime', following pages
        until a short page comes back. Errors propagate to the caller.

        A page can end partway through fills sharing one millisecond, so the
        next page starts at the last timestamp seen rather than after it;
        repeats are dropped by (tid, hash).
        """
        if not self._coin_symbols:
            await self.load_markets()

        start_time = since if since is not None else 0
        fills: Dict[Any, Dict[str, Any]] = {}
        while True:
            page = await self._post({"type": "userFillsByTime", "user": self.user, "startTime": start_time})
            if not page:
                break
            added = 0
            for fill in page:
                key = (fill.get("tid"), fill.get("hash"))
                if key not in fills:
                    added += 1
                fills[key] = fill
            if len(page) < FILLS_PAGE_SIZE:
                break
            if added == 0:
                logger.warning(f"Fill page at {start_time} held no new fills, stopping pagination")
                break
            next_start = max(int(f.get("time", 0)) for f in page)
            if next_start <= start_time:
                # the whole page sits in one millisecond
                next_start = start_time + 1
            start_time = next_start

        trades = self._map_fills_to_trades(list(fills.values()))
        if symbol is not None:
            trades = [t for t in trades if t["symbol"] == symbol]
        if limit is not None:
            trades = trades[:limit]
        return trades

    def _map_fills_to_trades(self, fills: List[dict]) -> List[Dict[str, Any]]:
        trades = []
        for fill in fills:
            try:
                price = float(fill["px"])
                amount = float(fill["sz"])
                trades.append({
                    "id": str(fill["tid"]),
                    "order": str(fill["oid"]) if fill.get("oid") is not None else None,
                    "symbol": self._symbol_for(fill["coin"]),
                    # 'B' is the bid side
                    "side": "buy" if fill.get("side") == "B" else "sell",
                    "price": price,
                    "amount": amount,
                    "cost": price * amount,
                    "fee": {"cost": float(fill.get("fee", 0)), "currency": fill.get("feeToken")},
                    "timestamp": int(fill["time"]),
                    "type": None,
                    "info": fill,
                })
            except (KeyError, TypeError, ValueError) as map_err:
                logger.warning(f"Skipping malformed fill: {map_err}")
                continue

        trades.sort(key=lambda t: t["timestamp"])
        return trades

    async def fetch_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        raw_orders = await self._post({"type": "historicalOrders", "user": self.user})
        orders = []
        for entry in raw_orders:
            order = entry.get("order", {})
            timestamp = int(order.get("timestamp", 0))
            if since is not None and timestamp < since:
                continue
            mapped = {
                "id": str(order.get("oid")),
                "symbol": self._symbol_for(order.get("coin", "")),
                "side": "buy" if order.get("side") == "B" else "sell",
                "price": float(order.get("limitPx", 0)),
                "amount": float(order.get("origSz", 0)),
                "status": entry.get("status"),
                "timestamp": timestamp,
                "info": entry,
            }
            if symbol is None or mapped["symbol"] == symbol:
                orders.append(mapped)
        orders.sort(key=lambda o: o["timestamp"])
        return orders[:limit] if limit is not None else orders

    async def fetch_positions(self, symbols: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        state = await self._post({"type": "clearinghouseState", "user": self.user})
        positions = []
        for asset_pos in state.get("assetPositions", []):
            pos = asset_pos.get("position", {})
            size = float(pos.get("szi", 0))
            symbol = self._symbol_for(pos.get("coin", ""))
            if symbols and symbol not in symbols:
                continue
            positions.append({
                "symbol": symbol,
                "contracts": abs(size),
                "side": "long" if size > 0 else "short",
                "entryPrice": float(pos.get("entryPx", 0)),
                "unrealizedPnl": float(pos.get("unrealizedPnl", 0)),
                "liquidationPrice": float(pos["liquidationPx"]) if pos.get("liquidationPx") else None,
                "leverage": float(pos.get("leverage", {}).get("value", 1)),
                "info": asset_pos,
            })
        return positions

    async def fetch_balance(self) -> Dict[str, Any]:
        state = await self._post({"type": "clearinghouseState", "user": self.user})
        margin_summary = state.get("marginSummary", {})
        account_value = float(margin_summary.get("accountValue", 0))
        withdrawable = float(state.get("withdrawable", 0))
        return {
            "info": state,
            "total": {"USDC": account_value},
            "free": {"USDC": withdrawable},
            "used": {"USDC": account_value - withdrawable},
        }

    async def close(self) -> None:
        # skip_ws=True leaves nothing open
        return None
