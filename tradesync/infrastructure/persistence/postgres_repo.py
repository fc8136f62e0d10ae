import asyncio
import logging
import time
import psycopg2
from psycopg2.extras import execute_values
from typing import Dict, List, Optional, Set, Tuple

from tradesync.core.entities.order import Order
from tradesync.core.entities.position import Position
from tradesync.core.entities.trade import Trade
from tradesync.core.errors import InvalidNumericValue
from tradesync.core.interfaces.repositories import IOrderRepository, IPositionRepository, ISyncStateStore
from tradesync.infrastructure.persistence.coercion import (
    to_decimal,
    to_epoch_ms,
    to_float,
    to_optional_decimal,
)
from tradesync.infrastructure.persistence.memory_repo import normalize_symbol

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS pairs (
        id SERIAL PRIMARY KEY,
        symbol VARCHAR UNIQUE NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS positions (
        id SERIAL PRIMARY KEY,
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        pair_id INTEGER REFERENCES pairs(id),
        symbol VARCHAR NOT NULL,
        direction VARCHAR NOT NULL,
        status VARCHAR NOT NULL,
        shape VARCHAR NOT NULL,
        quantity DECIMAL,
        buy_cost DECIMAL,
        sell_cost DECIMAL,
        buy_volume DECIMAL,
        sell_volume DECIMAL,
        profit_loss DECIMAL,
        total_fee DECIMAL,
        open_time BIGINT,
        close_time BIGINT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id SERIAL PRIMARY KEY,
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        order_id VARCHAR NOT NULL,
        pair_id INTEGER REFERENCES pairs(id),
        symbol VARCHAR NOT NULL,
        side VARCHAR NOT NULL,
        time_ms BIGINT,
        amount DECIMAL,
        average_price DECIMAL,
        total_cost DECIMAL,
        fee DECIMAL,
        highest_price DECIMAL,
        lowest_price DECIMAL,
        realized_pnl DECIMAL,
        direction VARCHAR,
        position_id INTEGER REFERENCES positions(id) ON DELETE SET NULL,
        UNIQUE ("user", exchange, order_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS trades (
        trade_id VARCHAR NOT NULL,
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        order_id VARCHAR NOT NULL,
        symbol VARCHAR NOT NULL,
        side VARCHAR NOT NULL,
        price DECIMAL,
        amount DECIMAL,
        cost DECIMAL,
        fee DECIMAL,
        time_ms BIGINT,
        order_type VARCHAR,
        realized_pnl DECIMAL,
        direction VARCHAR,
        hash VARCHAR,
        UNIQUE ("user", exchange, trade_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_pairs (
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        symbol VARCHAR NOT NULL,
        PRIMARY KEY ("user", exchange, symbol)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        last_sync_ms BIGINT NOT NULL,
        PRIMARY KEY ("user", exchange)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS trade_cursors (
        "user" VARCHAR NOT NULL,
        exchange VARCHAR NOT NULL,
        symbol VARCHAR NOT NULL,
        last_trade_ms BIGINT NOT NULL,
        PRIMARY KEY ("user", exchange, symbol)
    );
    """,
]


class PostgresRepo:
    """Connection handling and schema shared by the Postgres repositories."""

    def __init__(self, dsn: str, init_schema: bool = True):
        self.dsn = dsn
        if init_schema:
            self._init_db()

    def _connect(self):
        return psycopg2.connect(self.dsn)

    def _init_db(self):
        conn = self._connect()
        cur = conn.cursor()
        for statement in SCHEMA:
            cur.execute(statement)
        conn.commit()
        cur.close()
        conn.close()

    @staticmethod
    def _ensure_pair(cur, symbol: str) -> int:
        normalized = normalize_symbol(symbol)
        cur.execute(
            """
            INSERT INTO pairs (symbol) VALUES (%s)
            ON CONFLICT (symbol) DO UPDATE SET symbol = EXCLUDED.symbol
            RETURNING id
            """,
            (normalized,),
        )
        return cur.fetchone()[0]


class PostgresOrderRepository(PostgresRepo, IOrderRepository):
    async def save_all(self, orders: List[Order], user_id: str) -> List[Order]:
        return await asyncio.to_thread(self._save_all, orders, user_id)

    def _save_all(self, orders: List[Order], user_id: str) -> List[Order]:
        conn = self._connect()
        cur = conn.cursor()
        saved = []
        try:
            for order in orders:
                try:
                    row = (
                        user_id,
                        order.exchange,
                        order.order_id,
                        order.pair,
                        order.side,
                        to_epoch_ms(order.time, "time"),
                        to_decimal(order.amount, "amount"),
                        to_decimal(order.average_price, "average_price"),
                        to_decimal(order.total_cost, "total_cost"),
                        to_decimal(order.fee, "fee"),
                        to_decimal(order.highest_price, "highest_price"),
                        to_decimal(order.lowest_price, "lowest_price"),
                        to_decimal(order.realized_pnl, "realized_pnl"),
                        order.direction,
                    )
                    trade_rows = [self._trade_row(t, user_id) for t in order.trades]
                except InvalidNumericValue as e:
                    logger.error(f"Skipping order {order.order_id}: {e}")
                    continue

                cur.execute("SAVEPOINT save_order")
                try:
                    pair_id = self._ensure_pair(cur, order.pair)
                    cur.execute(
                        """
                        INSERT INTO orders ("user", exchange, order_id, symbol, side, time_ms, amount,
                            average_price, total_cost, fee, highest_price, lowest_price, realized_pnl,
                            direction, pair_id)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT ("user", exchange, order_id) DO UPDATE SET
                            time_ms = EXCLUDED.time_ms,
                            amount = EXCLUDED.amount,
                            average_price = EXCLUDED.average_price,
                            total_cost = EXCLUDED.total_cost,
                            fee = EXCLUDED.fee,
                            highest_price = EXCLUDED.highest_price,
                            lowest_price = EXCLUDED.lowest_price,
                            realized_pnl = EXCLUDED.realized_pnl,
                            direction = EXCLUDED.direction
                        RETURNING id, position_id
                        """,
                        row + (pair_id,),
                    )
                    order_pk, position_id = cur.fetchone()
                    if trade_rows:
                        execute_values(
                            cur,
                            """
                            INSERT INTO trades (trade_id, "user", exchange, order_id, symbol, side, price,
                                amount, cost, fee, time_ms, order_type, realized_pnl, direction, hash)
                            VALUES %s
                            ON CONFLICT ("user", exchange, trade_id) DO NOTHING
                            """,
                            trade_rows,
                        )
                    cur.execute("RELEASE SAVEPOINT save_order")
                except psycopg2.Error as e:
                    cur.execute("ROLLBACK TO SAVEPOINT save_order")
                    logger.error(f"Failed to save order {order.order_id}: {e}")
                    continue

                order.id = order_pk
                if order.position_id is None:
                    order.position_id = position_id
                saved.append(order)
            conn.commit()
        finally:
            cur.close()
            conn.close()
        return saved

    @staticmethod
    def _trade_row(trade: Trade, user_id: str) -> tuple:
        return (
            trade.trade_id,
            user_id,
            trade.exchange,
            trade.order_id,
            trade.pair,
            trade.side,
            to_decimal(trade.price, "price"),
            to_decimal(trade.amount, "amount"),
            to_decimal(trade.cost, "cost"),
            to_decimal(trade.fee, "fee"),
            to_epoch_ms(trade.timestamp, "timestamp"),
            trade.order_type,
            to_optional_decimal(trade.realized_pnl, "realized_pnl"),
            trade.direction,
            trade.transaction_id,
        )

    async def find_unlinked(self, user_id: str) -> List[Order]:
        return await asyncio.to_thread(self._find_unlinked, user_id)

    def _find_unlinked(self, user_id: str) -> List[Order]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, exchange, order_id, symbol, side, time_ms, amount, average_price, total_cost,
                fee, highest_price, lowest_price, realized_pnl, direction
            FROM orders
            WHERE "user" = %s AND position_id IS NULL
            ORDER BY time_ms
            """,
            (user_id,),
        )
        orders: Dict[tuple, Order] = {}
        for row in cur.fetchall():
            try:
                order = Order(
                    id=row[0],
                    exchange=row[1],
                    order_id=row[2],
                    pair=row[3],
                    side=row[4],
                    time=to_epoch_ms(row[5], "time_ms"),
                    amount=to_float(row[6], "amount"),
                    average_price=to_float(row[7], "average_price"),
                    total_cost=to_float(row[8], "total_cost"),
                    fee=to_float(row[9], "fee"),
                    highest_price=to_float(row[10], "highest_price"),
                    lowest_price=to_float(row[11], "lowest_price"),
                    realized_pnl=to_float(row[12], "realized_pnl"),
                    direction=row[13],
                )
            except InvalidNumericValue as e:
                logger.error(f"Skipping stored order {row[2]}: {e}")
                continue
            orders[(order.exchange, order.order_id)] = order

        if orders:
            cur.execute(
                """
                SELECT trade_id, exchange, order_id, symbol, side, price, amount, cost, fee, time_ms,
                    order_type, realized_pnl, direction, hash
                FROM trades
                WHERE "user" = %s AND (exchange, order_id) IN %s
                ORDER BY time_ms
                """,
                (user_id, tuple(orders.keys())),
            )
            for row in cur.fetchall():
                order = orders.get((row[1], row[2]))
                if order is None:
                    continue
                try:
                    order.trades.append(Trade(
                        trade_id=row[0],
                        exchange=row[1],
                        order_id=row[2],
                        pair=row[3],
                        side=row[4],
                        price=to_float(row[5], "price"),
                        amount=to_float(row[6], "amount"),
                        cost=to_float(row[7], "cost"),
                        fee=to_float(row[8], "fee"),
                        timestamp=to_epoch_ms(row[9], "time_ms"),
                        order_type=row[10],
                        realized_pnl=to_float(row[11], "realized_pnl") if row[11] is not None else None,
                        direction=row[12],
                        transaction_id=row[13],
                    ))
                except InvalidNumericValue as e:
                    logger.error(f"Skipping stored trade {row[0]}: {e}")

        cur.close()
        conn.close()
        return list(orders.values())

    async def find_linked_keys(self, user_id: str) -> Set[Tuple[str, str]]:
        return await asyncio.to_thread(self._find_linked_keys, user_id)

    def _find_linked_keys(self, user_id: str) -> Set[Tuple[str, str]]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            """SELECT exchange, order_id FROM orders WHERE "user" = %s AND position_id IS NOT NULL""",
            (user_id,),
        )
        keys = {(exchange, order_id) for exchange, order_id in cur.fetchall()}
        cur.close()
        conn.close()
        return keys


class PostgresPositionRepository(PostgresRepo, IPositionRepository):
    async def save_all(self, positions: List[Position], user_id: str) -> List[Position]:
        return await asyncio.to_thread(self._save_all, positions, user_id)

    def _save_all(self, positions: List[Position], user_id: str) -> List[Position]:
        conn = self._connect()
        cur = conn.cursor()
        saved = []
        try:
            for position in positions:
                try:
                    row = (
                        user_id,
                        position.exchange,
                        position.pair,
                        position.direction,
                        position.status,
                        position.shape.value,
                        to_decimal(position.quantity, "quantity"),
                        to_decimal(position.buy_cost, "buy_cost"),
                        to_decimal(position.sell_cost, "sell_cost"),
                        to_decimal(position.buy_volume, "buy_volume"),
                        to_decimal(position.sell_volume, "sell_volume"),
                        to_decimal(position.profit_loss, "profit_loss"),
                        to_decimal(position.total_fee, "total_fee"),
                        to_epoch_ms(position.open_time, "open_time"),
                        to_epoch_ms(position.close_time, "close_time"),
                    )
                except InvalidNumericValue as e:
                    logger.error(f"Skipping position on {position.pair}: {e}")
                    continue

                cur.execute("SAVEPOINT save_position")
                try:
                    pair_id = self._ensure_pair(cur, position.pair)
                    cur.execute(
                        """
                        INSERT INTO positions ("user", exchange, symbol, direction, status, shape, quantity,
                            buy_cost, sell_cost, buy_volume, sell_volume, profit_loss, total_fee,
                            open_time, close_time, pair_id)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id
                        """,
                        row + (pair_id,),
                    )
                    position_id = cur.fetchone()[0]
                    order_keys = [(o.exchange, o.order_id) for o in position.orders]
                    if order_keys:
                        cur.execute(
                            """
                            UPDATE orders SET position_id = %s
                            WHERE "user" = %s AND (exchange, order_id) IN %s
                            """,
                            (position_id, user_id, tuple(order_keys)),
                        )
                    cur.execute("RELEASE SAVEPOINT save_position")
                except psycopg2.Error as e:
                    cur.execute("ROLLBACK TO SAVEPOINT save_position")
                    logger.error(f"Failed to save position on {position.pair}: {e}")
                    continue

                for order in position.orders:
                    order.position_id = position_id
                saved.append(position.model_copy(update={"id": position_id}))
            conn.commit()
        finally:
            cur.close()
            conn.close()
        return saved

    async def delete_partial(self, user_id: str) -> int:
        return await asyncio.to_thread(
            self._delete,
            """DELETE FROM positions WHERE "user" = %s AND status = 'partial'""",
            user_id,
        )

    async def delete_all(self, user_id: str) -> int:
        return await asyncio.to_thread(self._delete, """DELETE FROM positions WHERE "user" = %s""", user_id)

    def _delete(self, statement: str, user_id: str) -> int:
        conn = self._connect()
        cur = conn.cursor()
        # orders.position_id is ON DELETE SET NULL
        cur.execute(statement, (user_id,))
        deleted = cur.rowcount
        conn.commit()
        cur.close()
        conn.close()
        return deleted


class PostgresSyncStateStore(PostgresRepo, ISyncStateStore):
    async def find_user_pairs(self, user_id: str) -> Dict[str, List[str]]:
        return await asyncio.to_thread(self._find_user_pairs, user_id)

    def _find_user_pairs(self, user_id: str) -> Dict[str, List[str]]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            """SELECT exchange, symbol FROM user_pairs WHERE "user" = %s ORDER BY exchange, symbol""",
            (user_id,),
        )
        pairs: Dict[str, List[str]] = {}
        for exchange, symbol in cur.fetchall():
            pairs.setdefault(exchange, []).append(symbol)
        cur.close()
        conn.close()
        return pairs

    async def update_user_pairs(self, user_id: str, exchange: str, pairs: List[str]) -> None:
        await asyncio.to_thread(self._update_user_pairs, user_id, exchange, pairs)

    def _update_user_pairs(self, user_id: str, exchange: str, pairs: List[str]) -> None:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            """DELETE FROM user_pairs WHERE "user" = %s AND exchange = %s""",
            (user_id, exchange),
        )
        if pairs:
            execute_values(
                cur,
                """INSERT INTO user_pairs ("user", exchange, symbol) VALUES %s ON CONFLICT DO NOTHING""",
                [(user_id, exchange, symbol) for symbol in sorted(set(pairs))],
            )
        conn.commit()
        cur.close()
        conn.close()

    async def get_last_sync_times(self, user_id: str) -> Dict[str, int]:
        return await asyncio.to_thread(self._get_last_sync_times, user_id)

    def _get_last_sync_times(self, user_id: str) -> Dict[str, int]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute("""SELECT exchange, last_sync_ms FROM sync_state WHERE "user" = %s""", (user_id,))
        times = {exchange: to_epoch_ms(ms, "last_sync_ms") for exchange, ms in cur.fetchall()}
        cur.close()
        conn.close()
        return times

    async def update_last_sync_times(self, user_id: str, exchanges: List[str]) -> None:
        await asyncio.to_thread(self._update_last_sync_times, user_id, exchanges)

    def _update_last_sync_times(self, user_id: str, exchanges: List[str]) -> None:
        if not exchanges:
            return
        now = int(time.time() * 1000)
        conn = self._connect()
        cur = conn.cursor()
        execute_values(
            cur,
            """
            INSERT INTO sync_state ("user", exchange, last_sync_ms) VALUES %s
            ON CONFLICT ("user", exchange) DO UPDATE SET last_sync_ms = EXCLUDED.last_sync_ms
            """,
            [(user_id, exchange, now) for exchange in exchanges],
        )
        conn.commit()
        cur.close()
        conn.close()

    async def get_most_recent_trade_time(self, user_id: str, exchange: str, pair: str) -> Optional[int]:
        return await asyncio.to_thread(self._get_most_recent_trade_time, user_id, exchange, pair)

    def _get_most_recent_trade_time(self, user_id: str, exchange: str, pair: str) -> Optional[int]:
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT last_trade_ms FROM trade_cursors
            WHERE "user" = %s AND exchange = %s AND symbol = %s
            """,
            (user_id, exchange, pair),
        )
        row = cur.fetchone()
        cur.close()
        conn.close()
        return to_epoch_ms(row[0], "last_trade_ms") if row else None

    async def update_trade_cursors(self, user_id: str, exchange: str, cursors: Dict[str, int]) -> None:
        await asyncio.to_thread(self._update_trade_cursors, user_id, exchange, cursors)

    def _update_trade_cursors(self, user_id: str, exchange: str, cursors: Dict[str, int]) -> None:
        if not cursors:
            return
        conn = self._connect()
        cur = conn.cursor()
        execute_values(
            cur,
            """
            INSERT INTO trade_cursors ("user", exchange, symbol, last_trade_ms) VALUES %s
            ON CONFLICT ("user", exchange, symbol)
            DO UPDATE SET last_trade_ms = GREATEST(trade_cursors.last_trade_ms, EXCLUDED.last_trade_ms)
            """,
            [(user_id, exchange, pair, ts) for pair, ts in cursors.items()],
        )
        conn.commit()
        cur.close()
        conn.close()
