import logging
from typing import Optional

from tradesync.config import Settings
from tradesync.core.capabilities import get_exchange_capabilities, log_exchange_capabilities
from tradesync.core.entities.exchange import ExchangeCredentials
from tradesync.core.errors import CredentialError, ExchangeInitError
from tradesync.core.exchanges import get_exchange_by_id
from tradesync.core.filter_config import get_exchange_filter_config
from tradesync.core.interfaces.trading_client import ITradingClient
from tradesync.core.use_cases.trade_filters import BusinessFilterOptions, TradeFilterPipeline
from tradesync.infrastructure.cache.trade_cache import TradeCache
from tradesync.infrastructure.gateways.ccxt_client import CcxtTradingClient
from tradesync.infrastructure.gateways.hl_public_api import HyperliquidInfoClient
from tradesync.infrastructure.gateways.trade_fetch_client import TradeFetchClient

logger = logging.getLogger(__name__)


def validate_credentials(credentials: ExchangeCredentials) -> None:
    config = get_exchange_by_id(credentials.exchange)
    if config is None:
        raise ExchangeInitError(f"Exchange {credentials.exchange} is not supported", exchange=credentials.exchange)
    if not config.enabled:
        raise ExchangeInitError(f"Exchange {credentials.exchange} is disabled", exchange=credentials.exchange)

    required = config.required_credentials
    missing = []
    if required.api_key and not credentials.api_key:
        missing.append("apiKey")
    if required.secret and not credentials.api_secret:
        missing.append("apiSecret")
    if required.wallet_address and not credentials.wallet_address:
        missing.append("walletAddress")
    if missing:
        raise CredentialError(
            f"Missing credentials for {credentials.exchange}: {', '.join(missing)}",
            exchange=credentials.exchange,
        )


def create_trading_client(credentials: ExchangeCredentials, settings: Settings) -> ITradingClient:
    validate_credentials(credentials)
    config = get_exchange_by_id(credentials.exchange)

    if credentials.exchange == "hyperliquid" and settings.hyperliquid_backend == "sdk":
        return HyperliquidInfoClient(wallet_address=credentials.wallet_address)

    return CcxtTradingClient(
        exchange_id=config.id,
        credentials=credentials,
        ccxt_id=config.ccxt_id,
        fetch_config=config.fetch_config,
    )


def create_trade_source(
    credentials: ExchangeCredentials,
    settings: Optional[Settings] = None,
    client: Optional[ITradingClient] = None
) -> TradeFetchClient:
    """
    Builds the fetch client for one exchange account. Raises CredentialError or
    ExchangeInitError when the account cannot be set up.
    """
    settings = settings or Settings.from_env()
    if client is None:
        client = create_trading_client(credentials, settings)

    exchange_id = credentials.exchange
    log_exchange_capabilities(exchange_id)

    business_options = BusinessFilterOptions(
        min_usd_value=settings.min_usd_value,
        exclude_dust_trades=settings.exclude_dust,
        max_age_hours=settings.max_age_hours,
        quote_usd_rates=settings.quote_usd_rates,
    )
    return TradeFetchClient(
        client=client,
        exchange_id=exchange_id,
        capabilities=get_exchange_capabilities(exchange_id),
        pipeline=TradeFilterPipeline(exchange_id, get_exchange_filter_config(exchange_id), business_options),
        cache=TradeCache(ttl_seconds=settings.cache_ttl_seconds),
    )
