from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class ExchangeCapabilities(BaseModel):
    """Static description of how an exchange exposes trade history."""
    model_config = ConfigDict(frozen=True)

    # fetchMyTrades without a symbol returns the whole account history
    fetches_all_trades_at_once: bool
    supports_symbol_filtering: bool
    requires_symbol_specific_calls: bool
    # 'since' is honoured server-side
    supports_time_filtering: bool
    supports_pagination: bool
    rate_limit_ms: int
    max_trades_per_call: Optional[int] = None


class RequiredCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: bool = True
    secret: bool = True
    wallet_address: bool = False


class ExchangeConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    ccxt_id: str
    enabled: bool = True
    fetch_config: Dict[str, Any] = Field(default_factory=dict)
    required_credentials: RequiredCredentials = RequiredCredentials()
    default_pairs: List[str] = Field(default_factory=list)


class ExchangeCredentials(BaseModel):
    """Decrypted API credentials for one exchange account."""
    exchange: str
    api_key: str = Field("", alias="apiKey")
    api_secret: str = Field("", alias="apiSecret")
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    password: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
