from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncResult(BaseModel):
    """
    Outcome of one sync invocation. Failures are reported here, never raised.
    Serialises with camelCase keys for API consumers.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    type: Literal["initial", "incremental"]
    pairs_found: int = Field(0, alias="pairsFound")
    trades_found: int = Field(0, alias="tradesFound")
    new_pairs: Optional[int] = Field(None, alias="newPairs")
    orders_saved: int = Field(0, alias="ordersSaved")
    positions_saved: int = Field(0, alias="positionsSaved")
    message: str

    @classmethod
    def failure(cls, sync_type: str, message: str) -> "SyncResult":
        return cls(success=False, type=sync_type, message=message)
