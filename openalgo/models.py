"""
Response models for the OpenAlgo REST data API.

Uses Pydantic for runtime validation.
DECIMAL PRECISION: prices are Decimal, parsed from the string form of the
wire value so 2500.1 stays 2500.1.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils.numeric import to_decimal, to_int


def _decimal_or_none(v: Any) -> Optional[Decimal]:
    if v is None or isinstance(v, Decimal):
        return v
    dec = to_decimal(v)
    if dec is None:
        raise ValueError(f"Cannot convert {v!r} to Decimal")
    return dec


def _int_or_none(v: Any) -> Optional[int]:
    if v is None:
        return None
    value = to_int(v)
    if value is None:
        raise ValueError(f"Cannot convert {v!r} to int")
    return value


class QuoteSnapshot(BaseModel):
    """Point-in-time quote from /quotes or /multiquotes."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    symbol: str
    exchange: str
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    ltp: Optional[Decimal] = None
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None
    prev_close: Optional[Decimal] = None
    volume: Optional[int] = None
    oi: Optional[int] = None

    @field_validator("open", "high", "low", "ltp", "bid", "ask", "prev_close", mode="before")
    @classmethod
    def validate_prices(cls, v: Any) -> Optional[Decimal]:
        """Convert to Decimal via string to avoid float precision loss."""
        return _decimal_or_none(v)

    @field_validator("volume", "oi", mode="before")
    @classmethod
    def validate_counts(cls, v: Any) -> Optional[int]:
        return _int_or_none(v)

    @property
    def spread(self) -> Optional[Decimal]:
        """Ask minus bid, if both sides are present."""
        if self.bid is None or self.ask is None:
            return None
        return self.ask - self.bid


class DepthLevelModel(BaseModel):
    """One order book level."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    price: Decimal
    quantity: int
    orders: Optional[int] = None

    @field_validator("price", mode="before")
    @classmethod
    def validate_price(cls, v: Any) -> Decimal:
        return _decimal_or_none(v)

    @field_validator("quantity", "orders", mode="before")
    @classmethod
    def validate_counts(cls, v: Any) -> Optional[int]:
        return _int_or_none(v)


class DepthSnapshot(BaseModel):
    """Point-in-time market depth from /depth."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    symbol: str
    exchange: str
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    ltp: Optional[Decimal] = None
    prev_close: Optional[Decimal] = None
    ltq: Optional[int] = None
    volume: Optional[int] = None
    oi: Optional[int] = None
    totalbuyqty: Optional[int] = None
    totalsellqty: Optional[int] = None
    bids: List[DepthLevelModel] = Field(default_factory=list)
    asks: List[DepthLevelModel] = Field(default_factory=list)

    @field_validator("open", "high", "low", "ltp", "prev_close", mode="before")
    @classmethod
    def validate_prices(cls, v: Any) -> Optional[Decimal]:
        return _decimal_or_none(v)

    @field_validator("ltq", "volume", "oi", "totalbuyqty", "totalsellqty", mode="before")
    @classmethod
    def validate_counts(cls, v: Any) -> Optional[int]:
        return _int_or_none(v)

    @field_validator("bids", "asks", mode="before")
    @classmethod
    def validate_levels(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def best_bid(self) -> Optional[DepthLevelModel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[DepthLevelModel]:
        return self.asks[0] if self.asks else None
