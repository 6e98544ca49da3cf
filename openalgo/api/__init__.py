"""API modules for the OpenAlgo client."""

from .base import BaseAPIClient
from .data import DataAPI
from .websocket import MarketDataStream

__all__ = ["BaseAPIClient", "DataAPI", "MarketDataStream"]
