"""
Market data REST API.

Point-in-time snapshots that complement the stream: a quote or depth
snapshot taken right after subscribing fills the gap until the first tick.

Usage:
    >>> from openalgo.api.data import DataAPI
    >>> from openalgo.config import OpenAlgoSettings
    >>>
    >>> settings = OpenAlgoSettings(api_key="...")
    >>> data = DataAPI(settings.api_key, settings)
    >>> quote = data.quotes("RELIANCE", "NSE")
    >>> quotes = data.multi_quotes([("RELIANCE", "NSE"), ("TCS", "NSE")])
"""

from typing import Any, Dict, Iterable, List, Tuple
import logging

from pydantic import ValidationError as PydanticValidationError

from .base import BaseAPIClient
from ..exceptions import APIError, ValidationError
from ..models import DepthSnapshot, QuoteSnapshot

logger = logging.getLogger(__name__)


class DataAPI(BaseAPIClient):
    """Quotes and market depth endpoints."""

    def quotes(self, symbol: str, exchange: str) -> QuoteSnapshot:
        """
        Get the quote for one symbol.

        Args:
            symbol: Trading symbol (e.g. "RELIANCE")
            exchange: Exchange code (e.g. "NSE")

        Returns:
            QuoteSnapshot

        Raises:
            ValidationError: Blank symbol or exchange
            APIError: Request failed or status != "success"
        """
        symbol, exchange = _validate_symbol(symbol, exchange)
        response = self.post("quotes", {"symbol": symbol, "exchange": exchange})
        data = _success_data(response, "quotes")
        return _parse(QuoteSnapshot, {**data, "symbol": symbol, "exchange": exchange})

    def multi_quotes(self, symbols: Iterable[Tuple[str, str]]) -> List[QuoteSnapshot]:
        """
        Get quotes for several symbols in one request.

        Args:
            symbols: (symbol, exchange) pairs

        Returns:
            One QuoteSnapshot per result with data, in response order
        """
        pairs = [_validate_symbol(symbol, exchange) for symbol, exchange in symbols]
        if not pairs:
            raise ValidationError("At least one symbol is required")

        response = self.post("multiquotes", {
            "symbols": [{"symbol": s, "exchange": e} for s, e in pairs]
        })
        _check_status(response, "multiquotes")

        results = response.get("results") or []
        if not isinstance(results, list):
            raise APIError("multiquotes: results is not a list", response=response)

        snapshots = []
        for result in results:
            if not isinstance(result, dict):
                logger.warning(f"Skipping malformed multiquotes entry: {result!r}")
                continue
            data = result.get("data")
            if not isinstance(data, dict):
                logger.warning(
                    f"No quote data for {result.get('exchange')}:{result.get('symbol')}"
                )
                continue
            snapshots.append(_parse(QuoteSnapshot, {
                **data,
                "symbol": result.get("symbol"),
                "exchange": result.get("exchange"),
            }))

        logger.debug(f"Fetched {len(snapshots)}/{len(pairs)} quotes")
        return snapshots

    def depth(self, symbol: str, exchange: str) -> DepthSnapshot:
        """
        Get market depth for one symbol.

        Returns:
            DepthSnapshot with bids/asks best first
        """
        symbol, exchange = _validate_symbol(symbol, exchange)
        response = self.post("depth", {"symbol": symbol, "exchange": exchange})
        data = _success_data(response, "depth")
        return _parse(DepthSnapshot, {**data, "symbol": symbol, "exchange": exchange})


def _validate_symbol(symbol: Any, exchange: Any) -> Tuple[str, str]:
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError(f"Invalid symbol: {symbol!r}")
    if not isinstance(exchange, str) or not exchange.strip():
        raise ValidationError(f"Invalid exchange: {exchange!r}")
    return symbol.strip(), exchange.strip().upper()


def _check_status(response: Any, endpoint: str) -> None:
    if not isinstance(response, dict):
        raise APIError(f"{endpoint}: unexpected response {response!r}")
    if response.get("status") != "success":
        raise APIError(
            f"{endpoint} failed: {response.get('message') or response.get('status')}",
            response=response
        )


def _success_data(response: Any, endpoint: str) -> Dict[str, Any]:
    _check_status(response, endpoint)
    data = response.get("data")
    if not isinstance(data, dict):
        raise APIError(f"{endpoint}: response has no data", response=response)
    return data


def _parse(model, data: Dict[str, Any]):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise APIError(f"Invalid {model.__name__} payload: {e}", response=data) from e
