"""
Wire codec for the market data WebSocket.

Encodes outbound auth/subscribe/unsubscribe commands as compact JSON and
decodes inbound frames into typed events. Stateless.

Unknown frame types decode to a StreamError event instead of raising, so
a single unexpected frame never terminates the read loop.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

import orjson

from ..exceptions import DecodeError, EncodeError
from ..utils.numeric import to_decimal, to_int
from .types import (
    Acknowledgement,
    DepthLevel,
    DepthUpdate,
    InstrumentKey,
    LtpUpdate,
    OHLC,
    QuoteUpdate,
    StreamError,
    StreamErrorKind,
    StreamEvent,
    SubscriptionMode,
)

logger = logging.getLogger(__name__)

InstrumentLike = Union[InstrumentKey, Tuple[str, str], Mapping[str, Any]]
RawFrame = Union[str, bytes, bytearray, memoryview]
DecodedFrame = Union[StreamEvent, Acknowledgement]

DATA_TYPES = {
    "ltp": SubscriptionMode.LTP,
    "quote": SubscriptionMode.QUOTE,
    "depth": SubscriptionMode.DEPTH,
}
ACK_TYPES = ("auth", "subscribe", "unsubscribe")


def make_instrument(exchange: Any, symbol: Any) -> InstrumentKey:
    """
    Build a normalized InstrumentKey.

    Exchange is upper-cased; both parts are stripped.

    Raises:
        EncodeError: If either part is missing or blank
    """
    if not isinstance(exchange, str) or not exchange.strip():
        raise EncodeError(f"Invalid exchange: {exchange!r}")
    if not isinstance(symbol, str) or not symbol.strip():
        raise EncodeError(f"Invalid symbol: {symbol!r}")
    return InstrumentKey(exchange=exchange.strip().upper(), symbol=symbol.strip())


def normalize_instruments(instruments: Iterable[InstrumentLike]) -> Tuple[InstrumentKey, ...]:
    """
    Validate and normalize caller-supplied instruments.

    Accepts InstrumentKey, (exchange, symbol) tuples and
    {"exchange": ..., "symbol": ...} mappings. Duplicates within the call
    are dropped, first occurrence wins.

    Raises:
        EncodeError: If the list is empty or any item is malformed
    """
    if instruments is None or isinstance(instruments, (str, bytes)):
        raise EncodeError("Instruments must be a list of instrument keys")

    if isinstance(instruments, (InstrumentKey, Mapping)):
        instruments = [instruments]
    elif (isinstance(instruments, tuple) and len(instruments) == 2
          and all(isinstance(part, str) for part in instruments)):
        instruments = [instruments]

    result: List[InstrumentKey] = []
    seen = set()
    for item in instruments:
        if isinstance(item, InstrumentKey):
            key = make_instrument(item.exchange, item.symbol)
        elif isinstance(item, Mapping):
            key = make_instrument(item.get("exchange"), item.get("symbol"))
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            key = make_instrument(item[0], item[1])
        else:
            raise EncodeError(f"Malformed instrument: {item!r}")

        if key not in seen:
            seen.add(key)
            result.append(key)

    if not result:
        raise EncodeError("Instrument list cannot be empty")

    return tuple(result)


class MessageCodec:
    """JSON codec for the OpenAlgo streaming protocol."""

    # ========== Encoding ==========

    def encode_auth(self, api_key: str) -> str:
        """Encode the authentication frame."""
        if not isinstance(api_key, str) or not api_key.strip():
            raise EncodeError("API key cannot be empty")
        return self._dumps({"action": "authenticate", "api_key": api_key})

    def encode_subscribe(self, mode: SubscriptionMode, instruments: Iterable[InstrumentLike]) -> str:
        """Encode a subscribe frame for one mode."""
        return self._encode_command("subscribe", mode, instruments)

    def encode_unsubscribe(self, mode: SubscriptionMode, instruments: Iterable[InstrumentLike]) -> str:
        """Encode an unsubscribe frame for one mode."""
        return self._encode_command("unsubscribe", mode, instruments)

    def _encode_command(self, action: str, mode: Any, instruments: Iterable[InstrumentLike]) -> str:
        try:
            mode = SubscriptionMode.parse(mode)
        except ValueError as e:
            raise EncodeError(str(e)) from e

        keys = normalize_instruments(instruments)
        return self._dumps({
            "action": action,
            "mode": mode.value,
            "instruments": [{"exchange": k.exchange, "symbol": k.symbol} for k in keys],
        })

    @staticmethod
    def _dumps(payload: Dict[str, Any]) -> str:
        # orjson.dumps() returns bytes; text frames carry str
        return orjson.dumps(payload).decode("utf-8")

    # ========== Decoding ==========

    def decode(self, raw: RawFrame) -> DecodedFrame:
        """
        Decode one inbound frame.

        Returns:
            A stream event, or an Acknowledgement for control frames.
            Unknown frame types yield StreamError(kind=UNKNOWN).

        Raises:
            DecodeError: Invalid JSON or a data frame missing its instrument
        """
        text = raw if isinstance(raw, str) else bytes(raw).decode("utf-8", errors="replace")

        try:
            frame = orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON frame: {e}", raw=text[:200]) from e

        if not isinstance(frame, dict):
            raise DecodeError("Frame is not a JSON object", raw=text[:200])

        msg_type = frame.get("type")
        if isinstance(msg_type, str):
            msg_type = msg_type.strip().lower()
        elif msg_type is not None:
            return StreamError(StreamErrorKind.UNKNOWN, f"Unknown frame type: {msg_type!r}")

        # Original SDK frames carry only a numeric mode
        if msg_type is None and "mode" in frame:
            msg_type = "market_data"

        if msg_type == "market_data":
            try:
                mode = SubscriptionMode.parse(frame.get("mode"))
            except ValueError:
                return StreamError(StreamErrorKind.UNKNOWN, f"Unknown mode: {frame.get('mode')}")
            return self._decode_data(mode, frame, text)

        if msg_type in DATA_TYPES:
            return self._decode_data(DATA_TYPES[msg_type], frame, text)

        if msg_type in ACK_TYPES:
            return Acknowledgement(
                action=msg_type,
                status=str(frame.get("status") or ""),
                message=str(frame.get("message") or ""),
            )

        if msg_type == "error":
            code = frame.get("code")
            message = str(frame.get("message") or code or "server error")
            if code and str(code) not in message:
                message = f"{code}: {message}"
            return StreamError(StreamErrorKind.SERVER, message)

        return StreamError(StreamErrorKind.UNKNOWN, f"Unknown frame type: {frame.get('type')!r}")

    def _decode_data(self, mode: SubscriptionMode, frame: Dict[str, Any], text: str) -> StreamEvent:
        payload = frame.get("data")
        if not isinstance(payload, dict):
            payload = frame

        try:
            instrument = make_instrument(payload.get("exchange"), payload.get("symbol"))
        except EncodeError as e:
            raise DecodeError(f"{mode.value} frame without instrument: {e.message}", raw=text[:200]) from e

        timestamp = to_int(payload.get("timestamp"))
        ltp = to_decimal(payload.get("ltp"))

        if mode is SubscriptionMode.LTP:
            return LtpUpdate(instrument=instrument, ltp=ltp, timestamp=timestamp)

        ohlc = OHLC(
            open=to_decimal(payload.get("open")),
            high=to_decimal(payload.get("high")),
            low=to_decimal(payload.get("low")),
            close=to_decimal(payload.get("close")),
        )
        volume = to_int(payload.get("volume"))
        oi = to_int(payload.get("oi"))

        if mode is SubscriptionMode.QUOTE:
            return QuoteUpdate(
                instrument=instrument,
                ohlc=ohlc,
                volume=volume,
                bid=to_decimal(_first(payload, "bid", "bid_price")),
                ask=to_decimal(_first(payload, "ask", "ask_price")),
                timestamp=timestamp,
                ltp=ltp,
                oi=oi,
            )

        depth = payload.get("depth") if isinstance(payload.get("depth"), dict) else {}
        return DepthUpdate(
            instrument=instrument,
            bids=self._decode_levels(_first(payload, "bids") or depth.get("buy"), text),
            asks=self._decode_levels(_first(payload, "asks") or depth.get("sell"), text),
            timestamp=timestamp,
            ltp=ltp,
            ohlc=ohlc,
            volume=volume,
            oi=oi,
        )

    @staticmethod
    def _decode_levels(levels: Any, text: str) -> Tuple[DepthLevel, ...]:
        if levels is None:
            return ()
        if not isinstance(levels, list):
            raise DecodeError("Depth levels must be a list", raw=text[:200])

        result = []
        for level in levels:
            if not isinstance(level, dict):
                raise DecodeError(f"Malformed depth level: {level!r}", raw=text[:200])
            result.append(DepthLevel(
                price=to_decimal(level.get("price")),
                quantity=to_int(level.get("quantity")),
                orders=to_int(level.get("orders")),
            ))
        return tuple(result)


def _first(payload: Dict[str, Any], *names: str) -> Optional[Any]:
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return None
