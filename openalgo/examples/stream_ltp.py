"""
Example: Live LTP and quote stream

This example shows:
- REST quote snapshot before streaming
- Subscribing LTP and QUOTE feeds
- Consuming events, including connection status changes
- Clean shutdown

Requires a running OpenAlgo server and OPENALGO_API_KEY.
"""

import os
import queue
import time

from openalgo import (
    ConnectionStatus,
    LtpUpdate,
    OpenAlgoClient,
    QuoteUpdate,
    StreamError,
    setup_logging,
)

INSTRUMENTS = [("NSE", "RELIANCE"), ("NSE", "INFY"), ("NSE", "TCS")]
RUN_SECONDS = 60


def main():
    """Stream LTP and quotes for a minute."""
    setup_logging(level=os.getenv("OPENALGO_LOG_LEVEL", "INFO"))

    with OpenAlgoClient() as client:
        # 1. Snapshot via REST
        snapshot = client.quotes("RELIANCE", "NSE")
        print(f"RELIANCE snapshot: ltp={snapshot.ltp} bid={snapshot.bid} ask={snapshot.ask}")

        # 2. Connect the stream
        stream = client.websocket()
        stream.connect()

        # 3. Subscribe (receipts resolve once applied)
        receipt = stream.subscribe_ltp(INSTRUMENTS).result(timeout=10)
        print(f"LTP subscribed: {[str(i) for i in receipt.applied]}")
        stream.subscribe_quote([("NSE", "RELIANCE")]).result(timeout=10)

        # 4. Consume
        deadline = time.time() + RUN_SECONDS
        while time.time() < deadline:
            try:
                event = stream.get_event(timeout=1.0)
            except queue.Empty:
                continue
            if event is None:
                break

            if isinstance(event, LtpUpdate):
                print(f"LTP   {event.instrument}: {event.ltp}")
            elif isinstance(event, QuoteUpdate):
                print(f"QUOTE {event.instrument}: bid={event.bid} ask={event.ask} vol={event.volume}")
            elif isinstance(event, ConnectionStatus):
                print(f"[status] {event.state.value}")
            elif isinstance(event, StreamError):
                print(f"[error] {event.kind.value}: {event.message}")

        print(f"Stats: {stream.stats()}")


if __name__ == "__main__":
    main()
