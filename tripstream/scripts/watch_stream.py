"""
Watch an itinerary stream from a running tripstream server.

Prints every consumer state transition, then a summary of the final
itinerary. Optionally creates the trip first.

Usage:
    python -m tripstream.scripts.watch_stream trip_1a2b3c4d
    python -m tripstream.scripts.watch_stream --create --destination "Lisbon, Portugal" \\
        --start-date 2026-05-01 --days 3 --budget 1500
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from tripstream.streaming.connectors import HttpConnector
from tripstream.streaming.consumer import ItineraryStreamConsumer, StreamState, StreamStatus
from tripstream.utils.logger import configure_logging

logger = logging.getLogger(__name__)


def print_transition(state: StreamState, last: dict) -> None:
    """Print a line whenever status or message changes."""
    key = (state.status, state.message)
    if last.get("key") == key:
        return
    last["key"] = key
    print(f"[{state.status.value:>10}] {state.message} ({len(state.days)} days)")


async def create_trip(client: httpx.AsyncClient, args: argparse.Namespace) -> str:
    body = {
        "destination": args.destination,
        "startDate": args.start_date,
        "numDays": args.days,
        "budget": args.budget,
        "travelers": args.travelers,
        "currency": args.currency,
    }
    response = await client.post("/api/trips", json=body)
    response.raise_for_status()
    trip_id = response.json()["tripId"]
    print(f"Created trip {trip_id}")
    return trip_id


async def watch(args: argparse.Namespace) -> StreamState:
    async with httpx.AsyncClient(base_url=args.base_url, timeout=httpx.Timeout(10.0, read=None)) as client:
        trip_id: Optional[str] = args.trip_id
        if args.create:
            trip_id = await create_trip(client, args)

        last: dict = {}
        consumer = ItineraryStreamConsumer(
            HttpConnector(client=client),
            on_change=lambda state: print_transition(state, last),
        )
        state = await consumer.start(trip_id)
        if state.status == StreamStatus.ERROR and args.retry:
            print("Retrying once...")
            state = await consumer.retry()
        return state


def print_summary(state: StreamState) -> None:
    print("\n" + "=" * 60)
    print("ITINERARY")
    print("=" * 60)
    for day in state.ordered_days():
        print(f"Day {day.day} ({day.date}): {day.title}")
        for activity in day.activities:
            print(f"  {activity.time:>8}  {activity.name}  (~{activity.estimated_cost:.0f})")
    if state.result is not None:
        print("-" * 60)
        print(f"Budget verified: {state.result.budget_verified}")
        print(f"Logistics verified: {state.result.logistics_verified}")
        print(f"Director iterations: {state.result.total_iterations}")
        print(f"Refined days: {state.result.refined_days or 'none'}")
    for error in state.errors:
        print(f"Skipped day {error.day_index + 1 if error.day_index is not None else '?'}: {error.message}")
    if state.partial:
        print("(partial itinerary: the stream ended early)")
    print("=" * 60)


def main():
    """Main entry point for the stream watcher."""
    parser = argparse.ArgumentParser(
        description="Watch an itinerary stream from a tripstream server"
    )
    parser.add_argument("trip_id", nargs="?", help="Trip to stream (omit with --create)")
    parser.add_argument(
        "--base-url",
        type=str,
        default="http://localhost:8000",
        help="Server URL (default: http://localhost:8000)"
    )
    parser.add_argument("--create", action="store_true", help="Create the trip before streaming")
    parser.add_argument("--destination", type=str, help="Destination for --create")
    parser.add_argument("--start-date", type=str, help="Start date YYYY-MM-DD for --create")
    parser.add_argument("--days", type=int, default=3, help="Number of days for --create (default: 3)")
    parser.add_argument("--budget", type=float, default=1500.0, help="Total budget for --create (default: 1500)")
    parser.add_argument("--travelers", type=int, default=2, help="Travelers for --create (default: 2)")
    parser.add_argument("--currency", type=str, default="USD", help="Currency for --create (default: USD)")
    parser.add_argument("--retry", action="store_true", help="Retry once if the stream ends in error")
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)"
    )

    args = parser.parse_args()
    if not args.create and not args.trip_id:
        parser.error("a trip id is required unless --create is given")
    if args.create and not (args.destination and args.start_date):
        parser.error("--create needs --destination and --start-date")

    configure_logging(log_level=args.log_level)

    try:
        state = asyncio.run(watch(args))
    except httpx.HTTPError as e:
        logger.error(f"Request failed: {e}", exc_info=True)
        print(f"\nERROR: {e}")
        sys.exit(1)

    print_summary(state)
    sys.exit(0 if state.status == StreamStatus.COMPLETE else 1)


if __name__ == "__main__":
    main()
