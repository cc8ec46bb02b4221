from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from ..models.itinerary import DailyItinerary
from ..models.route import DayRoute, RouteLeg
from .errors import RoutingError

"""Route stitcher and routing provider client.

A day's path is [start, stop_1, ..., stop_n] plus the end address unless the
day ends at a hotel. Each consecutive pair with different, non-empty
addresses costs exactly one provider call. Legs are issued sequentially:
each leg starts where the previous stop left the driver.
"""

__all__ = [
    "METERS_PER_MILE",
    "GOOGLE_DIRECTIONS_URL",
    "RoutingProvider",
    "GoogleDirectionsProvider",
    "format_route_notes",
    "stitch_day",
]

logger = logging.getLogger(__name__)

# 1 "calculated mile" for this system's cost model. Stored amounts use this
# exact factor, keep it.
METERS_PER_MILE = 1609.34

GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"


class RoutingProvider(Protocol):
    def route(self, origin: str, destination: str, api_key: str) -> RouteLeg: ...


class GoogleDirectionsProvider:
    """Google Directions web API client (one request per leg)."""

    def __init__(
        self,
        *,
        base_url: str = GOOGLE_DIRECTIONS_URL,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> GoogleDirectionsProvider:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def route(self, origin: str, destination: str, api_key: str) -> RouteLeg:
        params = {"origin": origin, "destination": destination, "key": api_key}
        try:
            resp = self.session.get(self.base_url, params=params, timeout=self.timeout_seconds)
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()
        except requests.RequestException as e:
            raise RoutingError(f"Failed to calculate route: {e}") from e
        except ValueError as e:  # JSON decode
            raise RoutingError(f"Failed to calculate route: invalid provider response ({e})") from e

        status = data.get("status", "UNKNOWN")
        routes = data.get("routes") or []
        if status != "OK" or not routes:
            detail = data.get("error_message")
            msg = f"Google Directions API error: {status}"
            if detail:
                msg += f" ({detail})"
            raise RoutingError(msg, status=status)

        try:
            leg = routes[0]["legs"][0]
            return RouteLeg(
                distance_miles=leg["distance"]["value"] / METERS_PER_MILE,
                duration_seconds=int(leg["duration"]["value"]),
                resolved_start_address=leg.get("start_address", origin),
                resolved_end_address=leg.get("end_address", destination),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise RoutingError(f"Failed to calculate route: malformed leg in response ({e})", status=status) from e


def format_route_notes(itinerary: DailyItinerary) -> str:
    """Human readable route line: 'A → B → C' plus a hotel marker."""
    path = " → ".join(a for a in itinerary.addresses if a)
    if itinerary.is_hotel_stay:
        path = f"{path} (Hotel stay)" if path else "(Hotel stay)"
    return path


def stitch_day(
    itinerary: DailyItinerary,
    start_address: str,
    end_address: str | None,
    provider: RoutingProvider,
    api_key: str,
    mileage_rate: float,
) -> DayRoute:
    """Route one day leg by leg and aggregate distance and cost.

    Provider errors are not caught here; they surface as a failure of this
    day only (the caller isolates them).
    """
    day_end = itinerary.hotel_address if itinerary.is_hotel_stay else end_address
    legs: list[RouteLeg] = []
    distance = 0.0

    if itinerary.stops:
        current = start_address
        for stop in itinerary.stops:
            if stop.address and stop.address != current:
                leg = provider.route(current, stop.address, api_key)
                legs.append(leg)
                distance += leg.distance_miles
            current = stop.address or current

        # ホテル泊の日は戻り区間なし
        if not itinerary.is_hotel_stay and end_address and current != end_address:
            leg = provider.route(current, end_address, api_key)
            legs.append(leg)
            distance += leg.distance_miles

    logger.debug(
        "day=%s legs=%d distance_mi=%.2f hotel=%s", itinerary.date, len(legs), distance, itinerary.is_hotel_stay
    )
    return DayRoute(
        distance=distance,
        amount=distance * mileage_rate,
        resolved_start=start_address,
        resolved_end=day_end or start_address,
        is_hotel_stay=itinerary.is_hotel_stay,
        notes=format_route_notes(itinerary),
        legs=legs,
        original_data=itinerary.rows,
    )
