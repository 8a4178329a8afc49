"""Stop-order optimizers for a driver's daily route.

``HttpRouteOptimizer`` asks an external routing service for the visiting
order; ``LocalRouteOptimizer`` solves it in-process with a nearest-neighbour
tour from the northernmost stop improved by 2-opt. Both return a
``RoutePlan`` whose ``order`` is a permutation of the input stop ids, or
raise ``RouteServiceUnavailable``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import httpx

from ..core.config import settings
from ..utils.errors import RouteServiceUnavailable

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
TWO_OPT_MAX_ITERATIONS = 100
# Ignore 2-opt swaps that save less than a metre
_MIN_IMPROVEMENT_KM = 0.001


@dataclass(frozen=True)
class Stop:
    id: str
    lat: float
    lng: float


@dataclass
class RoutePlan:
    order: List[str]
    distance_km: Optional[float] = None


class RouteOptimizer(Protocol):
    def optimize(self, stops: Sequence[Stop]) -> RoutePlan: ...


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return great-circle distance in kilometers between two lat/lng pairs."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dl / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _dist(a: Stop, b: Stop) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def route_distance(route: Sequence[Stop]) -> float:
    """Open-path length in km, rounded to 0.1."""
    total = sum(_dist(route[i], route[i + 1]) for i in range(len(route) - 1))
    return round(total, 1)


def validate_order(order: object, stops: Sequence[Stop]) -> List[str]:
    """Accept ``order`` only if it is a permutation of the stop ids."""
    expected = [s.id for s in stops]
    if not isinstance(order, list) or not all(isinstance(i, str) for i in order):
        raise RouteServiceUnavailable("malformed response: order is not a list of ids")
    if len(order) != len(expected) or set(order) != set(expected):
        raise RouteServiceUnavailable("malformed response: order does not match stops")
    return list(order)


def _nearest_neighbour(stops: Sequence[Stop]) -> List[Stop]:
    remaining = list(stops)
    current = max(remaining, key=lambda s: s.lat)
    remaining.remove(current)
    route = [current]
    while remaining:
        nearest = min(remaining, key=lambda s: _dist(current, s))
        remaining.remove(nearest)
        route.append(nearest)
        current = nearest
    return route


def _two_opt(route: List[Stop], max_iterations: int) -> List[Stop]:
    n = len(route)
    if n <= 3:
        return route
    result = list(route)
    improved = True
    iterations = 0
    while improved and iterations < max_iterations:
        improved = False
        iterations += 1
        for i in range(n - 2):
            for j in range(i + 2, n):
                tail = j + 1 < n
                before = _dist(result[i], result[i + 1]) + (
                    _dist(result[j], result[j + 1]) if tail else 0.0
                )
                after = _dist(result[i], result[j]) + (
                    _dist(result[i + 1], result[j + 1]) if tail else 0.0
                )
                if after < before - _MIN_IMPROVEMENT_KM:
                    result[i + 1 : j + 1] = reversed(result[i + 1 : j + 1])
                    improved = True
    return result


class LocalRouteOptimizer:
    def __init__(self, max_iterations: int = TWO_OPT_MAX_ITERATIONS):
        self.max_iterations = max_iterations

    def optimize(self, stops: Sequence[Stop]) -> RoutePlan:
        if len(stops) <= 2:
            route = list(stops)
        else:
            route = _two_opt(_nearest_neighbour(stops), self.max_iterations)
        return RoutePlan(order=[s.id for s in route], distance_km=route_distance(route))


class HttpRouteOptimizer:
    """Client for an external routing service.

    Request: ``POST {url}`` with ``{"stops": [{"id", "lat", "lng"}, ...]}``.
    Expected response: ``{"order": [stop ids...], "distance_km": float?}``.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def optimize(self, stops: Sequence[Stop]) -> RoutePlan:
        if not self.url:
            raise RouteServiceUnavailable("route service URL not configured")
        if not stops:
            return RoutePlan(order=[], distance_km=0.0)
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {"stops": [{"id": s.id, "lat": s.lat, "lng": s.lng} for s in stops]}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                res = client.post(self.url, json=payload, headers=headers)
            res.raise_for_status()
            data = res.json()
        except httpx.TimeoutException as exc:
            logger.warning("Route service timed out after %ss", self.timeout)
            raise RouteServiceUnavailable("timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("Route service request failed: %s", exc)
            raise RouteServiceUnavailable("request failed") from exc
        except ValueError as exc:
            logger.warning("Route service returned invalid JSON")
            raise RouteServiceUnavailable("malformed response: invalid JSON") from exc

        if not isinstance(data, dict):
            raise RouteServiceUnavailable("malformed response: expected an object")
        order = validate_order(data.get("order"), stops)
        distance = data.get("distance_km")
        return RoutePlan(
            order=order,
            distance_km=float(distance) if isinstance(distance, (int, float)) else None,
        )


def get_route_optimizer() -> RouteOptimizer:
    """FastAPI dependency returning the configured optimizer."""
    if settings.ROUTE_OPTIMIZER_BACKEND == "http":
        return HttpRouteOptimizer(
            settings.ROUTE_OPTIMIZER_URL,
            settings.ROUTE_OPTIMIZER_API_KEY,
            settings.ROUTE_OPTIMIZER_TIMEOUT,
        )
    return LocalRouteOptimizer()
