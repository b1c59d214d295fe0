"""
Навигация курьера (упрощённая модель, без реального построения маршрута).

Расстояние по прямой (Haversine), время 3 минуты на километр,
загруженность дорог оценивается по длительности поездки.
"""
import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional, Tuple

MINUTES_PER_KM = 3
MODERATE_TRAFFIC_MINUTES = 10
HEAVY_TRAFFIC_MINUTES = 20


class NavigationMode(str, enum.Enum):
    PICKUP = "pickup"   # от курьера до ресторана
    DROP = "drop"       # от ресторана до клиента
    ROUTE = "route"     # от курьера через ресторан до клиента


class Traffic(str, enum.Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


@dataclass(frozen=True, slots=True)
class RouteInfo:
    mode: NavigationMode
    distance_km: float
    duration_min: int
    traffic: Traffic
    speed_kmh: int
    eta: datetime


# Кешируем результаты для часто используемых координат
@lru_cache(maxsize=1000)
def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками на Земле по формуле Haversine (км).
    Результаты кешируются для оптимизации.
    """
    R = 6371  # Earth radius in kilometers

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2)**2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def _distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return haversine_distance(a[0], a[1], b[0], b[1])


def traffic_for(duration_min: int) -> Traffic:
    if duration_min > HEAVY_TRAFFIC_MINUTES:
        return Traffic.HEAVY
    if duration_min > MODERATE_TRAFFIC_MINUTES:
        return Traffic.MODERATE
    return Traffic.LIGHT


def simulate_route(
    mode: NavigationMode,
    pickup: Tuple[float, float],
    drop: Tuple[float, float],
    current: Optional[Tuple[float, float]] = None,
    now: Optional[datetime] = None,
) -> RouteInfo:
    """
    Оценить поездку для выбранного режима.

    Без геолокации курьера режимы pickup/route считаются от ресторана.
    """
    mode = NavigationMode(mode)
    start = current or pickup

    if mode == NavigationMode.PICKUP:
        distance = _distance(start, pickup)
    elif mode == NavigationMode.DROP:
        distance = _distance(pickup, drop)
    else:
        distance = _distance(start, pickup) + _distance(pickup, drop)

    duration = round(distance * MINUTES_PER_KM)
    speed = round(distance / (duration / 60)) if duration else 0
    now = now or datetime.now()

    return RouteInfo(
        mode=mode,
        distance_km=distance,
        duration_min=duration,
        traffic=traffic_for(duration),
        speed_kmh=speed,
        eta=now + timedelta(minutes=duration),
    )


def maps_url(latitude: float, longitude: float) -> str:
    """Ссылка на точку в Google Maps."""
    return f"https://maps.google.com/?q={latitude},{longitude}"
