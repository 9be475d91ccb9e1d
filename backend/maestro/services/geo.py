import math
from typing import Any, List, Optional, Sequence, Tuple

from maestro.services.errors import InvalidCoordinateError, InvalidInputError

EARTH_RADIUS_KM = 6371.0


def validate_coordinate(lat: Any, lng: Any) -> Tuple[float, float]:
    try:
        lat_value = float(lat)
        lng_value = float(lng)
    except (TypeError, ValueError):
        raise InvalidCoordinateError("Coordinates must be numeric") from None
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise InvalidCoordinateError("Coordinates must be numeric")
    if not (math.isfinite(lat_value) and math.isfinite(lng_value)):
        raise InvalidCoordinateError("Coordinates must be finite")
    if not -90.0 <= lat_value <= 90.0:
        raise InvalidCoordinateError(f"Latitude out of range: {lat_value}")
    if not -180.0 <= lng_value <= 180.0:
        raise InvalidCoordinateError(f"Longitude out of range: {lng_value}")
    return lat_value, lng_value


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two decimal-degree coordinates."""
    lat1, lng1 = validate_coordinate(lat1, lng1)
    lat2, lng2 = validate_coordinate(lat2, lng2)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def filter_within_radius(
    candidates: Sequence[Any],
    origin: Tuple[float, float],
    radius_km: float,
) -> List[Tuple[Any, float]]:
    """Keep candidates within ``radius_km`` of ``origin``, nearest first.

    Candidates expose ``id``, ``latitude`` and ``longitude``; ones without a
    coordinate are skipped. Ties on distance are broken by ascending ``id``.
    """
    if radius_km is None or radius_km < 0:
        raise InvalidInputError("Radius must be zero or positive")
    origin_lat, origin_lng = validate_coordinate(*origin)

    result: List[Tuple[Any, float]] = []
    for candidate in candidates:
        lat: Optional[float] = getattr(candidate, "latitude", None)
        lng: Optional[float] = getattr(candidate, "longitude", None)
        if lat is None or lng is None:
            continue
        distance = distance_km(origin_lat, origin_lng, lat, lng)
        if distance > radius_km:
            continue
        result.append((candidate, distance))
    result.sort(key=lambda item: (item[1], item[0].id))
    return result
