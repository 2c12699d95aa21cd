"""Geofence validation for office-mode clock-ins."""

import math
from dataclasses import dataclass
from typing import Optional

from .types import LocationSample, Site

# Earth radius in meters
EARTH_RADIUS_M = 6371000


@dataclass
class GeofenceResult:
    """Distance to a site and whether the point is inside its radius."""
    within_geofence: bool
    distance_meters: float
    site: Optional[Site] = None


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


class GeofenceValidator:
    """Checks a location sample against circular site geofences."""

    def validate(self, point: LocationSample, site: Site) -> GeofenceResult:
        distance = haversine_distance(point.latitude, point.longitude, site.latitude, site.longitude)
        return GeofenceResult(
            within_geofence=distance <= site.radius_meters,
            distance_meters=round(distance, 2),
            site=site,
        )

    def validate_nearest(self, point: LocationSample, sites: list[Site]) -> Optional[GeofenceResult]:
        """Validate against the closest active site. None when there is no active site."""
        results = [self.validate(point, s) for s in sites if s.is_active]
        if not results:
            return None
        inside = [r for r in results if r.within_geofence]
        return min(inside or results, key=lambda r: r.distance_meters)
