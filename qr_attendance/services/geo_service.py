"""GPS distance and geofence verification service."""
import math
from dataclasses import dataclass
from typing import Optional, Tuple


EARTH_RADIUS_METERS = 6371000
MAX_HUMAN_SPEED_MPS = 15  # ~54 km/h

RECOMMENDED_RADIUS = {
    'classroom': 50,
    'lab': 75,
    'auditorium': 100,
    'outdoor': 200
}


@dataclass(frozen=True)
class Location:
    """A GPS fix as reported by a device."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['Location']:
        """Build a location from a request payload, or None when absent."""
        if not data:
            return None
        return cls(
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            accuracy=data.get('accuracy')
        )

    def to_dict(self) -> dict:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'accuracy': self.accuracy
        }


class GeoService:
    """Service for GPS and location verification."""

    @staticmethod
    def distance_meters(a: Location, b: Location) -> float:
        """Calculate great-circle distance between two GPS points in meters."""
        lat1_rad = math.radians(a.latitude)
        lat2_rad = math.radians(b.latitude)
        delta_lat = math.radians(b.latitude - a.latitude)
        delta_lon = math.radians(b.longitude - a.longitude)

        h = (math.sin(delta_lat / 2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

        return EARTH_RADIUS_METERS * c

    @staticmethod
    def effective_radius(point: Location, radius_meters: float) -> float:
        """Allowed radius plus the device's reported accuracy as slack."""
        if point.accuracy is not None and point.accuracy > 0:
            return radius_meters + point.accuracy
        return radius_meters

    @staticmethod
    def within_radius(center: Location, point: Location, radius_meters: float) -> bool:
        """Check if point lies inside the geofence around center."""
        distance = GeoService.distance_meters(center, point)
        return distance <= GeoService.effective_radius(point, radius_meters)

    @staticmethod
    def verify_location(center: Location, point: Location, radius_meters: float) -> dict:
        """Verify a point against a geofence, with a human-readable reason."""
        if not GeoService.is_valid_coordinates(center) or not GeoService.is_valid_coordinates(point):
            return {
                'is_inside': False,
                'distance': None,
                'reason': 'Invalid coordinates provided'
            }

        distance = GeoService.distance_meters(center, point)
        is_inside = distance <= GeoService.effective_radius(point, radius_meters)

        return {
            'is_inside': is_inside,
            'distance': distance,
            'allowed_radius': radius_meters,
            'reason': 'Location verified successfully' if is_inside else (
                f'You are {GeoService.format_distance(distance)} away from the classroom '
                f'(allowed: {GeoService.format_distance(radius_meters)})'
            )
        }

    @staticmethod
    def is_valid_coordinates(location: Location) -> bool:
        """Validate that coordinates are numbers within valid ranges."""
        latitude, longitude = location.latitude, location.longitude

        for value in (latitude, longitude):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return False
            if not math.isfinite(value):
                return False

        if location.accuracy is not None:
            if isinstance(location.accuracy, bool) or not isinstance(location.accuracy, (int, float)):
                return False
            if not math.isfinite(location.accuracy) or location.accuracy < 0:
                return False

        return -90 <= latitude <= 90 and -180 <= longitude <= 180

    @staticmethod
    def detect_location_spoofing(
        location: Location,
        previous: Location = None,
        elapsed_seconds: float = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Basic location spoofing checks.
        Returns: (is_suspicious, reason)
        """
        # Suspiciously exact coordinates with very high accuracy
        if (location.accuracy is not None and location.accuracy < 5 and
                _is_whole_micro_degree(location.latitude) and
                _is_whole_micro_degree(location.longitude)):
            return True, 'Suspiciously accurate coordinates'

        # Impossible speed between two fixes
        if previous is not None and elapsed_seconds:
            distance = GeoService.distance_meters(previous, location)
            if distance / elapsed_seconds > MAX_HUMAN_SPEED_MPS:
                return True, 'Impossible movement speed detected'

        # Null island
        if location.latitude == 0 and location.longitude == 0:
            return True, 'Invalid null island coordinates'

        return False, None

    @staticmethod
    def format_distance(meters: float) -> str:
        """Get human-readable distance string."""
        if meters < 1000:
            return f'{round(meters)}m'
        return f'{meters / 1000:.2f}km'

    @staticmethod
    def recommended_radius(venue_type: str) -> int:
        """Calculate recommended radius based on venue type."""
        return RECOMMENDED_RADIUS.get(venue_type, 100)


def _is_whole_micro_degree(value: float) -> bool:
    scaled = value * 1000000
    return scaled == int(scaled)
