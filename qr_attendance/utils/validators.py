"""Request payload validation utilities."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from qr_attendance.errors import InvalidLocation, RequestValidationError
from qr_attendance.services.geo_service import GeoService, Location


class Validator:
    """Validation helper class."""

    @staticmethod
    def require_json(payload: Any) -> Dict:
        """Request body must be a JSON object."""
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise RequestValidationError('Request body must be a JSON object')
        return payload

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> None:
        """Validate required fields in data."""
        missing = [field for field in required_fields if data.get(field) in (None, '')]
        if missing:
            raise RequestValidationError(
                'Missing required field(s): {}'.format(', '.join(missing))
            )

    @staticmethod
    def validate_string(data: Dict, field: str, max_length: int = 64) -> Optional[str]:
        """Optional string field, bounded in length."""
        value = data.get(field)
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            raise RequestValidationError(f'{field} must be a non-empty string')
        if len(value) > max_length:
            raise RequestValidationError(f'{field} is too long')
        return value.strip()

    @staticmethod
    def validate_boolean(data: Dict, field: str, default: bool) -> bool:
        value = data.get(field, default)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise RequestValidationError(f'{field} must be a boolean')
        return value

    @staticmethod
    def validate_location(payload: Any) -> Optional[Location]:
        """Parse an optional {latitude, longitude, accuracy} object."""
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise InvalidLocation('Location must be an object')

        if 'latitude' not in payload or 'longitude' not in payload:
            raise InvalidLocation('Location requires latitude and longitude')

        location = Location.from_dict(payload)
        if not GeoService.is_valid_coordinates(location):
            raise InvalidLocation()
        return location

    @staticmethod
    def validate_page(value: Any, default: int, maximum: int = None) -> int:
        """Positive integer query parameter."""
        if value in (None, ''):
            return default
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise RequestValidationError(f'Invalid page parameter: {value}')
        if number < 1:
            raise RequestValidationError(f'Invalid page parameter: {value}')
        if maximum is not None:
            number = min(number, maximum)
        return number

    @staticmethod
    def validate_date(value: Optional[str], field: str) -> Optional[datetime]:
        """ISO-8601 date or datetime query parameter."""
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise RequestValidationError(f'Invalid {field} format')
