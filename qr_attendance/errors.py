"""Domain errors raised by the attendance session core."""


class AttendanceError(Exception):
    """Base class for request-scoped attendance errors."""

    code = 'attendance_error'
    status_code = 400
    default_message = 'Attendance request failed'

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = str(self)

    def to_dict(self) -> dict:
        return {
            'error': True,
            'message': self.message,
            'status_code': self.status_code,
            'code': self.code
        }


# Validation errors

class RequestValidationError(AttendanceError):
    code = 'invalid_request'
    default_message = 'Invalid request payload'


class InvalidDuration(AttendanceError):
    code = 'invalid_duration'
    default_message = 'Session duration is out of bounds'


class InvalidRadius(AttendanceError):
    code = 'invalid_radius'
    default_message = 'Allowed radius is out of bounds'


class InvalidLocation(AttendanceError):
    code = 'invalid_location'
    default_message = 'Invalid coordinates provided'


class LocationRequired(AttendanceError):
    code = 'location_required'
    default_message = 'Location verification requires session coordinates'


# Conflict errors

class SessionConflict(AttendanceError):
    code = 'session_conflict'
    status_code = 409
    default_message = 'An active session already exists for this course'


class AlreadyClosed(AttendanceError):
    code = 'already_closed'
    status_code = 409
    default_message = 'Session is already closed'


class SessionNotFound(AttendanceError):
    code = 'session_not_found'
    status_code = 404
    default_message = 'Session not found'


class SessionStillActive(AttendanceError):
    code = 'session_active'
    status_code = 409
    default_message = 'Close the session before finalizing it'


# Token errors

class TokenError(AttendanceError):
    """Raised by TokenCodec; SessionManager turns it into a rejected scan."""

    def __init__(self, message: str = None, claims=None, session_id: str = None):
        super().__init__(message)
        self.claims = claims
        self.session_id = session_id or (claims.session_id if claims else None)


class InvalidToken(TokenError):
    code = 'invalid_token'
    default_message = 'Invalid or corrupted QR code'


class TokenExpired(TokenError):
    code = 'token_expired'
    default_message = 'This QR code has expired'
