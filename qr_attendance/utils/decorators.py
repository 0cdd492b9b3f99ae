"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import get_jwt
from qr_attendance.utils.helpers import error_response

REPRESENTATIVE_ROLES = ('admin', 'cr', 'instructor')


def roles_required(*roles):
    """Decorator to require one of the given role claims. Use after jwt_required."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = get_jwt().get('role')

            if role not in roles:
                return error_response("Access denied for role '{}'".format(role), 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def representative_required(f):
    """Decorator to require an admin, class representative or instructor."""
    return roles_required(*REPRESENTATIVE_ROLES)(f)


def can_access_section(section_id: str) -> bool:
    """Class representatives may only act on their own section."""
    claims = get_jwt()
    if claims.get('role') == 'cr':
        return claims.get('section_id') == section_id
    return True
