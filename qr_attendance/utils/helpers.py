"""Helper functions for the application."""
from flask import current_app, jsonify
from typing import Any


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, code: str = None, data: Any = None):
    """Return consistent error response."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }

    if code is not None:
        response['code'] = code
    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def get_session_manager():
    """Session manager wired by the application factory."""
    from qr_attendance import SESSION_MANAGER_KEY
    return current_app.extensions[SESSION_MANAGER_KEY]
