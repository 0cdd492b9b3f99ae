"""Swagger/OpenAPI configuration for the application."""

# Swagger UI configuration
SWAGGER_URL = '/api/docs'
API_URL = '/api/swagger.json'

OUTCOMES = [
    'accepted', 'rejected_duplicate', 'rejected_expired',
    'rejected_geofence', 'rejected_suspicious', 'rejected_invalid_token'
]


def get_swagger_blueprint():
    """Create and return swagger UI blueprint."""
    from flask_swagger_ui import get_swaggerui_blueprint

    return get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config={
            'app_name': "QR Attendance API",
            'defaultModelsExpandDepth': -1,
            'docExpansion': 'list',
            'validatorUrl': None,
        }
    )


def _json_body(schema_ref: str) -> dict:
    return {
        "required": True,
        "content": {"application/json": {"schema": {"$ref": schema_ref}}}
    }


def _response(description: str) -> dict:
    return {
        "description": description,
        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Envelope"}}}
    }


def generate_swagger_spec():
    """Generate OpenAPI/Swagger specification."""
    secured = [{"bearerAuth": []}]

    return {
        "openapi": "3.0.0",
        "info": {
            "title": "QR Attendance API",
            "description": "Time-boxed, geofenced QR attendance sessions for class representatives and students",
            "version": "1.0.0"
        },
        "servers": [
            {
                "url": "http://127.0.0.1:5000/api",
                "description": "Development server"
            }
        ],
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "bearerFormat": "JWT"
                }
            },
            "schemas": {
                "Location": {
                    "type": "object",
                    "required": ["latitude", "longitude"],
                    "properties": {
                        "latitude": {"type": "number", "minimum": -90, "maximum": 90},
                        "longitude": {"type": "number", "minimum": -180, "maximum": 180},
                        "accuracy": {"type": "number", "minimum": 0}
                    }
                },
                "GenerateSession": {
                    "type": "object",
                    "required": ["sectionId", "courseId"],
                    "properties": {
                        "sectionId": {"type": "string"},
                        "courseId": {"type": "string"},
                        "duration": {"type": "integer", "minimum": 5, "maximum": 120, "default": 15},
                        "location": {"$ref": "#/components/schemas/Location"},
                        "allowedRadius": {"type": "number", "minimum": 10, "maximum": 1000, "default": 100},
                        "antiCheatEnabled": {"type": "boolean", "default": True},
                        "requireLocation": {"type": "boolean"}
                    }
                },
                "Scan": {
                    "type": "object",
                    "required": ["qrCodeData", "studentId"],
                    "properties": {
                        "qrCodeData": {"type": "string"},
                        "studentId": {"type": "string"},
                        "location": {"$ref": "#/components/schemas/Location"},
                        "deviceInfo": {"type": "string"}
                    }
                },
                "CloseSession": {
                    "type": "object",
                    "properties": {
                        "generateAttendanceRecord": {"type": "boolean", "default": True}
                    }
                },
                "ScanOutcome": {"type": "string", "enum": OUTCOMES},
                "Envelope": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean"},
                        "message": {"type": "string"},
                        "code": {"type": "string"},
                        "data": {"type": "object"}
                    }
                }
            }
        },
        "paths": {
            "/qr-attendance/generate": {
                "post": {
                    "tags": ["QR Attendance"],
                    "summary": "Open an attendance session and issue its QR code",
                    "security": secured,
                    "requestBody": _json_body("#/components/schemas/GenerateSession"),
                    "responses": {
                        "201": _response("Session created"),
                        "400": _response("Invalid duration, radius or location"),
                        "409": _response("An active session already exists")
                    }
                }
            },
            "/qr-attendance/scan": {
                "post": {
                    "tags": ["QR Attendance"],
                    "summary": "Redeem a QR code for a student",
                    "security": secured,
                    "requestBody": _json_body("#/components/schemas/Scan"),
                    "responses": {
                        "200": _response("Attendance marked"),
                        "422": _response("Scan rejected; see data.outcome")
                    }
                }
            },
            "/qr-attendance/active/{sectionId}/{courseId}": {
                "get": {
                    "tags": ["QR Attendance"],
                    "summary": "Get the active session of a section and course",
                    "security": secured,
                    "parameters": [
                        {"name": "sectionId", "in": "path", "required": True, "schema": {"type": "string"}},
                        {"name": "courseId", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "responses": {
                        "200": _response("Active session"),
                        "404": _response("No active session found")
                    }
                }
            },
            "/qr-attendance/close/{sessionId}": {
                "put": {
                    "tags": ["QR Attendance"],
                    "summary": "Close a session, optionally producing the attendance record",
                    "security": secured,
                    "parameters": [
                        {"name": "sessionId", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "requestBody": _json_body("#/components/schemas/CloseSession"),
                    "responses": {
                        "200": _response("Session closed"),
                        "404": _response("Session not found"),
                        "409": _response("Session is already closed")
                    }
                }
            },
            "/qr-attendance/stats/{sessionId}": {
                "get": {
                    "tags": ["QR Attendance"],
                    "summary": "Live attendance statistics",
                    "security": secured,
                    "parameters": [
                        {"name": "sessionId", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "responses": {
                        "200": _response("Session statistics"),
                        "404": _response("Session not found")
                    }
                }
            },
            "/qr-attendance/history": {
                "get": {
                    "tags": ["QR Attendance"],
                    "summary": "Paginated session history",
                    "security": secured,
                    "parameters": [
                        {"name": "sectionId", "in": "query", "schema": {"type": "string"}},
                        {"name": "courseId", "in": "query", "schema": {"type": "string"}},
                        {"name": "from", "in": "query", "schema": {"type": "string", "format": "date-time"}},
                        {"name": "to", "in": "query", "schema": {"type": "string", "format": "date-time"}},
                        {"name": "page", "in": "query", "schema": {"type": "integer", "default": 1}},
                        {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 10}}
                    ],
                    "responses": {
                        "200": _response("Session history")
                    }
                }
            }
        }
    }
