"""Configuration module for the QR Attendance service."""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"

    # Attendance sessions (minutes)
    SESSION_MIN_DURATION = 5
    SESSION_MAX_DURATION = 120
    SESSION_DEFAULT_DURATION = 15

    # Geofence (meters)
    MIN_ALLOWED_RADIUS = 10
    MAX_ALLOWED_RADIUS = 1000
    DEFAULT_ALLOWED_RADIUS = 100

    # Anti-cheat
    ANTI_CHEAT_MAX_STUDENTS_PER_DEVICE = int(os.environ.get('ANTI_CHEAT_MAX_STUDENTS_PER_DEVICE', 1))
    ANTI_CHEAT_DEVICE_WINDOW_SECONDS = int(os.environ.get('ANTI_CHEAT_DEVICE_WINDOW_SECONDS', 300))
    ANTI_CHEAT_BLOCK_SPOOFED_LOCATIONS = False
    ANTI_CHEAT_MAX_LOCATION_ACCURACY = float(os.environ.get('ANTI_CHEAT_MAX_LOCATION_ACCURACY', 500))

    # Live stats
    STATS_RECENT_SCANS = 10

    # QR rendering
    QR_RENDER_IMAGES = True

    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///qr_attendance_dev.db'
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    # Redis (required in production)
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://*.vercel.app').split(',')

    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"
    ANTI_CHEAT_BLOCK_SPOOFED_LOCATIONS = os.environ.get('ANTI_CHEAT_BLOCK_SPOOFED_LOCATIONS') == '1'
    LOG_FILE = os.environ.get('LOG_FILE', '/app/logs/app.log')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    RATELIMIT_ENABLED = False
    QR_RENDER_IMAGES = False
    LOG_LEVEL = 'WARNING'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration by name."""
    return config.get(config_name or os.environ.get('FLASK_ENV', 'default'), DevelopmentConfig)


@dataclass(frozen=True)
class SessionSettings:
    """Settings the session core needs, frozen at the manager boundary."""
    min_duration: int = 5
    max_duration: int = 120
    default_duration: int = 15
    min_radius: float = 10
    max_radius: float = 1000
    default_radius: float = 100
    max_students_per_device: int = 1
    device_window_seconds: int = 300
    block_spoofed_locations: bool = False
    max_location_accuracy: float = 500
    recent_scans_limit: int = 10
    render_qr_images: bool = True

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> 'SessionSettings':
        """Build settings from a Flask config (or any mapping)."""
        defaults = cls()
        return cls(
            min_duration=mapping.get('SESSION_MIN_DURATION', defaults.min_duration),
            max_duration=mapping.get('SESSION_MAX_DURATION', defaults.max_duration),
            default_duration=mapping.get('SESSION_DEFAULT_DURATION', defaults.default_duration),
            min_radius=mapping.get('MIN_ALLOWED_RADIUS', defaults.min_radius),
            max_radius=mapping.get('MAX_ALLOWED_RADIUS', defaults.max_radius),
            default_radius=mapping.get('DEFAULT_ALLOWED_RADIUS', defaults.default_radius),
            max_students_per_device=mapping.get(
                'ANTI_CHEAT_MAX_STUDENTS_PER_DEVICE', defaults.max_students_per_device),
            device_window_seconds=mapping.get(
                'ANTI_CHEAT_DEVICE_WINDOW_SECONDS', defaults.device_window_seconds),
            block_spoofed_locations=mapping.get(
                'ANTI_CHEAT_BLOCK_SPOOFED_LOCATIONS', defaults.block_spoofed_locations),
            max_location_accuracy=mapping.get(
                'ANTI_CHEAT_MAX_LOCATION_ACCURACY', defaults.max_location_accuracy),
            recent_scans_limit=mapping.get('STATS_RECENT_SCANS', defaults.recent_scans_limit),
            render_qr_images=mapping.get('QR_RENDER_IMAGES', defaults.render_qr_images),
        )
