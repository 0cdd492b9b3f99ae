"""QR Attendance Service - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

SESSION_MANAGER_KEY = 'qr_session_manager'


def create_app(config_name: str = None, **overrides) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from qr_attendance.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Wire the session core
    init_session_manager(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QR Attendance Service',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from qr_attendance.api.qr_attendance import qr_attendance_bp

    app.register_blueprint(qr_attendance_bp, url_prefix='/api/qr-attendance')

    from qr_attendance.utils.swagger import generate_swagger_spec

    @app.route('/api/swagger.json')
    def swagger_spec():
        """Serve Swagger/OpenAPI specification."""
        return jsonify(generate_swagger_spec())

    # Swagger UI
    try:
        from qr_attendance.utils.swagger import SWAGGER_URL, get_swagger_blueprint
        app.register_blueprint(get_swagger_blueprint(), url_prefix=SWAGGER_URL)
    except ImportError:
        app.logger.warning("Flask-Swagger-UI not installed")


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from qr_attendance.errors import AttendanceError
    from qr_attendance.utils.helpers import handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error('Internal server error', 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return handle_error('Token has expired', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return handle_error('Invalid token', 401)

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return handle_error('Authorization token required', 401)


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    package_logger = logging.getLogger('qr_attendance')
    package_logger.setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        package_logger.addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('QR Attendance Service startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from qr_attendance.models import (  # noqa: F401
            AttendanceSession, ScanAttempt,
            AttendanceRecord, AttendanceEntry,
            SectionEnrollment
        )


def init_session_manager(app: Flask) -> None:
    """Build the session manager from the app config."""
    from qr_attendance.config import SessionSettings
    from qr_attendance.services.qr_service import QRService
    from qr_attendance.services.records import (
        EnrollmentRosterProvider, SQLAttendanceRecordRepository
    )
    from qr_attendance.services.session_manager import SessionManager
    from qr_attendance.services.session_store import SessionStore

    settings = SessionSettings.from_mapping(app.config)
    app.extensions[SESSION_MANAGER_KEY] = SessionManager(
        settings=settings,
        store=SessionStore(),
        roster_provider=EnrollmentRosterProvider(),
        record_repository=SQLAttendanceRecordRepository(),
        qr_renderer=QRService.render if settings.render_qr_images else None
    )


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('enroll-students')
    @click.argument('section_id')
    @click.argument('student_ids', nargs=-1, required=True)
    def enroll_students(section_id, student_ids):
        """Add students to a section roster."""
        from qr_attendance.models.enrollment import SectionEnrollment

        added = SectionEnrollment.enroll(section_id, student_ids)
        click.echo(f'Enrolled {added} new student(s) in section {section_id}.')

    @app.cli.command('expire-sessions')
    def expire_sessions():
        """Mark overdue active sessions as expired."""
        manager = app.extensions[SESSION_MANAGER_KEY]
        expired = manager.store.expire_overdue_sessions(manager.clock())
        click.echo(f'Expired {expired} session(s).')
