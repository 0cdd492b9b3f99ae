"""QR attendance session API endpoints."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required
from qr_attendance import limiter
from qr_attendance.utils.decorators import can_access_section, representative_required
from qr_attendance.utils.helpers import error_response, get_session_manager, success_response
from qr_attendance.utils.validators import Validator

qr_attendance_bp = Blueprint('qr_attendance', __name__)


@qr_attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='QR attendance service is running')


@qr_attendance_bp.route('/generate', methods=['POST'])
@jwt_required()
@representative_required
@limiter.limit("30 per hour")
def generate_session():
    """Open an attendance session and issue its QR code."""
    data = Validator.require_json(request.get_json(silent=True))
    Validator.validate_required_fields(data, ['sectionId', 'courseId'])

    section_id = Validator.validate_string(data, 'sectionId')
    course_id = Validator.validate_string(data, 'courseId')

    if not can_access_section(section_id):
        return error_response("You can only create sessions for your assigned section", 403)

    require_location = data.get('requireLocation')
    if require_location is not None:
        require_location = Validator.validate_boolean(data, 'requireLocation', False)

    generated = get_session_manager().generate_session(
        section_id=section_id,
        course_id=course_id,
        duration=data.get('duration'),
        location=Validator.validate_location(data.get('location')),
        allowed_radius=data.get('allowedRadius'),
        anti_cheat_enabled=Validator.validate_boolean(data, 'antiCheatEnabled', True),
        require_location=require_location,
        created_by=str(get_jwt_identity())
    )

    return success_response(
        data=generated.to_dict(),
        message="QR code session generated successfully",
        status_code=201
    )


@qr_attendance_bp.route('/scan', methods=['POST'])
@jwt_required()
@limiter.limit("60 per minute")
def scan_qr_code():
    """Redeem a QR code and mark attendance."""
    data = Validator.require_json(request.get_json(silent=True))
    Validator.validate_required_fields(data, ['qrCodeData', 'studentId'])

    student_id = Validator.validate_string(data, 'studentId')
    claims = get_jwt()
    if claims.get('role') == 'student' and str(get_jwt_identity()) != student_id:
        return error_response("You can only mark attendance for yourself", 403)

    qr_code_data = data['qrCodeData']
    if not isinstance(qr_code_data, str):
        return error_response("qrCodeData must be a string", 400)

    device_info = Validator.validate_string(data, 'deviceInfo', max_length=255)

    result = get_session_manager().submit_scan(
        token=qr_code_data,
        student_id=student_id,
        location=Validator.validate_location(data.get('location')),
        device_fingerprint=device_info
    )

    if not result.accepted:
        return error_response(result.message, 422, code=result.outcome.value, data=result.to_dict())

    return success_response(data=result.to_dict(), message='Attendance marked successfully!')


@qr_attendance_bp.route('/active/<section_id>/<course_id>', methods=['GET'])
@jwt_required()
@representative_required
def get_active_session(section_id, course_id):
    """Get the active session of a section and course."""
    if not can_access_section(section_id):
        return error_response("You can only view sessions for your assigned section", 403)

    session = get_session_manager().get_active_session(section_id, course_id)
    if session is None:
        return error_response("No active session found", 404)

    return success_response(
        data=session.to_dict(include_scans=True),
        message="Active session retrieved successfully"
    )


@qr_attendance_bp.route('/close/<session_id>', methods=['PUT'])
@jwt_required()
@representative_required
def close_session(session_id):
    """Close a session, optionally producing its attendance record."""
    data = Validator.require_json(request.get_json(silent=True))
    generate_record = Validator.validate_boolean(data, 'generateAttendanceRecord', True)

    manager = get_session_manager()
    session = manager.get_session(session_id)

    claims = get_jwt()
    if claims.get('role') != 'admin' and session.created_by != str(get_jwt_identity()):
        return error_response("You can only close sessions you created", 403)

    closed = manager.close_session(session_id, generate_attendance_record=generate_record)

    return success_response(data=closed.to_dict(), message="Session closed successfully")


@qr_attendance_bp.route('/stats/<session_id>', methods=['GET'])
@jwt_required()
@representative_required
def get_session_stats(session_id):
    """Get live statistics for a session."""
    manager = get_session_manager()
    session = manager.get_session(session_id)

    if not can_access_section(session.section_id):
        return error_response("You can only view sessions for your assigned section", 403)

    stats = manager.get_stats(session_id)

    return success_response(data=stats.to_dict(), message="Session statistics retrieved successfully")


@qr_attendance_bp.route('/history', methods=['GET'])
@jwt_required()
@representative_required
def get_session_history():
    """Get paginated session history."""
    section_id = request.args.get('sectionId')
    claims = get_jwt()

    # Class representatives only see their own section
    if claims.get('role') == 'cr':
        section_id = claims.get('section_id')

    page = Validator.validate_page(request.args.get('page'), 1)
    limit = Validator.validate_page(
        request.args.get('limit'),
        current_app.config.get('DEFAULT_PAGE_SIZE', 10),
        maximum=current_app.config.get('MAX_PAGE_SIZE', 100)
    )

    pagination = get_session_manager().get_session_history(
        section_id=section_id,
        course_id=request.args.get('courseId'),
        date_from=Validator.validate_date(request.args.get('from'), 'from'),
        date_to=Validator.validate_date(request.args.get('to'), 'to'),
        page=page,
        per_page=limit
    )

    return success_response(
        data={
            'sessions': [session.to_dict() for session in pagination.items],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'pages': pagination.pages
            }
        },
        message="Session history retrieved successfully"
    )
