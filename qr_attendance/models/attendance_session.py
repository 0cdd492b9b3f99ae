"""Attendance session opened by a class representative."""
from datetime import datetime
from enum import Enum
from typing import Optional
from qr_attendance import db
from qr_attendance.models.base import BaseModel, enum_column
from qr_attendance.services.geo_service import Location


class SessionStatus(Enum):
    """Session status enumeration."""
    ACTIVE = 'active'
    CLOSED = 'closed'
    EXPIRED = 'expired'


class AttendanceSession(BaseModel):
    """Time-boxed QR attendance window for one (section, course) pair."""

    __tablename__ = 'attendance_sessions'
    __table_args__ = (
        # At most one active session per section and course
        db.Index(
            'uq_active_session_per_course',
            'section_id', 'course_id',
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'")
        ),
        db.Index('ix_sessions_section_course_created', 'section_id', 'course_id', 'created_at'),
        db.Index('ix_sessions_status_expires', 'status', 'expires_at'),
    )

    session_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    section_id = db.Column(db.String(64), nullable=False, index=True)
    course_id = db.Column(db.String(64), nullable=False, index=True)
    created_by = db.Column(db.String(64), nullable=True)

    status = enum_column(SessionStatus, nullable=False, default=SessionStatus.ACTIVE)
    max_duration = db.Column(db.Integer, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    closed_at = db.Column(db.DateTime, nullable=True)

    # Geofence
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy = db.Column(db.Float, nullable=True)
    require_location = db.Column(db.Boolean, nullable=False, default=False)
    allowed_radius = db.Column(db.Float, nullable=False, default=100)
    anti_cheat_enabled = db.Column(db.Boolean, nullable=False, default=True)

    # Signing material, write-once
    token_secret = db.Column(db.String(128), nullable=False)
    token_version = db.Column(db.Integer, nullable=False, default=1)

    # Finalization
    finalized_at = db.Column(db.DateTime, nullable=True)
    attendance_record_id = db.Column(db.Integer, nullable=True)

    # Relationships
    scans = db.relationship(
        'ScanAttempt',
        backref='session',
        lazy='select',
        order_by='ScanAttempt.id'
    )

    @property
    def location(self) -> Optional[Location]:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(self.latitude, self.longitude, self.accuracy)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    @property
    def state(self) -> str:
        """FSM state: active, closed, expired or finalized."""
        if self.is_finalized:
            return 'finalized'
        return self.status.value

    def is_expired(self, now: datetime = None) -> bool:
        """Check if the session window has passed."""
        return (now or datetime.utcnow()) > self.expires_at

    def to_dict(self, include_scans: bool = False) -> dict:
        """Convert to dictionary, never exposing the signing secret."""
        data = super().to_dict(exclude=['token_secret', 'latitude', 'longitude', 'accuracy'])
        location = self.location
        data['location'] = location.to_dict() if location else None
        data['state'] = self.state

        if include_scans:
            data['scans'] = [scan.to_dict() for scan in self.scans]

        return data

    def __repr__(self) -> str:
        return f'<AttendanceSession {self.session_id} {self.status.value}>'
