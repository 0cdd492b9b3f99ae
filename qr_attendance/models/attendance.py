"""Attendance record produced when a session is finalized."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel


class AttendanceRecord(BaseModel):
    """Attendance record model."""

    __tablename__ = 'attendance_records'

    # One record per session
    session_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    section_id = db.Column(db.String(64), nullable=False, index=True)
    course_id = db.Column(db.String(64), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    taken_by = db.Column(db.String(64), nullable=True)

    present_count = db.Column(db.Integer, nullable=False, default=0)
    absent_count = db.Column(db.Integer, nullable=False, default=0)

    entries = db.relationship(
        'AttendanceEntry',
        backref='record',
        lazy='select',
        order_by='AttendanceEntry.student_id'
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = super().to_dict()
        data['date'] = self.date.isoformat()
        data['attendees'] = [entry.to_dict() for entry in self.entries]
        return data

    def __repr__(self):
        return f'<AttendanceRecord {self.section_id}-{self.course_id} {self.date}>'


class AttendanceEntry(db.Model):
    """Per-student line of an attendance record."""

    __tablename__ = 'attendance_entries'
    __table_args__ = (
        db.UniqueConstraint('record_id', 'student_id', name='uq_record_student'),
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey('attendance_records.id'), nullable=False, index=True)
    student_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='absent')  # present, absent
    note = db.Column(db.String(200), nullable=True)

    def to_dict(self) -> dict:
        return {
            'student_id': self.student_id,
            'status': self.status,
            'note': self.note
        }
