"""Section roster used to work out who was absent."""
from typing import Iterable, List
from qr_attendance import db
from qr_attendance.models.base import BaseModel


class SectionEnrollment(BaseModel):
    """Student membership in a section."""

    __tablename__ = 'section_enrollments'
    __table_args__ = (
        db.UniqueConstraint('section_id', 'student_id', name='uq_section_student'),
    )

    section_id = db.Column(db.String(64), nullable=False, index=True)
    student_id = db.Column(db.String(64), nullable=False)

    @classmethod
    def student_ids_for(cls, section_id: str) -> List[str]:
        rows = cls.query.filter_by(section_id=section_id).order_by(cls.student_id).all()
        return [row.student_id for row in rows]

    @classmethod
    def enroll(cls, section_id: str, student_ids: Iterable[str]) -> int:
        """Add students to a section, skipping ones already enrolled."""
        existing = set(cls.student_ids_for(section_id))
        added = 0

        for student_id in student_ids:
            if student_id in existing:
                continue
            db.session.add(cls(section_id=section_id, student_id=student_id))
            existing.add(student_id)
            added += 1

        db.session.commit()
        return added

    def __repr__(self):
        return f'<SectionEnrollment {self.section_id}:{self.student_id}>'
